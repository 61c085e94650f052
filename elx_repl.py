import argparse
import sys
from pathlib import Path

from elx.elx_config import load_config
from elx.elx_printer import Printer
from elx.elx_runtime import ELProcessor, ExpressionFactory
from elx.elx_serialize import deserialize


def load_beans(file_path: str) -> dict:
    """Top-level keys of a JSON or YAML file become beans."""
    p = Path(file_path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    fmt = 'json' if p.suffix.lower() == '.json' else 'yaml'
    data = deserialize(text, fmt=fmt)
    if data is None:
        return {}
    if not isinstance(data, dict):
        print(f"Error: {file_path} must contain a mapping of bean names", file=sys.stderr)
        raise SystemExit(1)
    return data


def make_processor(beans_file=None, config_file=None) -> ELProcessor:
    processor = ELProcessor(ExpressionFactory(load_config(config_file)))
    if beans_file:
        for name, bean in load_beans(beans_file).items():
            processor.define_bean(name, bean)
    return processor


def run_expressions(processor: ELProcessor, expressions, printer: Printer) -> int:
    """Evaluate each expression non-interactively; returns the exit status."""
    status = 0
    for source in expressions:
        result = processor.handle_expression(source)
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            status = 1
            continue
        print(printer.pformat(result.value))
    return status


def repl(processor: ELProcessor, printer: Printer):
    print("elx REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")
    while True:
        try:
            raw = input(">> ")
        except EOFError:
            print("\nExiting.")
            break
        line = raw.strip()
        if not line:
            continue
        if line == "exit":
            break
        result = processor.handle_expression(line)
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            continue
        print(printer.pformat(result.value))


def main(argv=None) -> int:
    """Evaluate expressions given on the command line, otherwise start the interactive REPL."""
    ap = argparse.ArgumentParser(description="Evaluate EL expressions.")
    ap.add_argument("expressions", nargs="*", help="expressions to evaluate, without ${}")
    ap.add_argument("-b", "--beans", help="JSON or YAML file whose top-level keys become beans")
    ap.add_argument("-c", "--config", help="YAML configuration file")
    args = ap.parse_args(argv)

    processor = make_processor(args.beans, args.config)
    printer = Printer()
    if args.expressions:
        return run_expressions(processor, args.expressions, printer)
    repl(processor, printer)
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
