"""
Turns expression text into compiled expressions.

``create_node`` parses (or fetches from the cache) and validates the tree;
``ExpressionBuilder`` adds the binding capture for one ELContext and wraps
the result in a ValueExpression or MethodExpression.
"""
import threading
from pathlib import Path
from typing import Any, Optional, Sequence

from koine import Parser

from elx.elx_binding import capture_bindings
from elx.elx_cache import ExpressionCache
from elx.elx_context import dbg
from elx.elx_errors import ELError, ParseError
from elx.elx_nodes import Composite, Deferred, Dynamic, Identifier, LiteralText, Node, Value
from elx.elx_transformer import ELTransformer

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "elx_grammar.yaml"


class NodeFactory:
    """Parser, transformer and cache bundled; shared by builders of one factory."""
    _parser = None  # koine.Parser for the bundled grammar, built once
    _parse_lock = threading.Lock()

    def __init__(self, cache: Optional[ExpressionCache] = None, parser=None, transformer=None):
        self.cache = cache if cache is not None else ExpressionCache()
        if parser is None:
            parser = NodeFactory.default_parser()
        self.parser = parser
        self.transformer = transformer or ELTransformer()

    @classmethod
    def default_parser(cls):
        with cls._parse_lock:
            if cls._parser is None:
                cls._parser = Parser.from_file(str(GRAMMAR_PATH))
        return cls._parser

    def create_node(self, expr: str) -> Node:
        if expr is None:
            raise ELError("Expression cannot be null")
        node = self.cache.get(expr)
        if node is not None:
            dbg("cache hit", repr(expr))
            return node

        with self._parse_lock:
            try:
                parse_out = self.parser.parse(expr)
            except Exception as e:
                raise ParseError(f"Error Parsing: {e}", expr) from e
        if isinstance(parse_out, dict) and 'status' in parse_out:
            if parse_out.get('status') != 'success':
                loc = parse_out.get('error_node') or {}
                raise ParseError(f"Error Parsing: {parse_out.get('error_message')}", expr,
                                 loc.get('line'), loc.get('col'))
            ast_node = parse_out.get('ast')
        else:
            ast_node = parse_out
        node = validate(self.transformer.transform(ast_node), expr)

        existing = self.cache.put_if_absent(expr, node)
        dbg("cache miss", repr(expr), "stored" if existing is None else "raced")
        return existing if existing is not None else node


def validate(node: Node, expr: str) -> Node:
    """Unwraps single-part templates and rejects templates mixing ``${}`` with ``#{}``."""
    if isinstance(node, Composite):
        if len(node.parts) == 1:
            node = node.parts[0]
        else:
            kind = None
            for part in node.parts:
                if isinstance(part, LiteralText):
                    continue
                if kind is None:
                    kind = type(part)
                elif kind is not type(part):
                    raise ELError(f"Expression cannot mix ${{}} and #{{}}: {expr}")
    if isinstance(node, (Deferred, Dynamic)):
        node = node.expr
    return node


class ExpressionBuilder:
    def __init__(self, expression: str, context, nodes: Optional[NodeFactory] = None):
        self.expression = expression
        self.context = context
        self.nodes = nodes or DEFAULT_NODES

    def build(self):
        """(node, functions, variables) with bindings captured from the context's mappers."""
        node = self.nodes.create_node(self.expression)
        ctx = self.context
        functions, variables = capture_bindings(
            node,
            getattr(ctx, 'function_mapper', None),
            getattr(ctx, 'variable_mapper', None),
        )
        return node, functions, variables

    def create_value_expression(self, expected_type: Any = None):
        from elx.elx_expressions import ValueExpression
        node, functions, variables = self.build()
        return ValueExpression(self.expression, node, functions, variables, expected_type, nodes=self.nodes)

    def create_method_expression(self, expected_return_type: Any = None,
                                 expected_param_types: Optional[Sequence[Any]] = None):
        from elx.elx_expressions import MethodExpression, MethodExpressionLiteral
        node, functions, variables = self.build()
        if isinstance(node, (Value, Identifier)):
            return MethodExpression(self.expression, node, functions, variables,
                                    expected_return_type, expected_param_types, nodes=self.nodes)
        if isinstance(node, LiteralText):
            return MethodExpressionLiteral(self.expression, expected_return_type, expected_param_types)
        raise ELError(f"Not a Valid Method Expression: {self.expression}")


DEFAULT_NODES = NodeFactory()
