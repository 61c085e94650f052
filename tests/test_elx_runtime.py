import pytest

from elx.elx_errors import ELError
from elx.elx_reflect import el_method
from elx.elx_resolvers import ELResolver
from elx.elx_runtime import ELProcessor, ExecutionResult, ExpressionFactory, _source_context


class Tools:
    @staticmethod
    def shout(text: str) -> str:
        return text.upper()

    @staticmethod
    @el_method(name='pad')
    def pad_default(text: str) -> str:
        return f"[{text}]"

    @staticmethod
    @el_method(name='pad')
    def pad_with(text: str, fill: str) -> str:
        return f"{fill}{text}{fill}"

    def instance_only(self) -> str:
        return "no"


class Upper:
    def __init__(self, text):
        self.text = text


class UpperResolver(ELResolver):
    """Reads any property of an Upper as its upper-cased text."""
    def get_value(self, ctx, base, prop):
        if isinstance(base, Upper):
            ctx.property_resolved = True
            return base.text.upper()
        return None


@pytest.fixture
def processor():
    return ELProcessor()


def test_handle_expression_success(processor):
    result = processor.handle_expression("1 + 1")
    assert result == ExecutionResult(status='success', value=2)
    assert result.format_error() == ""


class FailingParser:
    """Reports every parse as failing at the closing brace of ``${1 +}``."""
    def parse(self, text):
        return {'status': 'error', 'error_message': "Unexpected '}'", 'error_node': {'line': 1, 'col': 6}}


def test_handle_expression_parse_error(processor):
    result = processor.handle_expression("1 +")
    assert result.status == 'error'
    assert "ParseError" in result.format_error()


def test_parse_error_location_points_into_source():
    processor = ELProcessor(ExpressionFactory(parser=FailingParser()))
    result = processor.handle_expression("1 +")
    assert result.error_token == {'line': 1, 'col': 4}
    message = result.format_error()
    assert message.startswith("Error on line 1, col 4: ParseError:")
    assert "> 1 | 1 +" in message
    assert message.endswith("^")


def test_handle_expression_runtime_error(processor):
    result = processor.handle_expression("missing.value")
    assert result.status == 'error'
    assert result.error_token is None
    assert result.format_error().startswith("PropertyNotFound:")


def test_handle_expression_reports_cause(processor):
    processor.define_function('t', 'fail', lambda: {}['x'])
    result = processor.handle_expression("t:fail()")
    assert "Caused by KeyError" in result.error_message


def test_define_bean(processor):
    processor.define_bean('x', 3)
    assert processor.eval("x * 2") == 6
    processor.define_bean('x', None)
    assert 'x' not in processor.beans


def test_get_value_with_expected_type(processor):
    assert processor.get_value("'12'", int) == 12


def test_set_variable(processor):
    processor.define_bean('base', 10)
    processor.set_variable('total', "base + 5")
    assert processor.eval("total * 2") == 30
    processor.set_variable('total', None)
    assert processor.context.variable_mapper.resolve_variable('total') is None


def test_define_function_from_class(processor):
    processor.define_function('t', 'shout', Tools)
    assert processor.eval("t:shout('hi')") == "HI"
    processor.define_function('t', 'pad', Tools, [str, str])
    assert processor.eval("t:pad('x', '*')") == "*x*"
    with pytest.raises(ELError, match="pass param_types"):
        processor.define_function('t', 'pad', Tools)
    with pytest.raises(ELError, match="not static"):
        processor.define_function('t', 'instance_only', Tools)


def test_define_function_from_dotted_name(processor):
    processor.define_function('txt', 'dedent', 'textwrap.dedent')
    assert processor.eval("txt:dedent('  a')") == "a"
    with pytest.raises(ELError):
        processor.define_function('txt', 'nope', 'textwrap.nope')


def test_add_resolver_runs_after_beans(processor):
    processor.add_resolver(UpperResolver())
    processor.define_bean('u', Upper("quiet"))
    assert processor.eval("u.anything") == "QUIET"
    assert processor.resolver.resolvers[1].__class__ is UpperResolver


def test_factory_requires_expected_type():
    factory = ExpressionFactory()
    ctx = factory.create_context()
    with pytest.raises(ValueError):
        factory.create_value_literal(1, None)
    assert factory.create_value_expression(ctx, "${1}").expected_type is object
    assert factory.init_function_map() == {}


def test_source_context():
    text = _source_context("a\nb\nc", 2, 3)
    lines = text.splitlines()
    assert lines[1] == "> 2 | b"
    assert lines[2].endswith("^")
    assert _source_context("a", 5, 1) == ""
