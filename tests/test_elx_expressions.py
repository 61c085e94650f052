import pytest

from elx.elx_errors import ELError, FunctionMapperMissing, ParseError, PropertyNotWritable
from elx.elx_context import ELContext
from elx.elx_expressions import (
    MethodExpression, MethodExpressionLiteral, ValueExpression, ValueExpressionLiteral,
    expression_from_dict,
)
from elx.elx_interpreter import MethodInfo, ValueReference
from elx.elx_resolvers import default_resolver
from elx.elx_runtime import ExpressionFactory
from elx.elx_serialize import dump_expression, load_expression


def triple(x: int) -> int:
    return x * 3


class Account:
    def __init__(self):
        self.balance = 10
        self.saved = 0

    def save(self) -> str:
        self.saved += 1
        return "saved"

    def deposit(self, amount: int) -> int:
        self.balance += amount
        return self.balance


@pytest.fixture
def factory():
    return ExpressionFactory()


@pytest.fixture
def ctx(factory):
    return factory.create_context({'account': Account(), 'name': "World"})


def test_value_expression_basics(factory, ctx):
    expr = factory.create_value_expression(ctx, "Hello ${name}!", str)
    assert isinstance(expr, ValueExpression)
    assert expr.get_value(ctx) == "Hello World!"
    assert expr.expression_string == "Hello ${name}!"
    assert not expr.is_literal_text()
    assert factory.create_value_expression(ctx, "plain text").is_literal_text()


def test_expected_type_conversion(factory, ctx):
    assert factory.create_value_expression(ctx, "${'42'}", int).get_value(ctx) == 42
    assert factory.create_value_expression(ctx, "${1 + 1}", str).get_value(ctx) == "2"
    with pytest.raises(ELError):
        factory.create_value_expression(ctx, "${'x'}", int).get_value(ctx)
    with pytest.raises(ValueError):
        factory.create_value_expression(ctx, "${1}", None)


def test_type_read_only_and_reference(factory, ctx):
    expr = factory.create_value_expression(ctx, "${account.balance}")
    assert expr.get_type(ctx) is int
    assert expr.is_read_only(ctx) is False
    ref = expr.get_value_reference(ctx)
    assert isinstance(ref, ValueReference)
    assert ref.property == "balance"
    expr.set_value(ctx, "25")
    assert expr.get_value(ctx) == 25

    literal = factory.create_value_expression(ctx, "${1}")
    assert literal.is_read_only(ctx) is True
    assert literal.get_value_reference(ctx) is None
    with pytest.raises(PropertyNotWritable):
        literal.set_value(ctx, 2)


def test_parse_errors(factory, ctx):
    with pytest.raises(ParseError):
        factory.create_value_expression(ctx, "${1 +}")
    with pytest.raises(ELError, match="cannot mix"):
        factory.create_value_expression(ctx, "${a} #{b}")


def test_equality_follows_tree(factory, ctx):
    a = factory.create_value_expression(ctx, "${account.balance + 1}")
    b = ExpressionFactory().create_value_expression(ctx, "${account.balance + 1}")
    c = factory.create_value_expression(ctx, "${account.balance + 2}")
    assert a == b
    assert hash(a) == hash(b)
    assert a != c
    assert repr(a) == "ValueExpression[${account.balance + 1}]"


def test_shared_cache_returns_same_tree(factory, ctx):
    a = factory.create_value_expression(ctx, "${name}")
    b = factory.create_value_expression(ctx, "${name}")
    assert a.node is b.node
    assert "${name}" in factory.cache


def test_bindings_are_captured_at_build_time(factory):
    ctx = factory.create_context()
    ctx.variable_mapper.set_variable('x', factory.create_value_literal(1))
    expr = factory.create_value_expression(ctx, "${x}")
    ctx.variable_mapper.set_variable('x', factory.create_value_literal(2))
    assert expr.get_value(ctx) == 1
    assert factory.create_value_expression(ctx, "${x}").get_value(ctx) == 2

    ctx.function_mapper.add_function('f', 'triple', triple)
    call = factory.create_value_expression(ctx, "${f:triple(2)}")
    ctx.function_mapper.add_function('f', 'triple', lambda x: 0)
    assert call.get_value(ctx) == 6


def test_missing_function_mapper(factory):
    ctx = ELContext(default_resolver())
    with pytest.raises(FunctionMapperMissing):
        factory.create_value_expression(ctx, "${f:triple(1)}")


def test_value_literal(factory, ctx):
    literal = factory.create_value_literal("7", int)
    assert isinstance(literal, ValueExpressionLiteral)
    assert literal.get_value(ctx) == 7
    assert literal.is_read_only(ctx)
    assert literal.get_type(ctx) is str
    assert literal.expression_string == "7"
    with pytest.raises(PropertyNotWritable):
        literal.set_value(ctx, 1)
    assert literal == ValueExpressionLiteral("7")


def test_method_expression_invoke(factory, ctx):
    expr = factory.create_method_expression(ctx, "#{account.save}", str, [])
    assert isinstance(expr, MethodExpression)
    assert not expr.is_parameters_provided()
    assert expr.invoke(ctx, []) == "saved"
    info = expr.get_method_info(ctx)
    assert info == MethodInfo("save", str, ())


def test_method_expression_with_declared_params(factory, ctx):
    expr = factory.create_method_expression(ctx, "#{account.deposit}", int, [int])
    assert expr.invoke(ctx, ["5"]) == 15


def test_method_expression_with_written_params(factory, ctx):
    expr = factory.create_method_expression(ctx, "#{account.deposit(5)}", int)
    assert expr.is_parameters_provided()
    # Arguments written in the expression win over the ones passed in
    assert expr.invoke(ctx, [100]) == 15


def test_method_expression_rules(factory, ctx):
    with pytest.raises(ValueError):
        factory.create_method_expression(ctx, "#{account.save}", str, None)
    with pytest.raises(ELError, match="Not a Valid Method Expression"):
        factory.create_method_expression(ctx, "#{1 + 1}", object, [])


def test_method_expression_literal(factory, ctx):
    expr = factory.create_method_expression(ctx, "just text", str, [])
    assert isinstance(expr, MethodExpressionLiteral)
    assert expr.invoke(ctx, []) == "just text"
    assert expr.get_method_info(ctx).name == "just text"
    number = factory.create_method_expression(ctx, "12", int, [])
    assert number.invoke(ctx) == 12


def test_value_expression_persists(factory):
    ctx = factory.create_context()
    ctx.function_mapper.add_function('f', 'triple', triple)
    ctx.variable_mapper.set_variable('y', factory.create_value_literal(3))
    expr = factory.create_value_expression(ctx, "${f:triple(y)}", int)

    restored = load_expression(dump_expression(expr))
    assert isinstance(restored, ValueExpression)
    assert restored == expr
    assert restored.expected_type is int
    assert restored.get_value(factory.create_context()) == 9

    from_yaml = load_expression(dump_expression(expr, fmt='yaml'), fmt='yaml')
    assert from_yaml.get_value(factory.create_context()) == 9


def test_method_expression_persists(factory, ctx):
    expr = factory.create_method_expression(ctx, "#{account.deposit}", int, [int])
    data = expr.to_dict()
    assert data['kind'] == 'method'
    assert data['param_types'] == ['builtins.int']
    restored = expression_from_dict(data)
    assert restored.param_types == (int,)
    assert restored.invoke(ctx, [1]) == 11

    no_types = factory.create_method_expression(ctx, "#{account.deposit(1)}", int)
    assert expression_from_dict(no_types.to_dict()).param_types is None


def test_unknown_kind():
    with pytest.raises(ELError):
        expression_from_dict({'kind': 'mystery'})
