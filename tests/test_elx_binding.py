import pytest

from elx.elx_binding import (
    FunctionMapperFactory, MapFunctionMapper, MapVariableMapper, VariableMapperFactory, capture_bindings,
)
from elx.elx_builder import NodeFactory
from elx.elx_errors import ELError, FunctionMapperMissing, UnsupportedOperation
from elx.elx_expressions import ValueExpressionLiteral


def shout(text: str) -> str:
    return text.upper()


@pytest.fixture
def nodes():
    return NodeFactory()


@pytest.fixture
def mappers():
    functions = MapFunctionMapper()
    functions.add_function('s', 'shout', shout)
    variables = MapVariableMapper()
    variables.set_variable('greeting', ValueExpressionLiteral("hi"))
    return functions, variables


def test_capture_records_only_used_bindings(nodes, mappers):
    functions, variables = mappers
    variables.set_variable('unused', ValueExpressionLiteral(1))
    fns, vars_ = capture_bindings(nodes.create_node("${s:shout(greeting)}"), functions, variables)
    assert list(fns) == [('s', 'shout')]
    assert set(vars_) == {'greeting'}


def test_captured_tables_are_read_only(nodes, mappers):
    fns, vars_ = capture_bindings(nodes.create_node("${s:shout(greeting)}"), *mappers)
    with pytest.raises(TypeError):
        vars_['other'] = None
    with pytest.raises(TypeError):
        fns[('s', 'other')] = None


def test_nothing_captured(nodes, mappers):
    assert capture_bindings(nodes.create_node("${1 + 2}"), *mappers) == (None, None)
    assert capture_bindings(nodes.create_node("${a.b}"), None, None) == (None, None)


def test_unprefixed_call_may_be_a_lambda_variable(nodes, mappers):
    functions, variables = mappers
    variables.set_variable('f', ValueExpressionLiteral("lambda holder"))
    fns, vars_ = capture_bindings(nodes.create_node("${f(1)}"), functions, variables)
    assert fns is None
    assert 'f' in vars_


def test_missing_function_mapper(nodes):
    with pytest.raises(FunctionMapperMissing):
        capture_bindings(nodes.create_node("${s:shout('a')}"), None, MapVariableMapper())


def test_unknown_function(nodes, mappers):
    with pytest.raises(ELError, match="not found"):
        capture_bindings(nodes.create_node("${s:whisper('a')}"), *mappers)


def test_argument_count_mismatch(nodes, mappers):
    with pytest.raises(ELError, match="specifies 1 params"):
        capture_bindings(nodes.create_node("${s:shout('a', 'b')}"), *mappers)


def test_factories():
    with pytest.raises(ValueError):
        FunctionMapperFactory(None)
    with pytest.raises(ValueError):
        VariableMapperFactory(None)
    recording = VariableMapperFactory(MapVariableMapper())
    with pytest.raises(UnsupportedOperation) as exc:
        recording.set_variable('x', ValueExpressionLiteral(1))
    assert isinstance(exc.value, ELError)
    assert recording.create() is None


def test_map_variable_mapper_returns_previous():
    variables = MapVariableMapper()
    first = ValueExpressionLiteral(1)
    assert variables.set_variable('x', first) is None
    assert variables.set_variable('x', ValueExpressionLiteral(2)) is first
    variables.set_variable('x', None)
    assert variables.resolve_variable('x') is None


def test_map_function_mapper():
    functions = MapFunctionMapper()
    functions.add_function('', 'shout', shout)
    assert len(functions) == 1
    ref = functions.resolve_function(None, 'shout')
    assert ref.el_name == 'shout'
    assert ref.param_types == (str,)
    assert functions.resolve_function('x', 'shout') is None
