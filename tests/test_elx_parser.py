import pytest
from koine import Parser

from elx.elx_builder import GRAMMAR_PATH, NodeFactory
from elx.elx_errors import ELError, ParseError
from elx.elx_nodes import (
    Composite, Dynamic, Deferred, Identifier, LiteralText, Value, DotSuffix, BracketSuffix,
    Function, IntegerLit, FloatLit, StringLit, Plus, Minus, Mult, Negative, Equal, Div, Not,
    Lambda, Choice, Assign, Semicolon, SetData, MapData, ListData, Concat, LessThan,
)
from elx.elx_printer import Printer
from elx.elx_transformer import ELTransformer


@pytest.fixture(scope="module")
def parser():
    """Loads the bundled grammar into a koine Parser."""
    return Parser.from_file(str(GRAMMAR_PATH))


def _tree(text):
    out = NodeFactory.default_parser().parse(text)
    assert out['status'] == 'success', out
    return ELTransformer().transform(out['ast'])


def _expr(text):
    """The expression inside a single ``${...}``."""
    node = _tree(text)
    assert isinstance(node, Composite) and len(node.parts) == 1
    return node.parts[0].expr


def _tags(node):
    """Every tag in a raw tree, depth first."""
    if isinstance(node, list):
        return [t for n in node for t in _tags(n)]
    if not isinstance(node, dict):
        return []
    return [node.get('tag')] + _tags(node.get('children'))


def test_raw_ast_shape(parser):
    out = parser.parse("${a}")
    assert out['status'] == 'success'
    ast = out['ast']
    assert ast['tag'] == 'composite'
    tags = _tags(ast)
    assert tags.index('dynamic') < tags.index('identifier')


def test_left_associative_operators():
    assert _expr("${1 - 2 - 3}") == Minus(Minus(IntegerLit("1"), IntegerLit("2")), IntegerLit("3"))
    assert _expr("${a < b == c}") == Equal(LessThan(Identifier("a"), Identifier("b")), Identifier("c"))


def test_template_parts():
    node = _tree("Hello ${name}!")
    assert node == Composite((LiteralText("Hello "), Dynamic(Identifier("name")), LiteralText("!")))


def test_deferred_and_escapes():
    assert _tree("#{a}") == Composite((Deferred(Identifier("a")),))
    assert _tree("\\${a}") == Composite((LiteralText("${a}"),))
    assert _tree("cost: \\#{x} ${y}").parts[0] == LiteralText("cost: #{x} ")


def test_precedence_and_unary():
    assert _expr("${1 + 2 * -x}") == Plus(IntegerLit("1"), Mult(IntegerLit("2"), Negative(Identifier("x"))))
    assert _expr("${a == b / c}") == Equal(Identifier("a"), Div(Identifier("b"), Identifier("c")))
    assert _expr("${not a}") == Not(Identifier("a"))


def test_keyword_operators_match_symbols():
    assert _expr("${a eq b}") == _expr("${a == b}")
    assert _expr("${a and b or c}") == _expr("${a && b || c}")
    assert _expr("${a div b mod c}") == _expr("${a / b % c}")
    assert _expr("${a le b}") == _expr("${a <= b}")


def test_value_chain():
    node = _expr("${a.b[1].c(2)}")
    assert isinstance(node, Value)
    assert node.base == Identifier("a")
    assert [type(s) for s in node.suffixes] == [DotSuffix, BracketSuffix, DotSuffix]
    assert node.suffixes[2].args is not None
    assert node.suffixes[0].args is None


def test_functions():
    node = _expr("${fn:max(1, 2)}")
    assert isinstance(node, Function)
    assert (node.prefix, node.local_name) == ("fn", "max")
    assert len(node.arg_lists[0].args) == 2
    chained = _expr("${f()()()}")
    assert chained.prefix == "" and len(chained.arg_lists) == 3


def test_literals():
    assert _expr("${1.5e3}") == FloatLit("1.5e3")
    assert _expr("${.5}") == FloatLit(".5")
    assert _expr("${'it\\'s'}") == StringLit("it's")
    assert _expr('${"a\\"b"}') == StringLit('a"b')


def test_collections():
    assert _expr("${{}}") == SetData(())
    assert isinstance(_expr("${{1, 2}}"), SetData)
    assert isinstance(_expr("${{'a': 1}}"), MapData)
    assert _expr("${[]}") == ListData(())


def test_lambda_assignment_and_semicolon():
    node = _expr("${f = (a, b) -> a + b; f(1, 2)}")
    assert isinstance(node, Semicolon)
    assign = node.exprs[0]
    assert isinstance(assign, Assign)
    assert isinstance(assign.right, Lambda)
    assert assign.right.params.names == ("a", "b")
    assert isinstance(_expr("${x -> x}"), Lambda)
    invoked = _expr("${(x -> x + 1)(2)}")
    assert isinstance(invoked, Lambda) and len(invoked.arg_lists) == 1


def test_choice_and_concat():
    assert isinstance(_expr("${a ? b : c}"), Choice)
    assert isinstance(_expr("${a += b}"), Concat)


@pytest.mark.parametrize("source", ["${a +}", "${a", "first\n${a b}", "${}", "${a ? b}"])
def test_syntax_errors(parser, source):
    assert parser.parse(source)['status'] != 'success'
    with pytest.raises(ParseError) as exc:
        NodeFactory().create_node(source)
    assert exc.value.source == source


def test_node_factory_rejects_none():
    with pytest.raises(ELError):
        NodeFactory().create_node(None)


def test_node_factory_validation():
    nodes = NodeFactory()
    assert nodes.create_node("${a}") == Identifier("a")
    assert nodes.create_node("plain") == LiteralText("plain")
    with pytest.raises(ELError, match="cannot mix"):
        nodes.create_node("${a}#{b}")


def test_structurally_equal_trees():
    first = NodeFactory().create_node("${a.b + 1}")
    second = NodeFactory().create_node("${a.b + 1}")
    assert first is not second
    assert first == second
    assert hash(first) == hash(second)


@pytest.mark.parametrize("source", [
    "${a.b[1] + f:g(2) * -x}",
    "${(1 + 2) * 3}",
    "${1 - (2 - 3)}",
    "${x -> x + 1}",
    "${((a, b) -> a + b)(1, 2)}",
    "${a ? 'yes' : 'it\\'s'}",
    "${empty a.list}",
    "Total: ${a + b} \\${raw}",
    "${x = y = 3; x}",
])
def test_printer_round_trip(source):
    printer = Printer()
    tree = _tree(source)
    printed = printer.pformat(tree)
    assert printed == source
    assert _tree(printed) == tree
