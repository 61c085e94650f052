"""
Expression tree nodes.

Nodes are immutable and compare structurally: two trees are equal when they
have the same node classes, the same literal text at the leaves and equal
children. Source locations ride along in ``loc`` without taking part in
equality.
"""
from dataclasses import dataclass, field, fields
from typing import Iterator, Optional, Tuple


@dataclass(frozen=True)
class Node:
    loc: Optional[dict] = field(default=None, compare=False, repr=False, kw_only=True)

    @property
    def children(self) -> Tuple['Node', ...]:
        out = []
        for f in fields(self):
            if not f.compare:
                continue
            value = getattr(self, f.name)
            if isinstance(value, Node):
                out.append(value)
            elif isinstance(value, tuple):
                out.extend(v for v in value if isinstance(v, Node))
        return tuple(out)

    def walk(self) -> Iterator['Node']:
        """Pre-order traversal."""
        yield self
        for child in self.children:
            yield from child.walk()


# =================================================================
# Top level
# =================================================================

@dataclass(frozen=True)
class Composite(Node):
    """Template text mixing literal runs and embedded expressions."""
    parts: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class LiteralText(Node):
    text: str = ""


@dataclass(frozen=True)
class Deferred(Node):
    """``#{...}``"""
    expr: Node = None


@dataclass(frozen=True)
class Dynamic(Node):
    """``${...}``"""
    expr: Node = None


# =================================================================
# Names, chains and calls
# =================================================================

@dataclass(frozen=True)
class Identifier(Node):
    name: str = ""


@dataclass(frozen=True)
class MethodArguments(Node):
    args: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class DotSuffix(Node):
    name: str = ""
    args: Optional[MethodArguments] = None


@dataclass(frozen=True)
class BracketSuffix(Node):
    expr: Node = None
    args: Optional[MethodArguments] = None


@dataclass(frozen=True)
class Value(Node):
    """A base followed by property suffixes; a suffix carrying arguments is a method call."""
    base: Node = None
    suffixes: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class Function(Node):
    """``name(args)`` or ``prefix:name(args)``; more argument lists chain calls."""
    prefix: str = ""
    local_name: str = ""
    arg_lists: Tuple[MethodArguments, ...] = ()

    @property
    def output_name(self) -> str:
        return f"{self.prefix}:{self.local_name}" if self.prefix else self.local_name


# =================================================================
# Literals
# =================================================================

@dataclass(frozen=True)
class IntegerLit(Node):
    image: str = "0"


@dataclass(frozen=True)
class FloatLit(Node):
    image: str = "0.0"


@dataclass(frozen=True)
class StringLit(Node):
    value: str = ""


@dataclass(frozen=True)
class TrueLit(Node):
    pass


@dataclass(frozen=True)
class FalseLit(Node):
    pass


@dataclass(frozen=True)
class NullLit(Node):
    pass


# =================================================================
# Operators
# =================================================================

@dataclass(frozen=True)
class Unary(Node):
    expr: Node = None


class Empty(Unary):
    op = "empty"


class Not(Unary):
    op = "!"


class Negative(Unary):
    op = "-"


@dataclass(frozen=True)
class Binary(Node):
    left: Node = None
    right: Node = None


class And(Binary):
    op = "&&"


class Or(Binary):
    op = "||"


class Equal(Binary):
    op = "=="


class NotEqual(Binary):
    op = "!="


class LessThan(Binary):
    op = "<"


class GreaterThan(Binary):
    op = ">"


class LessEq(Binary):
    op = "<="


class GreaterEq(Binary):
    op = ">="


class Plus(Binary):
    op = "+"


class Minus(Binary):
    op = "-"


class Mult(Binary):
    op = "*"


class Div(Binary):
    op = "/"


class Mod(Binary):
    op = "%"


class Concat(Binary):
    op = "+="


class Assign(Binary):
    op = "="


@dataclass(frozen=True)
class Choice(Node):
    cond: Node = None
    then: Node = None
    other: Node = None


@dataclass(frozen=True)
class Semicolon(Node):
    exprs: Tuple[Node, ...] = ()


# =================================================================
# Lambdas and collection literals
# =================================================================

@dataclass(frozen=True)
class LambdaParameters(Node):
    names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Lambda(Node):
    params: LambdaParameters = None
    body: Node = None
    arg_lists: Tuple[MethodArguments, ...] = ()


@dataclass(frozen=True)
class ListData(Node):
    items: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class SetData(Node):
    items: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class MapEntry(Node):
    key: Node = None
    value: Node = None


@dataclass(frozen=True)
class MapData(Node):
    entries: Tuple[MapEntry, ...] = ()


BINARY_NODES = {cls.op: cls for cls in (
    And, Or, Equal, NotEqual, LessThan, GreaterThan, LessEq, GreaterEq,
    Plus, Minus, Mult, Div, Mod, Concat, Assign,
)}
