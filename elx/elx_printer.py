"""
A pretty-printer for expression trees and evaluation results.

Trees print back to expression source that parses to an equal tree; values
print in expression literal syntax (``true``, ``null``, ``'text'``).
"""
import collections.abc

from elx.elx_interpreter import LambdaExpression
from elx.elx_nodes import (
    Node, Composite, LiteralText, Deferred, Dynamic, Identifier, MethodArguments,
    DotSuffix, BracketSuffix, Value, Function, IntegerLit, FloatLit, StringLit,
    TrueLit, FalseLit, NullLit, Unary, Binary, Choice, Semicolon, LambdaParameters, Lambda,
    ListData, SetData, MapEntry, MapData,
    Or, And, Equal, NotEqual, LessThan, GreaterThan, LessEq, GreaterEq,
    Concat, Plus, Minus, Mult, Div, Mod, Assign,
)
from elx.elx_stream import EMPTY, ELOptional, Stream

# Higher binds tighter
PRECEDENCE = {
    Semicolon: 0, Assign: 1, Lambda: 1, Choice: 2, Or: 3, And: 4,
    Equal: 5, NotEqual: 5, LessThan: 6, GreaterThan: 6, LessEq: 6, GreaterEq: 6,
    Concat: 7, Plus: 8, Minus: 8, Mult: 9, Div: 9, Mod: 9,
}
UNARY_PRECEDENCE = 10


def _precedence(node) -> int:
    return PRECEDENCE.get(type(node), UNARY_PRECEDENCE if isinstance(node, Unary) else 11)


def _quote(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


class Printer:
    """Formats nodes and values into readable expression source."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Unary): return self._pformat_unary
        if isinstance(obj, Binary): return self._pformat_binary
        if isinstance(obj, bool): return self._pformat_bool
        if isinstance(obj, str): return self._pformat_str
        if isinstance(obj, collections.abc.Mapping): return self._pformat_dict
        if isinstance(obj, (list, tuple)): return self._pformat_list
        if isinstance(obj, (set, frozenset)): return self._pformat_set
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            # Values
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            list: self._pformat_list,
            set: self._pformat_set,
            dict: self._pformat_dict,
            ELOptional: self._pformat_optional,
            Stream: lambda o, l: "Stream(...)",
            LambdaExpression: self._pformat_lambda_value,
            # Nodes
            Composite: self._pformat_composite,
            LiteralText: self._pformat_literal_text,
            Dynamic: lambda o, l: "${" + self.pformat(o.expr, l) + "}",
            Deferred: lambda o, l: "#{" + self.pformat(o.expr, l) + "}",
            Identifier: lambda o, l: o.name,
            MethodArguments: self._pformat_arguments,
            DotSuffix: self._pformat_dot_suffix,
            BracketSuffix: self._pformat_bracket_suffix,
            Value: self._pformat_value,
            Function: self._pformat_function,
            IntegerLit: lambda o, l: o.image,
            FloatLit: lambda o, l: o.image,
            StringLit: lambda o, l: _quote(o.value),
            TrueLit: lambda o, l: "true",
            FalseLit: lambda o, l: "false",
            NullLit: lambda o, l: "null",
            Choice: self._pformat_choice,
            Semicolon: lambda o, l: "; ".join(self.pformat(e, l) for e in o.exprs),
            LambdaParameters: self._pformat_lambda_parameters,
            Lambda: self._pformat_lambda,
            ListData: lambda o, l: "[" + ", ".join(self.pformat(i, l) for i in o.items) + "]",
            SetData: lambda o, l: "{" + ", ".join(self.pformat(i, l) for i in o.items) + "}",
            MapEntry: lambda o, l: f"{self.pformat(o.key, l)}: {self.pformat(o.value, l)}",
            MapData: lambda o, l: "{" + ", ".join(self.pformat(e, l) for e in o.entries) + "}",
        }

    # -----------------------------------------------------------------
    # Values
    # -----------------------------------------------------------------

    def _pformat_primitive(self, obj, level):
        return str(obj)

    def _pformat_str(self, obj, level):
        return _quote(obj)

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_none(self, obj, level):
        return 'null'

    def _pformat_list(self, obj, level):
        return "[" + ", ".join(self.pformat(x, level) for x in obj) + "]"

    def _pformat_set(self, obj, level):
        return "{" + ", ".join(sorted(self.pformat(x, level) for x in obj)) + "}"

    def _pformat_dict(self, obj, level):
        if not obj:
            return "{}"
        indent = self._indent_char * (level + 1)
        lines = [f"{indent}{self.pformat(k, level + 1)}: {self.pformat(v, level + 1)}" for k, v in obj.items()]
        closing = self._indent_char * level
        return "{\n" + ",\n".join(lines) + "\n" + closing + "}"

    def _pformat_optional(self, obj, level):
        if obj == EMPTY:
            return "Optional.empty"
        return f"Optional[{self.pformat(obj.get(), level)}]"

    def _pformat_lambda_value(self, obj, level):
        return self._pformat_lambda(Lambda(LambdaParameters(obj.params), obj.body), level)

    # -----------------------------------------------------------------
    # Nodes
    # -----------------------------------------------------------------

    def _pformat_composite(self, obj, level):
        return "".join(self.pformat(p, level) for p in obj.parts)

    def _pformat_literal_text(self, obj, level):
        return obj.text.replace("${", "\\${").replace("#{", "\\#{")

    def _pformat_arguments(self, obj, level):
        return "(" + ", ".join(self.pformat(a, level) for a in obj.args) + ")"

    def _pformat_dot_suffix(self, obj, level):
        args = self.pformat(obj.args, level) if obj.args is not None else ""
        return f".{obj.name}{args}"

    def _pformat_bracket_suffix(self, obj, level):
        args = self.pformat(obj.args, level) if obj.args is not None else ""
        return f"[{self.pformat(obj.expr, level)}]{args}"

    def _pformat_value(self, obj, level):
        base = self._operand(obj.base, 11, level)
        return base + "".join(self.pformat(s, level) for s in obj.suffixes)

    def _pformat_function(self, obj, level):
        return obj.output_name + "".join(self.pformat(a, level) for a in obj.arg_lists)

    def _operand(self, node, minimum: int, level) -> str:
        text = self.pformat(node, level)
        if isinstance(node, Node) and _precedence(node) < minimum:
            return f"({text})"
        return text

    def _pformat_unary(self, obj, level):
        operand = self._operand(obj.expr, UNARY_PRECEDENCE, level)
        if obj.op == "empty":
            return f"empty {operand}"
        return f"{obj.op}{operand}"

    def _pformat_binary(self, obj, level):
        p = _precedence(obj)
        if isinstance(obj, Assign):
            # Right associative
            return f"{self._operand(obj.left, p + 1, level)} = {self._operand(obj.right, p, level)}"
        return f"{self._operand(obj.left, p, level)} {obj.op} {self._operand(obj.right, p + 1, level)}"

    def _pformat_choice(self, obj, level):
        p = PRECEDENCE[Choice]
        cond = self._operand(obj.cond, p + 1, level)
        return f"{cond} ? {self._operand(obj.then, p, level)} : {self._operand(obj.other, p, level)}"

    def _pformat_lambda_parameters(self, obj, level):
        if len(obj.names) == 1:
            return obj.names[0]
        return "(" + ", ".join(obj.names) + ")"

    def _pformat_lambda(self, obj, level):
        text = f"{self.pformat(obj.params, level)} -> {self._operand(obj.body, PRECEDENCE[Lambda], level)}"
        if obj.arg_lists:
            return f"({text})" + "".join(self.pformat(a, level) for a in obj.arg_lists)
        return text
