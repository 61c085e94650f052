"""
Compiled expressions.

A compiled expression is the parsed tree plus the function and variable
tables frozen when it was built. Every call creates a fresh
EvaluationContext over the caller's ELContext, so one expression can be
evaluated from many threads at once.
"""
from typing import Any, Dict, Optional, Sequence

from elx.elx_context import EvaluationContext, dbg
from elx.elx_errors import ELError, PropertyNotWritable
from elx.elx_interpreter import DEFAULT_EVALUATOR, MethodInfo
from elx.elx_nodes import LiteralText, Node, Value
from elx.elx_reflect import MethodRef
from elx.elx_types import type_for_name, type_name


def _el_context(context):
    return getattr(context, 'el_context', context)


def _type_to_name(t) -> str:
    return "" if t is None else type_name(t)


def _name_to_type(name: str):
    return type_for_name(name) if name else None


def _convert(context, value, expected_type):
    try:
        return context.convert_to_type(value, expected_type)
    except ELError:
        raise
    except ValueError as e:
        raise ELError(str(e)) from e


# =================================================================
# Persisted binding tables
# =================================================================

def functions_to_list(functions) -> list:
    if not functions:
        return []
    out = []
    for (prefix, local_name), ref in functions.items():
        key = f"{prefix}:{local_name}" if prefix else local_name
        out.append([key, ref.to_ref()])
    return out


def functions_from_list(items) -> Optional[Dict]:
    if not items:
        return None
    functions = {}
    for key, ref in items:
        prefix, _, local_name = key.rpartition(':')
        functions[(prefix, local_name)] = MethodRef.lazy(ref['owner'], ref['name'], ref.get('types', []))
    return functions


def variables_to_list(variables) -> list:
    if not variables:
        return []
    return [[name, expr.to_dict()] for name, expr in variables.items()]


def variables_from_list(items) -> Optional[Dict]:
    if not items:
        return None
    return {name: expression_from_dict(data) for name, data in items}


def expression_from_dict(data: Dict[str, Any]):
    """Rebuilds any compiled expression from its persisted mapping."""
    kind = data.get('kind', 'value')
    match kind:
        case 'value':
            return ValueExpression.from_dict(data)
        case 'value-literal':
            return ValueExpressionLiteral.from_dict(data)
        case 'method':
            return MethodExpression.from_dict(data)
        case 'method-literal':
            return MethodExpressionLiteral.from_dict(data)
    raise ELError(f"Unknown expression kind: {kind!r}")


# =================================================================
# Compiled expressions
# =================================================================

class Expression:
    """Source text, parsed tree and frozen binding tables shared by value and method expressions."""
    def __init__(self, expression: str, node: Optional[Node], functions=None, variables=None,
                 nodes=None, evaluator=None):
        self.expression = expression
        self._node = node
        self.functions = functions
        self.variables = variables
        self._nodes = nodes
        self.evaluator = evaluator or DEFAULT_EVALUATOR

    @property
    def node(self) -> Node:
        # Rebuilt expressions carry only their text until first use
        if self._node is None:
            from elx.elx_builder import DEFAULT_NODES
            self._node = (self._nodes or DEFAULT_NODES).create_node(self.expression)
        return self._node

    @property
    def expression_string(self) -> str:
        return self.expression

    def _context(self, context) -> EvaluationContext:
        return EvaluationContext(_el_context(context), self.functions, self.variables)

    def __eq__(self, other):
        return type(other) is type(self) and self.node == other.node

    def __hash__(self):
        return hash(self.node)

    def __repr__(self):
        return f"{type(self).__name__}[{self.expression}]"


class ValueExpression(Expression):
    """A compiled ``${...}``/``#{...}`` expression or template that yields a value."""
    def __init__(self, expression: str, node: Optional[Node], functions=None, variables=None,
                 expected_type: Any = None, nodes=None, evaluator=None):
        super().__init__(expression, node, functions, variables, nodes, evaluator)
        self.expected_type = expected_type

    def is_literal_text(self) -> bool:
        try:
            return isinstance(self.node, LiteralText)
        except ELError:
            return False

    def get_value(self, context) -> Any:
        ctx = self._context(context)
        dbg("get_value", repr(self.expression))
        value = self.evaluator.get_value(self.node, ctx)
        if self.expected_type is not None:
            value = _convert(ctx, value, self.expected_type)
        return value

    def set_value(self, context, value: Any):
        self.evaluator.set_value(self.node, self._context(context), value)

    def get_type(self, context):
        return self.evaluator.get_type(self.node, self._context(context))

    def is_read_only(self, context) -> bool:
        return self.evaluator.is_read_only(self.node, self._context(context))

    def get_value_reference(self, context):
        return self.evaluator.get_value_reference(self.node, self._context(context))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': 'value',
            'expression': self.expression,
            'expected_type': _type_to_name(self.expected_type),
            'functions': functions_to_list(self.functions),
            'variables': variables_to_list(self.variables),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValueExpression':
        return cls(data['expression'], None,
                   functions_from_list(data.get('functions')),
                   variables_from_list(data.get('variables')),
                   _name_to_type(data.get('expected_type', "")))


class ValueExpressionLiteral:
    """Wraps a host value so it can stand wherever a ValueExpression is expected."""
    def __init__(self, value: Any, expected_type: Any = None):
        self.value = value
        self.expected_type = expected_type

    @property
    def expression_string(self) -> Optional[str]:
        return None if self.value is None else str(self.value)

    def is_literal_text(self) -> bool:
        return True

    def get_value(self, context) -> Any:
        if self.expected_type is not None:
            return _convert(context, self.value, self.expected_type)
        return self.value

    def set_value(self, context, value: Any):
        raise PropertyNotWritable(f"ValueExpression is a literal and not writable: {self.value!r}")

    def get_type(self, context):
        return None if self.value is None else type(self.value)

    def is_read_only(self, context) -> bool:
        return True

    def get_value_reference(self, context):
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': 'value-literal',
            'value': self.value,
            'expected_type': _type_to_name(self.expected_type),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValueExpressionLiteral':
        return cls(data.get('value'), _name_to_type(data.get('expected_type', "")))

    def __eq__(self, other):
        return isinstance(other, ValueExpressionLiteral) and self.value == other.value

    def __hash__(self):
        return hash(repr(self.value))

    def __repr__(self):
        return f"ValueExpressionLiteral[{self.value!r}]"


# =================================================================
# Method expressions
# =================================================================

class MethodExpression(Expression):
    """A compiled reference to a host method, e.g. ``#{bean.save}``."""
    def __init__(self, expression: str, node: Optional[Node], functions=None, variables=None,
                 expected_return_type: Any = None, expected_param_types: Optional[Sequence[Any]] = None,
                 nodes=None, evaluator=None):
        super().__init__(expression, node, functions, variables, nodes, evaluator)
        self.expected_return_type = expected_return_type
        self.param_types = None if expected_param_types is None else tuple(expected_param_types)

    def is_literal_text(self) -> bool:
        return False

    def is_parameters_provided(self) -> bool:
        """True when the expression itself supplies the call arguments (``bean.save(1)``)."""
        node = self.node
        return isinstance(node, Value) and node.suffixes[-1].args is not None

    def get_method_info(self, context) -> MethodInfo:
        return self.evaluator.get_method_info(self.node, self._context(context), self.param_types)

    def invoke(self, context, params: Optional[Sequence[Any]] = None) -> Any:
        dbg("invoke", repr(self.expression))
        return self.evaluator.invoke(self.node, self._context(context), self.param_types,
                                     None if params is None else list(params))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': 'method',
            'expression': self.expression,
            'expected_type': _type_to_name(self.expected_return_type),
            'param_types': None if self.param_types is None else [type_name(t) for t in self.param_types],
            'functions': functions_to_list(self.functions),
            'variables': variables_to_list(self.variables),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MethodExpression':
        param_types = data.get('param_types')
        return cls(data['expression'], None,
                   functions_from_list(data.get('functions')),
                   variables_from_list(data.get('variables')),
                   _name_to_type(data.get('expected_type', "")),
                   None if param_types is None else [type_for_name(n) for n in param_types])


class MethodExpressionLiteral:
    """A method expression that is only literal text; invoking it yields the text."""
    def __init__(self, expression: str, expected_type: Any = None,
                 param_types: Optional[Sequence[Any]] = None):
        self.expression = expression
        self.expected_type = expected_type
        self.param_types = None if param_types is None else tuple(param_types)

    @property
    def expression_string(self) -> str:
        return self.expression

    def is_literal_text(self) -> bool:
        return True

    def is_parameters_provided(self) -> bool:
        return False

    def get_method_info(self, context) -> MethodInfo:
        return MethodInfo(self.expression, self.expected_type, self.param_types)

    def invoke(self, context, params: Optional[Sequence[Any]] = None) -> Any:
        if self.expected_type is None:
            return self.expression
        return _convert(context, self.expression, self.expected_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': 'method-literal',
            'expression': self.expression,
            'expected_type': _type_to_name(self.expected_type),
            'param_types': None if self.param_types is None else [type_name(t) for t in self.param_types],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MethodExpressionLiteral':
        return cls(data['expression'], _name_to_type(data.get('expected_type', "")),
                   None if data.get('param_types') is None else [type_for_name(n) for n in data['param_types']])

    def __eq__(self, other):
        return isinstance(other, MethodExpressionLiteral) and self.expression == other.expression

    def __hash__(self):
        return hash(self.expression)

    def __repr__(self):
        return f"MethodExpressionLiteral[{self.expression}]"
