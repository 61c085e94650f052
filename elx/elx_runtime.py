"""
Entry points for embedding applications.

``ExpressionFactory`` compiles expression text against an ELContext.
``ELProcessor`` bundles a factory, a context with its own bean store and
the standard resolver chain, for evaluating expressions directly.
"""
import importlib
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Sequence, Union

from elx.elx_binding import MapFunctionMapper, MapVariableMapper
from elx.elx_builder import ExpressionBuilder, NodeFactory
from elx.elx_cache import ExpressionCache
from elx.elx_coerce import coerce_to_type
from elx.elx_config import ELConfig
from elx.elx_context import ELContext, ImportHandler, dbg, set_debug
from elx.elx_errors import ELError, ParseError
from elx.elx_expressions import ValueExpressionLiteral
from elx.elx_reflect import MethodRef, find_method, public_methods
from elx.elx_resolvers import CompositeResolver, ELResolver, StreamResolver, default_resolver
from elx.elx_types import type_for_name

# Offset of the "${" wrapper added around bare expressions
_WRAP_OFFSET = 2


class ExpressionFactory:
    """Compiles expressions; one factory shares one parse cache."""

    def __init__(self, config: Optional[ELConfig] = None, properties: Optional[Mapping[str, Any]] = None,
                 cache: Optional[ExpressionCache] = None, parser=None):
        if config is None:
            config = ELConfig.from_properties(properties)
        self.config = config
        if config.debug:
            set_debug(True)
        if cache is None:
            cache = ExpressionCache(keepalive=config.cache_keepalive)
        self.nodes = NodeFactory(cache, parser)

    @property
    def legacy_coercion(self) -> bool:
        return self.config.legacy_coercion

    @property
    def cache(self) -> ExpressionCache:
        return self.nodes.cache

    def coerce_to_type(self, value: Any, target: Any) -> Any:
        try:
            return coerce_to_type(value, target, self.legacy_coercion)
        except ELError:
            raise
        except ValueError as e:
            raise ELError(str(e)) from e

    def create_value_expression(self, context: ELContext, expression: str, expected_type: Any = object):
        if expected_type is None:
            raise ValueError("expected_type cannot be None")
        return ExpressionBuilder(expression, context, self.nodes).create_value_expression(expected_type)

    def create_value_literal(self, instance: Any, expected_type: Any = object) -> ValueExpressionLiteral:
        if expected_type is None:
            raise ValueError("expected_type cannot be None")
        return ValueExpressionLiteral(instance, expected_type)

    def create_method_expression(self, context: ELContext, expression: str, expected_return_type: Any = None,
                                 expected_param_types: Optional[Sequence[Any]] = None):
        method_expression = ExpressionBuilder(expression, context, self.nodes).create_method_expression(
            expected_return_type, expected_param_types)
        if expected_param_types is None and not method_expression.is_parameters_provided():
            raise ValueError("Parameter types cannot be None when the expression supplies no arguments")
        return method_expression

    def create_context(self, beans: Optional[Dict[str, Any]] = None) -> ELContext:
        """A context with the standard resolver chain and empty mappers."""
        return ELContext(default_resolver(beans), MapFunctionMapper(), MapVariableMapper(),
                         ImportHandler(), self.legacy_coercion)

    def stream_resolver(self) -> ELResolver:
        return StreamResolver()

    def init_function_map(self) -> Dict[str, Callable]:
        return {}


@dataclass
class ExecutionResult:
    """The structured result of evaluating one expression."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[dict] = None

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and 'line' in self.error_token:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


def _bracket(expression: str) -> str:
    return "${" + expression + "}"


def _load_callable(name: str):
    """``pkg.module.func`` or ``pkg.module.Class.method``."""
    owner_name, _, attr = name.rpartition('.')
    if not owner_name:
        raise ELError(f"Invalid function reference: {name}")
    try:
        owner = importlib.import_module(owner_name)
    except ImportError:
        owner = type_for_name(owner_name)
    fn = getattr(owner, attr, None)
    if fn is None:
        raise ELError(f"Function {attr} not found in {owner_name}")
    return fn


class ELProcessor:
    """Evaluates bare expressions against a private bean store."""

    def __init__(self, factory: Optional[ExpressionFactory] = None):
        self.factory = factory or ExpressionFactory()
        self.beans: Dict[str, Any] = {}
        self.resolver: CompositeResolver = default_resolver(self.beans)
        self.context = ELContext(self.resolver, MapFunctionMapper(), MapVariableMapper(),
                                 ImportHandler(), self.factory.legacy_coercion)

    # Evaluation

    def eval(self, expression: str) -> Any:
        return self.get_value(expression, object)

    def get_value(self, expression: str, expected_type: Any = object) -> Any:
        expr = self.factory.create_value_expression(self.context, _bracket(expression), expected_type)
        return expr.get_value(self.context)

    def set_value(self, expression: str, value: Any):
        expr = self.factory.create_value_expression(self.context, _bracket(expression), object)
        expr.set_value(self.context, value)

    def handle_expression(self, source: str) -> ExecutionResult:
        """Evaluates ``source`` and reports the outcome instead of raising."""
        try:
            value = self.eval(source)
        except ParseError as e:
            line, col = e.line, e.col
            if line == 1 and col is not None:
                col = max(col - _WRAP_OFFSET, 1)
            token = {'line': line, 'col': col} if line is not None else None
            msg = f"ParseError: {e.args[0]}"
            if line is not None:
                msg = f"{msg}\n{_source_context(source, line, col)}"
            return ExecutionResult(status='error', error_message=msg, error_token=token)
        except ELError as e:
            dbg("handle_expression", type(e).__name__, e)
            msg = f"{type(e).__name__}: {e}"
            if e.__cause__ is not None:
                msg = f"{msg}\nCaused by {type(e.__cause__).__name__}: {e.__cause__}"
            return ExecutionResult(status='error', error_message=msg)
        return ExecutionResult(status='success', value=value)

    # Definitions

    def define_bean(self, name: str, bean: Any):
        if bean is None:
            self.beans.pop(name, None)
        else:
            self.beans[name] = bean

    def set_variable(self, name: str, expression: Optional[str]):
        if expression is None:
            self.context.variable_mapper.set_variable(name, None)
            return
        expr = self.factory.create_value_expression(self.context, _bracket(expression), object)
        self.context.variable_mapper.set_variable(name, expr)

    def define_function(self, prefix: str, function: str, fn: Union[Callable, str, MethodRef],
                        param_types: Optional[Sequence[Any]] = None):
        """Registers ``fn`` as ``prefix:function``.

        ``fn`` may be a callable, a dotted name, or a class when
        ``param_types`` selects one of its static methods named ``function``.
        """
        if isinstance(fn, type):
            if param_types is None:
                matches = [m for m in public_methods(fn) if m.el_name == function]
                if len(matches) != 1:
                    raise ELError(f"{len(matches)} methods named {function} on {fn.__name__}; pass param_types")
                ref = matches[0]
            else:
                ref = find_method(fn, function, param_types)
            if not ref.is_static:
                raise ELError(f"Method {function} on {fn.__name__} is not static")
            fn = ref
        elif isinstance(fn, str):
            fn = _load_callable(fn)
        self.context.function_mapper.add_function(prefix, function, fn)

    def add_resolver(self, resolver: ELResolver):
        """Custom resolvers are consulted after beans and before the standard ones."""
        self.resolver.resolvers.insert(1, resolver)

    # Imports

    def import_class(self, name: str):
        self.context.import_handler.import_class(name)

    def import_package(self, name: str):
        self.context.import_handler.import_package(name)

    def import_static(self, name: str):
        self.context.import_handler.import_static(name)


def _source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
        if i == line and col is not None:
            out.append(f"  {' ' * width} | {' ' * max(col - 1, 0)}^")
    return "\n".join(out)
