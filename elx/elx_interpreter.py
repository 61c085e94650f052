"""
The tree-walking evaluator: value chains, identifiers, function calls,
operators and lambda values.

Every node supports the same seven operations (``get_value``, ``set_value``,
``get_type``, ``is_read_only``, ``get_value_reference``, ``invoke`` and
``get_method_info``). Dispatch for all of them lives in ``Evaluator`` and
matches on the closed set of node classes from ``elx_nodes``.
"""
import math
import numbers
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from elx.elx_arithmetic import add, subtract, multiply, divide, mod, negate
from elx.elx_coerce import (
    coerce_to_boolean, coerce_to_string, coerce_to_type, compare, equals, is_empty,
)
from elx.elx_context import ELClass, EvaluationContext, dbg
from elx.elx_errors import (
    CoercionError, ELError, FunctionMapperMissing, InvocationFault, MethodNotFound,
    PropertyNotFound, PropertyNotWritable, UnreachableBase, UnreachableProperty,
)
from elx.elx_nodes import (
    Node, Composite, LiteralText, Deferred, Dynamic, Identifier, Value, DotSuffix, BracketSuffix,
    MethodArguments, Function, IntegerLit, FloatLit, StringLit, TrueLit, FalseLit, NullLit,
    Empty, Not, Negative, And, Or, Equal, NotEqual, LessThan, GreaterThan, LessEq, GreaterEq,
    Plus, Minus, Mult, Div, Mod, Concat, Assign, Choice, Semicolon, Lambda, ListData, SetData, MapData,
)
from elx.elx_reflect import find_method, invoke_method, types_from_values
from elx.elx_types import BigInteger, LONG, is_primitive, type_name


@dataclass(frozen=True)
class ValueReference:
    base: Any
    property: Any


@dataclass(frozen=True)
class MethodInfo:
    name: str
    return_type: Any
    param_types: Tuple[Any, ...]


class LambdaExpression:
    """A lambda value: formal parameters, a body and the scope it was created in."""
    def __init__(self, params: Sequence[str], body: Node, context: Optional[EvaluationContext] = None,
                 nested: Optional[Dict[str, Any]] = None, evaluator: Optional['Evaluator'] = None):
        self.params = tuple(params)
        self.body = body
        self.context = context
        self.nested = dict(nested or {})
        self.evaluator = evaluator or DEFAULT_EVALUATOR

    def invoke(self, context=None, *args):
        """Evaluates the body with ``args`` bound to the formal parameters.

        ``context`` may be an ELContext, an EvaluationContext or None (the
        context the lambda was created in).
        """
        arguments = dict(self.nested)
        for i, name in enumerate(self.params):
            if i >= len(args):
                raise ELError(f"Expected Argument {name} missing in Lambda Expression")
            arguments[name] = args[i]
        ctx = self._context_for(context)
        ctx.enter_lambda_scope(arguments)
        try:
            dbg("lambda invoke", self.params, "argc", len(args))
            result = self.evaluator.get_value(self.body, ctx)
        finally:
            ctx.exit_lambda_scope()
        if isinstance(result, LambdaExpression):
            for k, v in arguments.items():
                result.nested.setdefault(k, v)
        return result

    def _context_for(self, context) -> EvaluationContext:
        own = self.context
        if context is None:
            if own is None:
                raise ELError("Lambda expression has no evaluation context")
            el_context = own.el_context
        else:
            el_context = getattr(context, 'el_context', context)
        functions = own.functions if own is not None else None
        variables = own.variables if own is not None else None
        return EvaluationContext(el_context, functions, variables)

    def __call__(self, *args):
        return self.invoke(None, *args)

    def __repr__(self):
        return f"<lambda ({', '.join(self.params)})>"


class Evaluator:
    """Evaluates expression trees against an EvaluationContext."""

    # =================================================================
    # get_value
    # =================================================================

    def get_value(self, node: Node, ctx: EvaluationContext) -> Any:
        match node:
            case LiteralText(text=text):
                return text
            case Composite(parts=parts):
                return "".join(coerce_to_string(self.get_value(p, ctx)) for p in parts)
            case Deferred(expr=expr) | Dynamic(expr=expr):
                return self.get_value(expr, ctx)
            case IntegerLit(image=image):
                return integer_literal(image)
            case FloatLit(image=image):
                return float_literal(image)
            case StringLit(value=value):
                return value
            case TrueLit():
                return True
            case FalseLit():
                return False
            case NullLit():
                return None
            case Identifier():
                return self._identifier_value(node, ctx)
            case Value():
                return self._chain_value(node, ctx)
            case Function():
                return self._function_value(node, ctx)
            case Empty(expr=expr):
                return is_empty(self.get_value(expr, ctx))
            case Not(expr=expr):
                return not coerce_to_boolean(self.get_value(expr, ctx))
            case Negative(expr=expr):
                return negate(self.get_value(expr, ctx))
            case And(left=left, right=right):
                if not coerce_to_boolean(self.get_value(left, ctx)):
                    return False
                return coerce_to_boolean(self.get_value(right, ctx))
            case Or(left=left, right=right):
                if coerce_to_boolean(self.get_value(left, ctx)):
                    return True
                return coerce_to_boolean(self.get_value(right, ctx))
            case Equal(left=left, right=right):
                return equals(self.get_value(left, ctx), self.get_value(right, ctx))
            case NotEqual(left=left, right=right):
                return not equals(self.get_value(left, ctx), self.get_value(right, ctx))
            case LessThan() | GreaterThan() | LessEq() | GreaterEq():
                return self._relational(node, ctx)
            case Plus(left=left, right=right):
                return add(self.get_value(left, ctx), self.get_value(right, ctx))
            case Minus(left=left, right=right):
                return subtract(self.get_value(left, ctx), self.get_value(right, ctx))
            case Mult(left=left, right=right):
                return multiply(self.get_value(left, ctx), self.get_value(right, ctx))
            case Div(left=left, right=right):
                return divide(self.get_value(left, ctx), self.get_value(right, ctx))
            case Mod(left=left, right=right):
                return mod(self.get_value(left, ctx), self.get_value(right, ctx))
            case Concat(left=left, right=right):
                return coerce_to_string(self.get_value(left, ctx)) + coerce_to_string(self.get_value(right, ctx))
            case Assign(left=left, right=right):
                value = self.get_value(right, ctx)
                self.set_value(left, ctx, value)
                return value
            case Choice(cond=cond, then=then, other=other):
                if coerce_to_boolean(self.get_value(cond, ctx)):
                    return self.get_value(then, ctx)
                return self.get_value(other, ctx)
            case Semicolon(exprs=exprs):
                result = None
                for expr in exprs:
                    result = self.get_value(expr, ctx)
                return result
            case Lambda():
                return self._lambda_value(node, ctx)
            case ListData(items=items):
                return [self.get_value(i, ctx) for i in items]
            case SetData(items=items):
                return {self.get_value(i, ctx) for i in items}
            case MapData(entries=entries):
                return {self.get_value(e.key, ctx): self.get_value(e.value, ctx) for e in entries}
            case _:
                raise ELError(f"Cannot evaluate node {type(node).__name__}")

    def _relational(self, node, ctx) -> bool:
        left = self.get_value(node.left, ctx)
        if isinstance(node, (LessEq, GreaterEq)):
            right = self.get_value(node.right, ctx)
            if left is right:
                return True
            if left is None or right is None:
                return False
        else:
            if left is None:
                return False
            right = self.get_value(node.right, ctx)
            if right is None:
                return False
        result = compare(left, right)
        match node:
            case LessThan():
                return result < 0
            case GreaterThan():
                return result > 0
            case LessEq():
                return result <= 0
            case _:
                return result >= 0

    def _arguments(self, args: Optional[MethodArguments], ctx) -> Optional[List[Any]]:
        if args is None:
            return None
        return [self.get_value(a, ctx) for a in args.args]

    # =================================================================
    # Identifiers
    # =================================================================

    def _variable(self, name, ctx):
        if ctx.variables is None:
            return None
        return ctx.variables.get(name)

    def _identifier_value(self, node: Identifier, ctx: EvaluationContext):
        name = node.name
        if ctx.is_lambda_argument(name):
            return ctx.get_lambda_argument(name)
        expr = self._variable(name, ctx)
        if expr is not None:
            return expr.get_value(ctx.el_context)
        ctx.property_resolved = False
        value = ctx.resolver.get_value(ctx, None, name)
        if not ctx.property_resolved:
            if ctx.import_handler is not None:
                klass = ctx.import_handler.resolve_static(name)
                if klass is not None:
                    ctx.property_resolved = False
                    value = ctx.resolver.get_value(ctx, ELClass(klass), name)
                    if ctx.property_resolved:
                        return value
                    raise_unhandled(ELClass(klass), name)
            raise_unhandled(None, name)
        return value

    def _find_value(self, name, ctx):
        """Like an identifier lookup, but None instead of failing."""
        if ctx.is_lambda_argument(name):
            return ctx.get_lambda_argument(name)
        expr = self._variable(name, ctx)
        if expr is not None:
            return expr.get_value(ctx.el_context)
        ctx.property_resolved = False
        value = ctx.resolver.get_value(ctx, None, name)
        if ctx.property_resolved:
            return value
        return None

    def _method_expression(self, node: Identifier, ctx):
        from elx.elx_expressions import MethodExpression
        expr = self._variable(node.name, ctx)
        if expr is not None:
            obj = expr.get_value(ctx.el_context)
        else:
            ctx.property_resolved = False
            obj = ctx.resolver.get_value(ctx, None, node.name)
        if isinstance(obj, MethodExpression):
            return obj
        if obj is None:
            raise MethodNotFound(f"Identity '{node.name}' was null and was unable to invoke")
        raise ELError(f"Identity '{node.name}' does not reference a MethodExpression instance, "
                      f"returned type: {type_name(type(obj))}")

    # =================================================================
    # Value chains
    # =================================================================

    def _suffix_key(self, suffix, ctx):
        match suffix:
            case DotSuffix(name=name):
                return name
            case BracketSuffix(expr=expr):
                return self.get_value(expr, ctx)
        raise ELError(f"Invalid suffix {type(suffix).__name__}")

    def _hop(self, base, suffix, ctx):
        prop = self._suffix_key(suffix, ctx)
        if suffix.args is not None:
            if not isinstance(prop, str):
                raise ELError(f"Method name [{prop!r}] is not a string")
            params = self._arguments(suffix.args, ctx)
            ctx.property_resolved = False
            value = ctx.resolver.invoke(ctx, base, prop, None, params)
            if not ctx.property_resolved:
                raise MethodNotFound(f"Unable to find method [{prop}] on {describe_base(base)}")
            return value
        if prop is None:
            return None
        ctx.property_resolved = False
        value = ctx.resolver.get_value(ctx, base, prop)
        if not ctx.property_resolved:
            raise_unhandled(base, prop)
        return value

    def _chain_base(self, node: Value, ctx):
        try:
            return self.get_value(node.base, ctx)
        except PropertyNotFound:
            if isinstance(node.base, Identifier) and ctx.import_handler is not None:
                klass = ctx.import_handler.resolve_class(node.base.name)
                if klass is not None:
                    return ELClass(klass)
            raise

    def _chain_value(self, node: Value, ctx):
        base = self._chain_base(node, ctx)
        prop = _base_image(node.base)
        for suffix in node.suffixes:
            if base is None:
                raise UnreachableProperty(f"Target unreachable, '{prop}' returned null", None, prop)
            base = self._hop(base, suffix, ctx)
            prop = _suffix_image(suffix)
        return base

    def _target(self, node: Value, ctx):
        base = self._chain_base(node, ctx)
        if base is None:
            raise UnreachableBase(f"Target unreachable, identifier '{_base_image(node.base)}' resolved to null",
                                  None, _base_image(node.base))
        for suffix in node.suffixes[:-1]:
            base = self._hop(base, suffix, ctx)
            if base is None:
                prop = _suffix_image(suffix)
                raise UnreachableProperty(f"Target unreachable, '{prop}' returned null", None, prop)
        return base, node.suffixes[-1]

    # =================================================================
    # Function calls
    # =================================================================

    def _function_value(self, node: Function, ctx):
        if not node.prefix:
            val = self._find_value(node.local_name, ctx)
            if isinstance(val, LambdaExpression):
                for arg_list in node.arg_lists:
                    params = self._arguments(arg_list, ctx)
                    if not isinstance(val, LambdaExpression):
                        raise ELError(f"Syntax error calling function {node.output_name}: "
                                      f"result is not a lambda expression")
                    val = val.invoke(ctx, *params)
                return val

        ref = None
        if ctx.functions is not None:
            ref = ctx.functions.get((node.prefix, node.local_name))

        if ref is None:
            if not node.prefix and ctx.import_handler is not None:
                klass = ctx.import_handler.resolve_class(node.local_name)
                method_name = "<init>"
                if klass is None:
                    klass = ctx.import_handler.resolve_static(node.local_name)
                    method_name = node.local_name
                if klass is not None:
                    params = self._arguments(node.arg_lists[0], ctx)
                    ctx.property_resolved = False
                    result = ctx.resolver.invoke(ctx, ELClass(klass), method_name, None, params)
                    if not ctx.property_resolved:
                        raise MethodNotFound(f"Unable to find method [{method_name}] on {type_name(klass)}")
                    return result
            if ctx.functions is None:
                raise FunctionMapperMissing(f"Expression uses function {node.output_name} but no function mapper is available")
            raise ELError(f"Function '{node.output_name}' not found")

        params = self._arguments(node.arg_lists[0], ctx)
        if len(params) != len(ref.param_types):
            raise ELError(f"Function {node.output_name} specifies {len(ref.param_types)} params, "
                          f"but {len(params)} were supplied")
        try:
            params = [ctx.convert_to_type(p, t) for p, t in zip(params, ref.param_types)]
        except ELError as e:
            raise ELError(f"Problems calling function '{node.output_name}': {e}") from e
        dbg("function call", node.output_name, "argc", len(params))
        try:
            return ref.invoke(None, params)
        except ELError:
            raise
        except Exception as e:
            raise InvocationFault(f"Problems calling function '{node.output_name}'") from e

    # =================================================================
    # Lambdas
    # =================================================================

    def _lambda_value(self, node: Lambda, ctx):
        lam = LambdaExpression(node.params.names, node.body, ctx, ctx.lambda_arguments(), self)
        if not node.arg_lists:
            return lam
        result = lam
        for arg_list in node.arg_lists:
            if not isinstance(result, LambdaExpression):
                raise ELError("Syntax error: result of lambda invocation is not a lambda expression")
            result = result.invoke(ctx, *self._arguments(arg_list, ctx))
        return result

    # =================================================================
    # set_value
    # =================================================================

    def set_value(self, node: Node, ctx: EvaluationContext, value: Any):
        match node:
            case Deferred(expr=expr) | Dynamic(expr=expr):
                self.set_value(expr, ctx, value)
            case Identifier(name=name):
                if ctx.is_lambda_argument(name):
                    raise PropertyNotWritable(f"Lambda parameter '{name}' is read only")
                expr = self._variable(name, ctx)
                if expr is not None:
                    expr.set_value(ctx.el_context, value)
                    return
                ctx.property_resolved = False
                ctx.resolver.set_value(ctx, None, name, value)
                if not ctx.property_resolved:
                    raise_unhandled(None, name)
            case Value():
                base, suffix = self._target(node, ctx)
                if suffix.args is not None:
                    raise PropertyNotWritable("Illegal Syntax for Set Operation")
                prop = self._suffix_key(suffix, ctx)
                resolver = ctx.resolver
                ctx.property_resolved = False
                target_type = resolver.get_type(ctx, base, prop)
                if ctx.property_resolved:
                    ctx.property_resolved = False
                    converted = resolver.convert_to_type(ctx, value, target_type)
                    if ctx.property_resolved:
                        value = converted
                    elif value is not None or is_primitive(target_type):
                        try:
                            value = coerce_to_type(value, target_type, ctx.legacy_coercion, ctx)
                        except CoercionError as e:
                            raise ELError(f"Cannot convert value for property '{prop}': {e}") from e
                ctx.property_resolved = False
                resolver.set_value(ctx, base, prop, value)
                if not ctx.property_resolved:
                    raise_unhandled(base, prop)
            case _:
                raise PropertyNotWritable("Illegal Syntax for Set Operation")

    # =================================================================
    # get_type / is_read_only / get_value_reference
    # =================================================================

    def get_type(self, node: Node, ctx: EvaluationContext):
        match node:
            case Deferred(expr=expr) | Dynamic(expr=expr):
                return self.get_type(expr, ctx)
            case Identifier(name=name):
                if ctx.is_lambda_argument(name):
                    return object
                expr = self._variable(name, ctx)
                if expr is not None:
                    return expr.get_type(ctx.el_context)
                ctx.property_resolved = False
                result = ctx.resolver.get_type(ctx, None, name)
                if not ctx.property_resolved:
                    raise_unhandled(None, name)
                return result
            case Value():
                base, suffix = self._target(node, ctx)
                if suffix.args is not None:
                    return None
                prop = self._suffix_key(suffix, ctx)
                ctx.property_resolved = False
                result = ctx.resolver.get_type(ctx, base, prop)
                if not ctx.property_resolved:
                    raise_unhandled(base, prop)
                return result
            case Function():
                if ctx.functions is None:
                    raise FunctionMapperMissing(f"Expression uses function {node.output_name} but no function mapper is available")
                ref = ctx.functions.get((node.prefix, node.local_name))
                if ref is None:
                    raise ELError(f"Function '{node.output_name}' not found")
                return ref.return_type
            case LiteralText() | Composite() | StringLit() | Concat():
                return str
            case NullLit():
                return None
            case TrueLit() | FalseLit() | Not() | And() | Or() | Empty() | Equal() | NotEqual() \
                    | LessThan() | GreaterThan() | LessEq() | GreaterEq():
                return bool
            case Plus() | Minus() | Mult() | Div() | Mod() | Negative():
                return numbers.Number
            case _:
                value = self.get_value(node, ctx)
                return None if value is None else type(value)

    def is_read_only(self, node: Node, ctx: EvaluationContext) -> bool:
        match node:
            case Deferred(expr=expr) | Dynamic(expr=expr):
                return self.is_read_only(expr, ctx)
            case Identifier(name=name):
                if ctx.is_lambda_argument(name):
                    return True
                expr = self._variable(name, ctx)
                if expr is not None:
                    return expr.is_read_only(ctx.el_context)
                ctx.property_resolved = False
                result = ctx.resolver.is_read_only(ctx, None, name)
                if not ctx.property_resolved:
                    raise_unhandled(None, name)
                return result
            case Value():
                base, suffix = self._target(node, ctx)
                if suffix.args is not None:
                    return True
                prop = self._suffix_key(suffix, ctx)
                ctx.property_resolved = False
                result = ctx.resolver.is_read_only(ctx, base, prop)
                if not ctx.property_resolved:
                    raise_unhandled(base, prop)
                return result
            case _:
                return True

    def get_value_reference(self, node: Node, ctx: EvaluationContext) -> Optional[ValueReference]:
        match node:
            case Deferred(expr=expr) | Dynamic(expr=expr):
                return self.get_value_reference(expr, ctx)
            case Identifier(name=name):
                expr = self._variable(name, ctx)
                if expr is not None:
                    return expr.get_value_reference(ctx.el_context)
                return ValueReference(None, name)
            case Value():
                base, suffix = self._target(node, ctx)
                if suffix.args is not None:
                    return None
                return ValueReference(base, self._suffix_key(suffix, ctx))
            case _:
                return None

    # =================================================================
    # invoke / get_method_info
    # =================================================================

    def invoke(self, node: Node, ctx: EvaluationContext, param_types=None, param_values=None):
        match node:
            case Deferred(expr=expr) | Dynamic(expr=expr):
                return self.invoke(expr, ctx, param_types, param_values)
            case Identifier():
                return self._method_expression(node, ctx).invoke(ctx.el_context, param_values)
            case Value():
                base, suffix = self._target(node, ctx)
                if suffix.args is not None:
                    # Parameters written in the expression win over declared ones
                    method = self._suffix_key(suffix, ctx)
                    params = self._arguments(suffix.args, ctx)
                    ctx.property_resolved = False
                    result = ctx.resolver.invoke(ctx, base, method, None, params)
                    if not ctx.property_resolved:
                        raise MethodNotFound(f"Unable to find method [{method}] on {describe_base(base)}")
                    return result
                prop = self._suffix_key(suffix, ctx)
                ref = find_method(_class_of(base), str(prop), param_types, param_values)
                return invoke_method(ctx, ref, _instance_of(base), param_values)
            case _:
                raise ELError(f"Not a valid method expression node: {type(node).__name__}")

    def get_method_info(self, node: Node, ctx: EvaluationContext, param_types=None) -> MethodInfo:
        match node:
            case Deferred(expr=expr) | Dynamic(expr=expr):
                return self.get_method_info(expr, ctx, param_types)
            case Identifier():
                return self._method_expression(node, ctx).get_method_info(ctx.el_context)
            case Value():
                base, suffix = self._target(node, ctx)
                prop = self._suffix_key(suffix, ctx)
                values = self._arguments(suffix.args, ctx)
                if values is not None and param_types is None:
                    param_types = types_from_values(values)
                ref = find_method(_class_of(base), str(prop), param_types, values)
                return MethodInfo(ref.el_name, ref.return_type, ref.param_types)
            case _:
                raise ELError(f"Not a valid method expression node: {type(node).__name__}")


# =================================================================
# Helpers
# =================================================================

def integer_literal(image: str):
    value = int(image)
    if LONG.narrow(value) != value:
        return BigInteger(value)
    return value


def float_literal(image: str):
    value = float(image)
    if math.isinf(value):
        return Decimal(image)
    return value


def describe_base(base) -> str:
    if isinstance(base, ELClass):
        return type_name(base.klass)
    return type_name(type(base))


def raise_unhandled(base, prop):
    if base is None:
        raise PropertyNotFound(f"Identifier '{prop}' resolved to null or could not be found", base, prop)
    raise PropertyNotFound(f"Property '{prop}' not found on type {describe_base(base)}", base, prop)


def _class_of(base):
    return base.klass if isinstance(base, ELClass) else type(base)


def _instance_of(base):
    return None if isinstance(base, ELClass) else base


def _base_image(node) -> str:
    if isinstance(node, Identifier):
        return node.name
    return type(node).__name__


def _suffix_image(suffix) -> str:
    if isinstance(suffix, DotSuffix):
        return suffix.name
    return "[...]"


DEFAULT_EVALUATOR = Evaluator()
