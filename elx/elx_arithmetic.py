"""
Arithmetic operators with EL operand promotion.

Each binary operator picks one representation for both operands: decimal
when either side is a Decimal, float when either side is a float or a
float-looking string, big integer when either side exceeds 64 bits, and
plain integer otherwise.
"""
import decimal
import math
from decimal import Decimal

from elx.elx_errors import ELError
from elx.elx_coerce import coerce_to_number, is_string_float, is_big_integer_op, is_decimal_op
from elx.elx_types import BigInteger, is_number


def _is_float_string(x):
    return isinstance(x, str) and is_string_float(x)


def _is_double_string_op(a, b):
    return isinstance(a, float) or isinstance(b, float) or _is_float_string(a) or _is_float_string(b)


def _as(value, target):
    return coerce_to_number(value, target)


def _binary(a, b, op):
    if a is None and b is None:
        return 0
    if is_decimal_op(a, b):
        return op(_as(a, Decimal), _as(b, Decimal))
    if _is_double_string_op(a, b):
        return op(_as(a, float), _as(b, float))
    if is_big_integer_op(a, b):
        return BigInteger(op(_as(a, BigInteger), _as(b, BigInteger)))
    return op(_as(a, int), _as(b, int))


def add(a, b):
    return _binary(a, b, lambda x, y: x + y)


def subtract(a, b):
    return _binary(a, b, lambda x, y: x - y)


def multiply(a, b):
    return _binary(a, b, lambda x, y: x * y)


def _float_divide(x: float, y: float) -> float:
    if y == 0.0:
        if x == 0.0 or math.isnan(x):
            return math.nan
        return math.copysign(math.inf, x) * math.copysign(1.0, y)
    return x / y


def _decimal_divide(x: Decimal, y: Decimal) -> Decimal:
    if y == 0:
        raise ELError("Division by zero")
    ctx = decimal.Context(prec=max(28, len(x.as_tuple().digits) + len(y.as_tuple().digits) + 10),
                          rounding=decimal.ROUND_HALF_UP)
    exponent = x.as_tuple().exponent
    return ctx.divide(x, y).quantize(Decimal(1).scaleb(exponent), context=ctx)


def divide(a, b):
    if a is None and b is None:
        return 0
    if is_decimal_op(a, b) or is_big_integer_op(a, b):
        return _decimal_divide(_as(a, Decimal), _as(b, Decimal))
    return _float_divide(_as(a, float), _as(b, float))


def _trunc_mod(x: int, y: int) -> int:
    if y == 0:
        raise ELError("Division by zero")
    r = abs(x) % abs(y)
    return -r if x < 0 else r


def mod(a, b):
    if a is None and b is None:
        return 0
    if is_decimal_op(a, b) or _is_double_string_op(a, b):
        x, y = _as(a, float), _as(b, float)
        if y == 0.0 or math.isinf(x):
            return math.nan
        return math.fmod(x, y)
    if is_big_integer_op(a, b):
        return BigInteger(_trunc_mod(_as(a, BigInteger), _as(b, BigInteger)))
    return _trunc_mod(_as(a, int), _as(b, int))


def negate(value):
    if value is None:
        return 0
    if isinstance(value, str):
        if is_string_float(value):
            return -_as(value, float)
        return -_as(value, int)
    if isinstance(value, BigInteger):
        return BigInteger(-value)
    if is_number(value):
        return -value
    raise ELError(f"Cannot negate [{value!r}] of type {type(value).__name__}")
