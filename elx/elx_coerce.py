"""
Value coercion and comparison rules used throughout evaluation.

``coerce_to_type`` walks a fixed ladder: identity, null short-circuit, string,
number, char, boolean, enum, property editors, arrays and finally adaptation
of lambda values onto single-method interfaces. ``compare`` and ``equals``
choose one numeric representation from a fixed priority list before falling
back to strings and natural ordering.
"""
import datetime
import inspect
import math
import numbers
import uuid
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from elx.elx_errors import CoercionError, ELError
from elx.elx_types import (
    BigInteger, Char, Primitive, CHAR, BOOLEAN, LONG, SHORT,
    is_primitive, is_array, element_type, normalize_type,
    is_number, is_number_class, is_big_integer, is_instance_of, type_name,
)


# =================================================================
# Property editors
# =================================================================

PROPERTY_EDITORS: Dict[type, Callable[[str], Any]] = {
    datetime.date: datetime.date.fromisoformat,
    datetime.datetime: datetime.datetime.fromisoformat,
    Path: Path,
    uuid.UUID: uuid.UUID,
}


def register_property_editor(target: type, editor: Callable[[str], Any]):
    """Registers a text-to-value converter used for non-empty string sources."""
    PROPERTY_EDITORS[target] = editor


def find_property_editor(target) -> Optional[Callable[[str], Any]]:
    if not isinstance(target, type):
        return None
    for klass in target.__mro__:
        editor = PROPERTY_EDITORS.get(klass)
        if editor is not None:
            return editor
    return None


def _fail(value, target):
    src = type_name(type(value)) if value is not None else "null"
    return CoercionError(f"Cannot convert [{value!r}] of type [{src}] to [{type_name(target)}]", value, target)


# =================================================================
# Scalar coercions
# =================================================================

def coerce_to_string(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return value.name
    return str(value)


def coerce_to_boolean(value) -> bool:
    if value is None or value == "":
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() == "true"
    raise _fail(value, bool)


def coerce_to_character(value) -> Char:
    if value is None or value == "":
        return Char('\x00')
    if isinstance(value, Char):
        return value
    if isinstance(value, str):
        return Char(value[0])
    if is_number(value):
        return Char(chr(CHAR.narrow(value) & 0xFFFF))
    raise _fail(value, Char)


def coerce_to_enum(value, target):
    if value is None or value == "":
        return None
    if isinstance(value, Enum):
        return value
    try:
        return target[str(value)]
    except KeyError:
        raise CoercionError(f"No enum constant {type_name(target)}.{value}", value, target) from None


def is_number_type(target) -> bool:
    if isinstance(target, Primitive):
        return target not in (BOOLEAN, CHAR)
    return is_number_class(target)


def _is_non_finite(number) -> bool:
    if isinstance(number, float):
        return not math.isfinite(number)
    return isinstance(number, Decimal) and not number.is_finite()


def _number_to(number, target):
    if isinstance(target, Primitive):
        return target.narrow(number)
    if target in (BigInteger, Decimal, int) and _is_non_finite(number):
        raise _fail(number, target)
    if target is BigInteger:
        if isinstance(number, BigInteger):
            return number
        return BigInteger(int(number))
    if target is Decimal:
        if isinstance(number, Decimal):
            return number
        if isinstance(number, int):
            return Decimal(int(number))
        return Decimal(str(number))
    if target is int:
        return int(number)
    if target is float:
        return float(number)
    if isinstance(target, type) and isinstance(number, target):
        return number
    raise _fail(number, target)


def _string_to(text: str, target):
    kind = target.box if isinstance(target, Primitive) else target
    try:
        if kind is int:
            parsed = int(text)
            if isinstance(target, Primitive) and parsed != target.narrow(parsed):
                raise ValueError(f"out of range for {target.name}")
            return parsed
        if kind is float:
            return _number_to(float(text), target)
        if kind is BigInteger:
            return BigInteger(int(text))
        if kind is Decimal:
            return Decimal(text)
    except (ValueError, InvalidOperation):
        raise _fail(text, target) from None
    raise _fail(text, target)


def coerce_to_number(value, target=None):
    """Coerces to a number; without a target, parses strings as integer or float."""
    if target is None:
        if value is None:
            return 0
        if is_number(value):
            return value
        text = coerce_to_string(value)
        if is_string_float(text):
            return to_float(text)
        return to_number(text)
    if value is None or value == "":
        return _number_to(0, target)
    if isinstance(value, str) and not isinstance(value, Char):
        return _string_to(value, target)
    if is_number(value):
        if type(value) is target:
            return value
        return _number_to(value, target)
    if isinstance(value, Char):
        return _number_to(SHORT.narrow(ord(value)), target)
    raise _fail(value, target)


def coerce_to_array(value, target, legacy=False, context=None):
    if not isinstance(value, (list, tuple)):
        raise _fail(value, target)
    et = element_type(target)
    return [coerce_to_type(v, et, legacy, context) for v in value]


# =================================================================
# Lambda adaptation onto single-method interfaces
# =================================================================

_ADAPTERS: Dict[type, type] = {}


def single_abstract_method(target) -> Optional[str]:
    """Name of the one method an interface requires, or None."""
    if not inspect.isclass(target):
        return None
    abstract = getattr(target, '__abstractmethods__', None)
    if abstract:
        names = [n for n in abstract if n not in ('__eq__', '__hash__', '__repr__', '__str__')]
        return names[0] if len(names) == 1 else None
    if getattr(target, '_is_protocol', False):
        names = [n for n, v in vars(target).items() if not n.startswith('_') and callable(v)]
        return names[0] if len(names) == 1 else None
    return None


def _adapter_class(target, method_name):
    klass = _ADAPTERS.get(target)
    if klass is not None:
        return klass

    def __init__(self, lam, context):
        self._lambda = lam
        self._context = context

    def forward(self, *args):
        return self._lambda.invoke(self._context, *args)

    def _rebind_context(self, context):
        self._context = context

    def __repr__(self):
        return f"<{target.__name__} adapter for {self._lambda!r}>"

    klass = type(f"{target.__name__}LambdaAdapter", (target,), {
        '__init__': __init__,
        method_name: forward,
        '_rebind_context': _rebind_context,
        '__repr__': __repr__,
    })
    _ADAPTERS[target] = klass
    return klass


def coerce_lambda_to_interface(lam, target, context=None):
    method_name = single_abstract_method(target)
    if method_name is None:
        raise _fail(lam, target)
    return _adapter_class(target, method_name)(lam, context)


# =================================================================
# The ladder
# =================================================================

def coerce_to_type(value, target, legacy: bool = False, context=None):
    """Converts ``value`` to ``target`` or raises CoercionError."""
    from elx.elx_interpreter import LambdaExpression
    target = normalize_type(target) if target is not None else object
    if target is object or (not is_primitive(target) and value is not None and is_instance_of(value, target)):
        return value

    if not legacy and value is None and not is_primitive(target) and target is not str:
        return None

    if target is str:
        return coerce_to_string(value)

    if is_number_type(target):
        return coerce_to_number(value, target)

    if target is CHAR or target is Char:
        return coerce_to_character(value)

    if target is BOOLEAN or target is bool:
        return coerce_to_boolean(value)

    if isinstance(target, type) and issubclass(target, Enum):
        return coerce_to_enum(value, target)

    if value is None:
        return None

    if isinstance(value, str):
        if value == "":
            return None
        editor = find_property_editor(target)
        if editor is not None:
            try:
                return editor(value)
            except (ValueError, TypeError) as e:
                raise _fail(value, target) from e

    if is_array(target):
        return coerce_to_array(value, target, legacy, context)

    if isinstance(value, LambdaExpression) and single_abstract_method(target) is not None:
        return coerce_lambda_to_interface(value, target, context)

    raise _fail(value, target)


# =================================================================
# Comparison and equality
# =================================================================

def is_decimal_op(a, b) -> bool:
    return isinstance(a, Decimal) or isinstance(b, Decimal)


def is_double_op(a, b) -> bool:
    return isinstance(a, float) or isinstance(b, float)


def is_big_integer_op(a, b) -> bool:
    return (isinstance(a, int) and not isinstance(a, bool) and is_big_integer(a)) or \
           (isinstance(b, int) and not isinstance(b, bool) and is_big_integer(b))


def _is_long_member(x) -> bool:
    return (isinstance(x, int) and not isinstance(x, bool)) or isinstance(x, Char)


def is_long_op(a, b) -> bool:
    return _is_long_member(a) or _is_long_member(b)


def _ordered(x) -> bool:
    return x is not None and getattr(type(x), '__lt__', None) is not object.__lt__


def _cmp(a, b) -> int:
    try:
        if a < b:
            return -1
        if b < a:
            return 1
    except InvalidOperation as e:
        raise ELError(f"Cannot compare [{a!r}] and [{b!r}]") from e
    return 0


def compare(a, b) -> int:
    if a is b or equals(a, b):
        return 0
    if is_decimal_op(a, b):
        return _cmp(coerce_to_number(a, Decimal), coerce_to_number(b, Decimal))
    if is_double_op(a, b):
        return _cmp(coerce_to_number(a, float), coerce_to_number(b, float))
    if is_big_integer_op(a, b):
        return _cmp(coerce_to_number(a, BigInteger), coerce_to_number(b, BigInteger))
    if is_long_op(a, b):
        return _cmp(coerce_to_number(a, LONG), coerce_to_number(b, LONG))
    if isinstance(a, str) or isinstance(b, str):
        return _cmp(coerce_to_string(a), coerce_to_string(b))
    try:
        if _ordered(a):
            return _cmp(a, b) if b is not None else 1
        if _ordered(b):
            return -_cmp(b, a) if a is not None else -1
    except TypeError as e:
        raise ELError(f"Cannot compare [{a!r}] and [{b!r}]") from e
    raise ELError(f"Cannot compare [{a!r}] and [{b!r}]")


def equals(a, b) -> bool:
    if a is b:
        return True
    if a is None or b is None:
        return False
    if is_decimal_op(a, b):
        x, y = coerce_to_number(a, Decimal), coerce_to_number(b, Decimal)
        # Scale counts: 1.0 and 1.00 differ
        return x == y and x.as_tuple().exponent == y.as_tuple().exponent
    if is_double_op(a, b):
        return coerce_to_number(a, float) == coerce_to_number(b, float)
    if is_big_integer_op(a, b):
        return coerce_to_number(a, BigInteger) == coerce_to_number(b, BigInteger)
    if is_long_op(a, b):
        return coerce_to_number(a, LONG) == coerce_to_number(b, LONG)
    if isinstance(a, bool) or isinstance(b, bool):
        return coerce_to_boolean(a) == coerce_to_boolean(b)
    if isinstance(a, Enum):
        return a == coerce_to_enum(b, type(a))
    if isinstance(b, Enum):
        return b == coerce_to_enum(a, type(b))
    if isinstance(a, str) or isinstance(b, str):
        return coerce_to_string(a) == coerce_to_string(b)
    return a == b


# =================================================================
# Numeric text helpers
# =================================================================

def is_string_float(text: str) -> bool:
    if len(text) > 1:
        for ch in text:
            if ch in ('E', 'e', '.'):
                return True
    return False


def to_float(text: str):
    try:
        value = float(text)
    except ValueError:
        try:
            return Decimal(text)
        except InvalidOperation:
            raise _fail(text, float) from None
    if math.isinf(value) and text.strip().lower() not in ('inf', '-inf', 'infinity', '-infinity'):
        return Decimal(text)
    return value


def to_number(text: str):
    try:
        value = int(text)
    except ValueError:
        raise _fail(text, int) from None
    if LONG.narrow(value) != value:
        return BigInteger(value)
    return value


def is_empty(value) -> bool:
    """Emptiness test behind the ``empty`` operator."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    if hasattr(value, '__len__') and not isinstance(value, numbers.Number):
        return len(value) == 0
    return False
