"""
Host type vocabulary shared by coercion, overload resolution and persistence.

Python classes stand for boxed host types (``int``, ``float``, ``bool``,
``str``, ``Decimal``, ``BigInteger``, enums, user classes). Primitive kinds,
which coerce ``None`` to a zero value and narrow numbers to a fixed width,
are described by ``Primitive`` instances. Arrays are spelled ``list[T]``.
"""
import builtins
import importlib
import inspect
import math
import numbers
import struct
import typing
from decimal import Decimal
from typing import Any, Optional

from elx.elx_errors import ELError


class BigInteger(int):
    """An integer that must be handled with arbitrary precision."""
    def __repr__(self):
        return f"BigInteger({int(self)})"


class Char(str):
    """A single 16-bit code unit."""
    def __new__(cls, value=""):
        value = str(value)
        if len(value) != 1:
            raise ValueError(f"Char requires exactly one character, got {value!r}")
        return super().__new__(cls, value)

    def __repr__(self):
        return f"Char({str.__repr__(self)})"


def _saturate(number, bits: int) -> int:
    if number != number:
        return 0
    low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if isinstance(number, Decimal) and number.is_finite():
        return int(number)
    if number >= high:
        return high
    if number <= low:
        return low
    return int(number)


class Primitive:
    """A primitive (unboxed) host type: non-nullable, possibly fixed width."""
    def __init__(self, name: str, box: type, zero: Any, bits: Optional[int] = None):
        self.name = name
        self.box = box
        self.zero = zero
        self.bits = bits

    def narrow(self, number):
        """Converts a Python number to this primitive's width.

        Floating values saturate at the int range (long for LONG) before any
        further narrowing; NaN becomes 0.
        """
        if self.box is float:
            if self.bits == 32:
                try:
                    return struct.unpack('f', struct.pack('f', float(number)))[0]
                except OverflowError:
                    return math.copysign(math.inf, float(number))
            return float(number)
        if isinstance(number, (float, Decimal)):
            value = _saturate(number, 64 if self.bits == 64 else 32)
        else:
            value = int(number)
        if self.bits is None:
            return value
        mask = (1 << self.bits) - 1
        value &= mask
        if value >> (self.bits - 1):
            value -= 1 << self.bits
        return value

    def __repr__(self):
        return f"<primitive {self.name}>"


BOOLEAN = Primitive('boolean', bool, False)
CHAR = Primitive('char', Char, Char('\x00'), 16)
BYTE = Primitive('byte', int, 0, 8)
SHORT = Primitive('short', int, 0, 16)
INT = Primitive('int', int, 0, 32)
LONG = Primitive('long', int, 0, 64)
FLOAT = Primitive('float', float, 0.0, 32)
DOUBLE = Primitive('double', float, 0.0, 64)

PRIMITIVES = {p.name: p for p in (BOOLEAN, CHAR, BYTE, SHORT, INT, LONG, FLOAT, DOUBLE)}

LONG_MIN = -(1 << 63)
LONG_MAX = (1 << 63) - 1


def is_primitive(t) -> bool:
    return isinstance(t, Primitive)


def box(t):
    """Returns the boxed class for a primitive, or the type unchanged."""
    if isinstance(t, Primitive):
        return t.box
    return t


def is_array(t) -> bool:
    return typing.get_origin(t) is list


def element_type(t):
    args = typing.get_args(t)
    return normalize_type(args[0]) if args else object


def array_of(t):
    return list[t]


def normalize_type(t):
    """Maps annotations onto the vocabulary: Optional[X] -> X, Any -> object."""
    if t is None or t is inspect.Parameter.empty or t is Any:
        return object
    if isinstance(t, str):
        # Unresolvable forward reference
        return object
    origin = typing.get_origin(t)
    if origin is typing.Union:
        args = [a for a in typing.get_args(t) if a is not type(None)]
        if len(args) == 1:
            return normalize_type(args[0])
        return object
    if origin is list:
        return list[element_type(t)]
    return t


def is_number(value) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def is_number_class(t) -> bool:
    return isinstance(t, type) and issubclass(t, numbers.Number) and not issubclass(t, bool)


def is_big_integer(value) -> bool:
    if isinstance(value, BigInteger):
        return True
    return type(value) is int and not (LONG_MIN <= value <= LONG_MAX)


def is_instance_of(value, t) -> bool:
    """Python isinstance with host rules: bool is not a number, list[T] checks elements."""
    t = normalize_type(t)
    if t is object:
        return True
    if value is None:
        return False
    if isinstance(t, Primitive):
        return is_instance_of(value, t.box)
    if is_array(t):
        if not isinstance(value, list):
            return False
        et = element_type(t)
        return all(v is None or is_instance_of(v, et) for v in value)
    if isinstance(value, bool) and t is not bool and is_number_class(t):
        return False
    try:
        return isinstance(value, t)
    except TypeError:
        return False


def is_assignable(param, arg) -> bool:
    """True when an argument of class ``arg`` may be passed where ``param`` is declared.

    ``arg`` of None stands for a null argument and is assignable to anything.
    """
    if arg is None:
        return True
    param = box(normalize_type(param))
    arg = box(arg)
    if param is object:
        return True
    if is_array(param):
        if not is_array(arg):
            return False
        pe, ae = element_type(param), element_type(arg)
        if pe == ae:
            return True
        if is_primitive(pe) or is_primitive(ae):
            return False
        return is_assignable(pe, ae)
    if is_array(arg):
        arg = list
    if not isinstance(param, type) or not isinstance(arg, type):
        return param == arg
    if issubclass(arg, bool) and param is not bool and is_number_class(param):
        return False
    try:
        return issubclass(arg, param)
    except TypeError:
        return False


def type_of(value):
    """The class used to describe a live argument in overload resolution."""
    if value is None:
        return None
    return type(value)


def type_name(t) -> str:
    if t is None:
        return ""
    if isinstance(t, Primitive):
        return t.name
    if is_array(t):
        return type_name(element_type(t)) + "[]"
    return f"{t.__module__}.{t.__qualname__}"


def type_for_name(name: str):
    """Reverses type_name. Bare names fall back to builtins."""
    if not name:
        return None
    if name in PRIMITIVES:
        return PRIMITIVES[name]
    if name.endswith("[]"):
        return list[type_for_name(name[:-2])]
    if "." not in name:
        found = getattr(builtins, name, None)
        if isinstance(found, type):
            return found
        raise ELError(f"Class not found: {name}")
    parts = name.split(".")
    for i in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:i])
        try:
            obj = importlib.import_module(module_name)
        except ImportError:
            continue
        try:
            for attr in parts[i:]:
                obj = getattr(obj, attr)
        except AttributeError:
            continue
        return obj
    raise ELError(f"Class not found: {name}")


def is_public_class(t) -> bool:
    return isinstance(t, type) and not t.__name__.startswith("_")


def zero_of(t):
    if isinstance(t, Primitive):
        return t.zero
    return None


__all__ = [
    'BigInteger', 'Char', 'Primitive', 'Decimal',
    'BOOLEAN', 'CHAR', 'BYTE', 'SHORT', 'INT', 'LONG', 'FLOAT', 'DOUBLE', 'PRIMITIVES',
    'is_primitive', 'box', 'is_array', 'element_type', 'array_of', 'normalize_type',
    'is_number', 'is_number_class', 'is_big_integer', 'is_instance_of', 'is_assignable',
    'type_of', 'type_name', 'type_for_name', 'is_public_class', 'zero_of',
]
