import datetime
from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum

import pytest

from elx.elx_coerce import coerce_to_type, compare, equals, is_empty, to_number, register_property_editor
from elx.elx_errors import CoercionError, ELError
from elx.elx_runtime import ELProcessor
from elx.elx_types import BigInteger, Char, CHAR, INT, BOOLEAN, LONG, FLOAT


class Color(Enum):
    RED = 1
    GREEN = 2


class Doubler(ABC):
    @abstractmethod
    def apply(self, value):
        ...


class Money:
    def __init__(self, cents):
        self.cents = cents


def test_null_to_boxed_and_primitive():
    assert coerce_to_type(None, int) is None
    assert coerce_to_type(None, INT) == 0
    assert coerce_to_type(None, BOOLEAN) is False
    assert coerce_to_type(None, CHAR) == '\x00'
    assert coerce_to_type(None, str) == ""


def test_legacy_null_coercion():
    assert coerce_to_type(None, int, legacy=True) == 0
    assert coerce_to_type(None, bool, legacy=True) is False


def test_identity_and_object_target():
    value = [1, 2]
    assert coerce_to_type(value, object) is value
    assert coerce_to_type("x", str) == "x"


def test_strings():
    assert coerce_to_type(True, str) == "true"
    assert coerce_to_type(12, str) == "12"
    assert coerce_to_type(Color.RED, str) == "RED"


def test_numbers():
    assert coerce_to_type("42", INT) == 42
    assert coerce_to_type("42", int) == 42
    assert coerce_to_type("", int) == 0
    assert coerce_to_type(3000000000, INT) == -1294967296
    assert coerce_to_type(1.9, int) == 1
    assert coerce_to_type("1.5", Decimal) == Decimal("1.5")
    assert coerce_to_type(2, float) == 2.0
    assert coerce_to_type(Char('A'), int) == 65
    assert coerce_to_type(0.1, FLOAT) != 0.1
    assert coerce_to_type("99999999999999999999", BigInteger) == BigInteger(99999999999999999999)


def test_number_failures():
    with pytest.raises(CoercionError):
        coerce_to_type("3000000000", INT)
    with pytest.raises(CoercionError):
        coerce_to_type("abc", int)
    with pytest.raises(CoercionError):
        coerce_to_type(True, int)


def test_non_finite_floats_to_integer_types():
    assert coerce_to_type(float('nan'), INT) == 0
    assert coerce_to_type(float('inf'), INT) == 2147483647
    assert coerce_to_type(float('-inf'), LONG) == -(1 << 63)
    assert coerce_to_type(1e20, INT) == 2147483647
    assert coerce_to_type(float('inf'), CHAR) == '\uffff'
    assert coerce_to_type(1e300, FLOAT) == float('inf')
    with pytest.raises(CoercionError):
        coerce_to_type(float('inf'), BigInteger)
    with pytest.raises(CoercionError):
        coerce_to_type(float('nan'), Decimal)
    with pytest.raises(CoercionError):
        coerce_to_type(float('nan'), int)


def test_characters():
    assert coerce_to_type("xyz", CHAR) == Char('x')
    assert coerce_to_type(65, Char) == 'A'
    assert coerce_to_type("", CHAR) == '\x00'
    with pytest.raises(CoercionError):
        coerce_to_type(True, Char)


def test_booleans():
    assert coerce_to_type("", bool) is False
    assert coerce_to_type("TRUE", bool) is True
    assert coerce_to_type("yes", bool) is False
    with pytest.raises(CoercionError):
        coerce_to_type(1, bool)


def test_enums():
    assert coerce_to_type("RED", Color) is Color.RED
    assert coerce_to_type("", Color) is None
    with pytest.raises(CoercionError):
        coerce_to_type("PURPLE", Color)


def test_property_editors():
    assert coerce_to_type("2024-01-02", datetime.date) == datetime.date(2024, 1, 2)
    assert coerce_to_type("", datetime.date) is None
    with pytest.raises(CoercionError):
        coerce_to_type("not a date", datetime.date)


def test_registered_property_editor():
    register_property_editor(Money, lambda text: Money(int(text.replace(".", ""))))
    assert coerce_to_type("12.50", Money).cents == 1250


def test_arrays():
    assert coerce_to_type(["1", "2"], list[int]) == [1, 2]
    assert coerce_to_type(("a",), list[str]) == ["a"]
    with pytest.raises(CoercionError):
        coerce_to_type(5, list[int])


def test_lambda_adapts_to_single_method_interface():
    processor = ELProcessor()
    lam = processor.eval("x -> x * 2")
    adapter = coerce_to_type(lam, Doubler)
    assert isinstance(adapter, Doubler)
    assert adapter.apply(4) == 8


def test_unconvertible():
    with pytest.raises(CoercionError) as exc:
        coerce_to_type(object(), Money)
    assert exc.value.target is Money
    assert isinstance(exc.value, ValueError)


def test_compare_numbers_across_types():
    assert compare(1, "1") == 0
    assert compare(1, 2) == -1
    assert compare(Decimal("1.5"), 2) == -1
    assert compare(2.5, "2") == 1
    assert compare(Char('a'), 97) == 0
    assert compare(2 ** 70, 1) == 1


def test_compare_strings_and_natural_order():
    assert compare("a", "b") == -1
    assert compare(datetime.date(2024, 1, 2), datetime.date(2023, 1, 1)) == 1
    with pytest.raises(ELError):
        compare(object(), object())


def test_equals():
    assert equals(1, 1.0)
    assert equals("1", 1)
    assert equals(True, "true")
    assert equals(None, None)
    assert not equals(None, "")
    assert equals(Color.RED, "RED")
    assert equals("abc", "abc")
    assert not equals([1], [2])


def test_decimal_equality_counts_scale():
    assert not equals(Decimal("1.0"), Decimal("1.00"))
    assert equals(Decimal("1.0"), Decimal("1.0"))
    assert equals(Decimal("2"), 2)
    assert compare(Decimal("1.0"), Decimal("1.00")) == 0


def test_decimal_against_non_finite_float():
    with pytest.raises(ELError):
        compare(Decimal("1"), float("nan"))
    with pytest.raises(ELError):
        compare(Decimal("NaN"), Decimal("1"))


def test_integer_text_widening():
    assert to_number("12") == 12
    assert isinstance(to_number(str(2 ** 64)), BigInteger)
    assert coerce_to_type(2 ** 40, LONG) == 2 ** 40


def test_is_empty():
    assert is_empty(None)
    assert is_empty("")
    assert is_empty([])
    assert is_empty({})
    assert not is_empty(0)
    assert not is_empty("a")
    assert not is_empty({1})
