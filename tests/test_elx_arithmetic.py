import math
from decimal import Decimal

import pytest

from elx.elx_arithmetic import add, subtract, multiply, divide, mod, negate
from elx.elx_errors import ELError
from elx.elx_types import BigInteger


def test_integer_ops():
    assert add(1, 2) == 3
    assert subtract(1, 5) == -4
    assert multiply(6, 7) == 42
    assert add(None, None) == 0
    assert add(None, 5) == 5


def test_string_operands_are_numbers():
    assert add("1", "2") == 3
    assert add("1.5", 1) == 2.5
    assert multiply("3", 4.0) == 12.0


def test_decimal_promotion():
    result = add(Decimal("1.1"), 1)
    assert isinstance(result, Decimal)
    assert result == Decimal("2.1")


def test_big_integer_promotion():
    result = add(2 ** 64, 1)
    assert isinstance(result, BigInteger)
    assert result == 2 ** 64 + 1
    # No 64-bit wraparound on plain integers
    assert add(2 ** 63 - 1, 1) == 2 ** 63


def test_divide():
    assert divide(1, 2) == 0.5
    assert divide(10, 4) == 2.5
    assert divide(1, 0) == math.inf
    assert divide(-1, 0) == -math.inf
    assert math.isnan(divide(0, 0))
    assert divide(None, None) == 0


def test_decimal_divide_keeps_scale():
    assert divide(Decimal("1.0"), 3) == Decimal("0.3")
    assert divide(Decimal("10"), 4) == Decimal("3")
    with pytest.raises(ELError):
        divide(Decimal("1"), 0)


def test_mod_truncates_toward_zero():
    assert mod(7, 3) == 1
    assert mod(-7, 3) == -1
    assert mod(7, -3) == 1
    assert mod(7.5, 2) == 1.5
    assert math.isnan(mod(1.0, 0))
    assert math.isnan(mod(math.inf, 3))
    assert math.isnan(mod(Decimal("1e400"), BigInteger(99999999999999999999)))
    assert mod(5.0, math.inf) == 5.0
    with pytest.raises(ELError):
        mod(1, 0)


def test_negate():
    assert negate(3) == -3
    assert negate("2") == -2
    assert negate("1.5") == -1.5
    assert negate(None) == 0
    assert negate(Decimal("1.25")) == Decimal("-1.25")
    assert isinstance(negate(BigInteger(2 ** 70)), BigInteger)
    with pytest.raises(ELError):
        negate(object())
