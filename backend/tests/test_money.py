import pytest
from decimal import Decimal
from fractions import Fraction

from exceptions import CurrencyMismatch
from utils.money import Money, sum_money


def test_amount_must_be_integer_minor_units():
    with pytest.raises(TypeError):
        Money(12.5, "INR")
    with pytest.raises(TypeError):
        Money(True, "INR")


def test_from_decimal_rounds_half_up():
    assert Money.from_decimal("12.345", "INR") == Money(1235, "INR")
    assert Money.from_decimal(0.1, "USD") == Money(10, "USD")
    assert Money.from_decimal("1500", "JPY") == Money(1500, "JPY")
    assert Money(1235, "INR").to_decimal() == Decimal("12.35")


def test_add_and_subtract_same_currency():
    assert Money(150, "INR") + Money(50, "INR") == Money(200, "INR")
    assert Money(150, "INR") - Money(200, "INR") == Money(-50, "INR")
    assert sum_money([Money(1, "INR"), Money(2, "INR")], "INR") == Money(3, "INR")


def test_mixed_currencies_are_rejected():
    with pytest.raises(CurrencyMismatch) as exc_info:
        Money(100, "INR") + Money(100, "USD")
    assert exc_info.value.identifiers == {"left_currency": "INR", "right_currency": "USD"}

    with pytest.raises(CurrencyMismatch):
        Money(100, "INR") < Money(100, "USD")


def test_multiply_by_quantity():
    assert Money(250, "INR").multiply_by_quantity(3) == Money(750, "INR")
    with pytest.raises(TypeError):
        Money(250, "INR").multiply_by_quantity(1.5)


def test_allocate_equal_gives_remainder_to_earliest():
    shares = Money(10000, "INR").allocate([1, 1, 1])
    assert [s.amount for s in shares] == [3334, 3333, 3333]


def test_allocate_proportional_weights():
    shares = Money(100, "INR").allocate([3, 1])
    assert [s.amount for s in shares] == [75, 25]

    shares = Money(100, "INR").allocate([1, 2, 0])
    assert [s.amount for s in shares] == [33, 67, 0]


def test_allocate_residual_goes_to_heaviest_weight_first():
    shares = Money(10, "INR").allocate([1, 2])
    # floor(10/3)=3, floor(20/3)=6, residual 1 goes to the weight-2 share
    assert [s.amount for s in shares] == [3, 7]


def test_allocate_accepts_fractions():
    shares = Money(100, "INR").allocate([Fraction(1, 3), Fraction(2, 3)])
    assert [s.amount for s in shares] == [33, 67]


def test_allocate_is_deterministic_and_non_negative():
    for amount in (0, 1, 7, 999, 10001):
        for weights in ([1], [1, 1], [5, 0, 3], [2, 7, 7, 1]):
            first = Money(amount, "INR").allocate(weights)
            second = Money(amount, "INR").allocate(weights)
            assert first == second
            assert sum(s.amount for s in first) == amount
            assert all(s.amount >= 0 for s in first)


def test_allocate_negative_amount_mirrors_positive():
    shares = Money(-10, "INR").allocate([1, 1, 1])
    assert [s.amount for s in shares] == [-4, -3, -3]


@pytest.mark.parametrize("weights", [[], [0, 0], [1, -1]])
def test_allocate_rejects_bad_weights(weights):
    with pytest.raises(ValueError):
        Money(100, "INR").allocate(weights)


def test_str_formats_with_symbol():
    assert str(Money(123456, "INR")) == "₹1234.56"
    assert str(Money(-5, "USD")) == "-$0.05"
    assert str(Money(500, "JPY")) == "¥500"
