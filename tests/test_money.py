from decimal import Decimal

import pytest

from basket_pricing.engine.money import Money, currency_exponent, round_half_up, sum_money


def test_of_parses_major_units():
    m = Money.of("19.99", "usd")
    assert m.minor == 1999
    assert m.currency == "USD"
    assert m.amount == Decimal("19.99")


def test_of_rounds_excess_precision_half_up():
    assert Money.of("1.005", "USD").minor == 101
    assert Money.of("1.004", "USD").minor == 100


def test_currency_exponents():
    assert currency_exponent("JPY") == 0
    assert currency_exponent("KWD") == 3
    assert currency_exponent("EUR") == 2
    assert Money.of("500", "JPY").format() == "JPY 500"
    assert Money.of("1.234", "KWD").minor == 1234
    assert Money(1999, "USD").format() == "USD 19.99"


def test_float_amounts_are_rejected():
    with pytest.raises(TypeError):
        Money.of(19.99, "USD")
    with pytest.raises(TypeError):
        Money(19.99, "USD")


def test_arithmetic_requires_same_currency():
    assert (Money(100, "USD") + Money(50, "USD")).minor == 150
    assert (Money(100, "USD") - Money(150, "USD")).minor == -50
    assert (Money(250, "USD") * 3).minor == 750
    with pytest.raises(ValueError):
        Money(100, "USD") + Money(100, "EUR")


def test_percentage_rounds_half_up():
    assert Money(1005, "USD").percentage(10).minor == 101
    assert Money(10000, "USD").percentage(Decimal("9.975")).minor == 998
    assert Money(1000, "USD").percentage(0).minor == 0


def test_round_half_up_away_from_zero():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("-2.5")) == -3
    assert round_half_up(Decimal("2.49")) == 2


def test_allocate_sums_exactly_and_favours_earlier_parts():
    parts = Money(100, "USD").allocate([1, 1, 1])
    assert [p.minor for p in parts] == [34, 33, 33]
    assert sum(p.minor for p in parts) == 100


def test_allocate_pro_rata():
    parts = Money(1000, "USD").allocate([6000, 3000, 1000])
    assert [p.minor for p in parts] == [600, 300, 100]


def test_allocate_negative_and_zero_weights():
    assert [p.minor for p in Money(-100, "USD").allocate([1, 1, 1])] == [-34, -33, -33]
    assert [p.minor for p in Money(100, "USD").allocate([0, 0])] == [0, 0]
    with pytest.raises(ValueError):
        Money(100, "USD").allocate([1, -1])


def test_min_max_and_sum():
    a, b = Money(300, "USD"), Money(200, "USD")
    assert a.min(b) == b
    assert a.max(b) == a
    assert sum_money([a, b], "USD").minor == 500
    assert sum_money([], "USD") == Money.zero("USD")
