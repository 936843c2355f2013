import pytest

from familywallet.core.errors import InvalidAmount
from familywallet.core.use_cases.units import format_units, parse_units, validate_amount


@pytest.mark.parametrize("amount,decimals,expected", [
    ("1.5", 6, 1_500_000),
    ("5", 6, 5_000_000),
    ("0", 18, 0),
    (".25", 2, 25),
    ("7.", 2, 700),
    ("0.000001", 6, 1),
    ("123", 0, 123),
    ("1.000000000000000001", 18, 10**18 + 1),
])
def test_parse_units(amount, decimals, expected):
    assert parse_units(amount, decimals) == expected


@pytest.mark.parametrize("amount", ["", ".", "-1", "+1", "1e3", " 1", "1,5", "abc", "1.2.3", "0x10", "١"])
def test_parse_units_rejects_malformed(amount):
    with pytest.raises(InvalidAmount):
        parse_units(amount, 6)


def test_parse_units_rejects_excess_precision():
    with pytest.raises(InvalidAmount):
        parse_units("1.0000001", 6)
    with pytest.raises(InvalidAmount):
        parse_units("0.5", 0)


def test_format_units():
    assert format_units(12_340_000, 6) == "12.34"
    assert format_units(0, 18) == "0"
    assert format_units(5 * 10**18, 18) == "5"
    assert format_units(1, 18) == "0.000000000000000001"
    assert format_units(250, 2) == "2.5"


def test_format_parse_round_trip_is_exact():
    for decimals in (0, 2, 6, 8, 18):
        for value in (0, 1, 9, 10**decimals, 10**decimals + 1, 123456789012345678901234567890):
            assert parse_units(format_units(value, decimals), decimals) == value


@pytest.mark.parametrize("amount", ["1", "1.5", ".5", "7.", "1.0000000000000000000000001"])
def test_validate_amount_accepts_any_precision(amount):
    validate_amount(amount)


@pytest.mark.parametrize("amount", ["", ".", "-1", "1e3", "abc", None])
def test_validate_amount_rejects_malformed(amount):
    with pytest.raises(InvalidAmount):
        validate_amount(amount)
