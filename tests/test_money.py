from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from artplim.core.money import is_date_only, parse_timestamp, to_decimal, to_wire


def test_to_decimal_keeps_cents_exact():
    assert to_decimal(0.1) == Decimal("0.10")
    assert str(to_decimal(0.1)) == "0.10"
    assert to_decimal("150") == Decimal("150.00")
    assert to_decimal(7) == Decimal("7.00")


def test_to_decimal_rounds_half_up():
    # 2.675 is 2.67499999... as a binary float; going through str() keeps it at 2.675
    assert to_decimal(2.675) == Decimal("2.68")
    assert to_decimal(Decimal("0.005")) == Decimal("0.01")


@pytest.mark.parametrize("bad", ["abc", "NaN", "Infinity", float("inf"), True, None, "1e40"])
def test_to_decimal_rejects_non_amounts(bad):
    with pytest.raises(ValueError):
        to_decimal(bad)


def test_to_wire_is_fixed_two_places():
    assert to_wire(Decimal("150")) == "150.00"
    assert to_wire(Decimal("0.1")) == "0.10"


def test_parse_date_only_is_midnight_utc():
    assert parse_timestamp("2024-01-10") == datetime(2024, 1, 10, 0, 0, tzinfo=timezone.utc)
    assert parse_timestamp(date(2024, 1, 10)) == datetime(2024, 1, 10, 0, 0, tzinfo=timezone.utc)


def test_parse_timestamp_normalizes_to_aware_utc():
    assert parse_timestamp("2024-01-10T03:00:00Z") == datetime(2024, 1, 10, 3, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-10T03:00:00-03:00") == datetime(2024, 1, 10, 6, 0, tzinfo=timezone.utc)
    assert parse_timestamp(datetime(2024, 1, 10, 12, 30)) == datetime(2024, 1, 10, 12, 30, tzinfo=timezone.utc)


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("10/01/2024")
    with pytest.raises(ValueError):
        parse_timestamp(12345)


def test_is_date_only():
    assert is_date_only("2024-01-10")
    assert is_date_only(date(2024, 1, 10))
    assert not is_date_only("2024-01-10T00:00:00Z")
    assert not is_date_only(datetime(2024, 1, 10))
    assert not is_date_only(20240110)
