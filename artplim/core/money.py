"""Money and timestamp normalization shared by the DTOs and the repository.

Amounts are kept as ``Decimal`` with two places from the wire to the
database. Timestamps are aware UTC datetimes everywhere in the code; the
column type decides how a given database stores them.
"""
import re
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENTS = Decimal("0.01")

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MoneyLike = Union[Decimal, int, str, float]
TimestampLike = Union[datetime, date, str]


def to_decimal(value: MoneyLike) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("Amount must be a number, not a boolean")
    if isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 stays 0.1 and not 0.1000000000000000055...
        value = str(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {value!r}")
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as e:
        # quantize overflows the context precision for very large values
        raise ValueError(f"Invalid amount: {value!r}") from e


def to_wire(amount: Decimal) -> str:
    return str(to_decimal(amount))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_date_only(value: TimestampLike) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        return bool(_DATE_ONLY_RE.match(value.strip()))
    return False


def parse_timestamp(value: TimestampLike) -> datetime:
    """Convert a date, datetime or ISO-8601 string into an aware UTC datetime.

    - ``date`` and ``"YYYY-MM-DD"`` become midnight UTC of that day.
    - Aware datetimes are shifted to UTC; naive ones are taken as UTC.
    - A trailing ``Z`` is accepted as ``+00:00``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    elif isinstance(value, str):
        raw = value.strip()
        if _DATE_ONLY_RE.match(raw):
            return datetime.combine(date.fromisoformat(raw), time.min, tzinfo=timezone.utc)
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    else:
        raise ValueError(f"Invalid date: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
