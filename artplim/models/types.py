"""Column types shared by the table models.

``Money`` keeps amounts exact on every backend: NUMERIC(18, 2) where the
database has a real decimal type, integer cents on SQLite (whose NUMERIC
affinity falls back to REAL).

``UTCTimestamp`` accepts aware or naive (taken as UTC) datetimes and always
hands back aware UTC values. SQLite has no zone support, so it stores the
naive UTC wall time.
"""
from datetime import timezone
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Numeric
from sqlalchemy.types import TypeDecorator

from ..core.money import to_decimal


class Money(TypeDecorator):
    impl = Numeric(18, 2)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(18, 2, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        amount = to_decimal(value)
        if dialect.name == "sqlite":
            return int(amount.scaleb(2))
        return amount

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return to_decimal(Decimal(value).scaleb(-2))
        return to_decimal(value)


class UTCTimestamp(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
