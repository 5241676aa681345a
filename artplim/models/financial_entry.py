import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlmodel import SQLModel, Field

from ..core.money import utcnow
from .types import Money, UTCTimestamp


DEFAULT_CATEGORY = "General"


class EntryType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class EntryStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class FinancialEntry(SQLModel, table=True):
    __tablename__ = "financial_entries"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    company_id: uuid.UUID = Field(foreign_key="companies.id", index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)

    type: EntryType = Field(index=True)
    status: EntryStatus = Field(default=EntryStatus.PENDING, index=True)
    category: str = Field(default=DEFAULT_CATEGORY, max_length=100)

    amount: Decimal = Field(sa_type=Money, max_digits=18, decimal_places=2)
    description: str = Field(max_length=500)

    due_date: datetime = Field(index=True, sa_type=UTCTimestamp)
    paid_date: Optional[datetime] = Field(default=None, sa_type=UTCTimestamp)

    # Free-form key of the quote, order or purchase this entry came from
    reference: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=1000)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCTimestamp)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCTimestamp)
