import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import field_validator, model_validator
from sqlmodel import Field, SQLModel

from ..core.money import is_date_only, parse_timestamp, to_decimal
from ..models.financial_entry import EntryStatus, EntryType


# ─────────────────────────────
#   INPUT
# ─────────────────────────────

def _money_or_none(v):
    if v is None:
        return None
    return to_decimal(v)


def _timestamp_or_none(v):
    if v is None:
        return None
    return parse_timestamp(v)


class TransactionCreate(SQLModel):
    """Payload for a new entry. There is no status field: new entries are always PENDING."""

    type: EntryType
    category: Optional[str] = Field(default=None, max_length=100)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    description: str = Field(min_length=1, max_length=500)
    due_date: datetime
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    reference: Optional[str] = Field(default=None, max_length=100)

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, v):
        return _money_or_none(v)

    @field_validator("due_date", "paid_date", mode="before")
    @classmethod
    def normalize_dates(cls, v):
        return _timestamp_or_none(v)


# Fields the store cannot hold as NULL; sending them as null is not "clear this field".
_NOT_NULLABLE = ("type", "status", "category", "amount", "description", "due_date")


class TransactionUpdate(SQLModel):
    """Partial update. Only the keys actually sent are applied (see ``changes``)."""

    type: Optional[EntryType] = None
    status: Optional[EntryStatus] = None
    category: Optional[str] = Field(default=None, max_length=100)
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=18, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    due_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    reference: Optional[str] = Field(default=None, max_length=100)

    @field_validator("amount", mode="before")
    @classmethod
    def normalize_amount(cls, v):
        return _money_or_none(v)

    @field_validator("due_date", "paid_date", mode="before")
    @classmethod
    def normalize_dates(cls, v):
        return _timestamp_or_none(v)

    @model_validator(mode="after")
    def reject_null_required(self):
        for name in _NOT_NULLABLE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class TransactionPay(SQLModel):
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("paid_date", mode="before")
    @classmethod
    def normalize_paid_date(cls, v):
        return _timestamp_or_none(v)


class SortField(str, enum.Enum):
    due_date = "due_date"
    paid_date = "paid_date"
    amount = "amount"
    description = "description"
    created_at = "created_at"


class SortOrder(str, enum.Enum):
    asc = "asc"
    desc = "desc"


class TransactionFilters(SQLModel):
    type: Optional[EntryType] = None
    status: Optional[EntryStatus] = None
    # A bare date keeps its type so the upper bound can cover the whole day.
    start_date: Optional[Union[datetime, date]] = None
    end_date: Optional[Union[datetime, date]] = None
    min_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=18, decimal_places=2)
    max_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=18, decimal_places=2)
    search: Optional[str] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: SortField = SortField.due_date
    sort_order: SortOrder = SortOrder.desc

    @field_validator("min_amount", "max_amount", mode="before")
    @classmethod
    def normalize_bounds(cls, v):
        return _money_or_none(v)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def date_or_timestamp(cls, v):
        if v is None:
            return None
        if is_date_only(v):
            return parse_timestamp(v).date()
        return parse_timestamp(v)


# ─────────────────────────────
#   OUTPUT
# ─────────────────────────────

class TransactionResponse(SQLModel):
    id: uuid.UUID
    type: EntryType
    status: EntryStatus
    category: str
    category_name: str
    category_color: str
    account_id: str
    account_name: str
    amount: Decimal
    description: str
    due_date: datetime
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None
    reference: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: str
    installments: int
    current_installment: int
    tags: List[str] = []
    attachments: List[str] = []
    payment_method: str
    user_id: uuid.UUID
    company_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class TransactionPage(SQLModel):
    entries: List[TransactionResponse]
    total: int
    total_pages: int
    page: int
    limit: int


class CategoryTotal(SQLModel):
    category_name: str
    amount: Decimal
    percentage: Decimal


class FinancialStats(SQLModel):
    total_income: Decimal
    total_expense: Decimal
    net_income: Decimal
    pending_income: Decimal
    pending_expense: Decimal
    overdue_income: Decimal
    overdue_expense: Decimal
    entries_this_month: int
    income_this_month: Decimal
    expense_this_month: Decimal
    top_income_categories: List[CategoryTotal]
    top_expense_categories: List[CategoryTotal]


class CashFlowPoint(SQLModel):
    day: date
    income: Decimal
    expense: Decimal
    balance: Decimal
    cumulative_balance: Decimal
