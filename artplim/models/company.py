import uuid
from datetime import datetime

from sqlmodel import SQLModel, Field

from ..core.money import utcnow
from .types import UTCTimestamp


class Company(SQLModel, table=True):
    __tablename__ = "companies"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    name: str = Field(max_length=200)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCTimestamp)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCTimestamp)
