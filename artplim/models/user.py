import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel, Field

from ..core.money import utcnow
from .types import UTCTimestamp


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    VIEWER = "VIEWER"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    company_id: uuid.UUID = Field(
        foreign_key="companies.id",
        index=True
    )

    email: str = Field(index=True, unique=True)
    name: str = Field(max_length=200)
    hashed_password: str
    role: UserRole = Field(default=UserRole.VIEWER)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCTimestamp)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCTimestamp)
    deleted_at: Optional[datetime] = Field(default=None, sa_type=UTCTimestamp)
