"""
Base model classes shared by all tables.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from plankalink.core.time_utils import utc_now


class TimestampMixin(SQLModel):
    """Adds created_at / updated_at columns."""
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
    updated_at: Optional[datetime] = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utc_now},
    )


class BaseModel(TimestampMixin):
    """Base table model with a UUID primary key."""
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
