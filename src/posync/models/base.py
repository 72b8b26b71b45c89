"""Shared columns for every table that takes part in local/remote sync."""
import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC now. Both stores hold naive UTC timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class TrackedRecord(SQLModel):
    """
    Base for tracked tables.

    `id` has the same meaning on the local and remote store. `updated_at`
    must advance on every mutation; it is the only input to conflict
    resolution.
    """

    id: str = Field(default_factory=new_id, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, index=True)
