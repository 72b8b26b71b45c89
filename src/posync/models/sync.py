"""Sync bookkeeping models. These live in the local store only."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from posync.models.base import utcnow


class SyncMetadata(SQLModel, table=True):
    """Watermark and counters for one tracked table."""

    __tablename__ = "sync_metadata"

    id: Optional[int] = Field(default=None, primary_key=True)
    table_name: str = Field(unique=True, index=True)
    last_sync_at: Optional[datetime] = None
    # Per-direction scan cutoffs; last_sync_at is the latest of the two
    last_push_at: Optional[datetime] = None
    last_pull_at: Optional[datetime] = None
    sync_version: int = 0
    conflict_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class QueuedChange(SQLModel, table=True):
    """
    A write recorded at commit time so the next push pass can see it.

    Pending entries are unique per (table_name, record_id): a newer write
    replaces the older pending entry in place.
    """

    __tablename__ = "sync_queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    operation: str  # "create", "update", "delete"
    table_name: str = Field(index=True)
    record_id: str = Field(index=True)
    payload_json: Optional[str] = None  # None for deletes
    enqueued_at: datetime = Field(default_factory=utcnow)
    consumed_at: Optional[datetime] = Field(default=None, index=True)


class SyncRun(SQLModel, table=True):
    """Records each orchestrator invocation for audit and debugging."""

    __tablename__ = "sync_run"

    id: Optional[int] = Field(default=None, primary_key=True)
    direction: str  # "push", "pull", "both"
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "partial", "error"
    tables_processed: int = 0
    records_synced: int = 0
    conflicts: int = 0
    error_message: Optional[str] = None
