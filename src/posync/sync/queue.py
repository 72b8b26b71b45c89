"""
ChangeQueue: write-time record of changes to tracked tables.

The write path calls enqueue() (through the WriteHook protocol) after every
committed create/update/delete. enqueue() never raises: a queueing problem
must not fail the write the cashier is waiting on. The queue is advisory;
the timestamp diff scan finds creates and updates without it. Deletes are
the exception, since a deleted row leaves nothing for the scan to find.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, update
from sqlmodel import Session, select

from posync.models.base import utcnow
from posync.models.sync import QueuedChange

logger = logging.getLogger(__name__)

OPERATIONS = ("create", "update", "delete")


@dataclass
class QueueStats:
    pending: int = 0
    consumed: int = 0


class ChangeQueue:
    """Persists QueuedChange rows in the local store."""

    def __init__(self, engine):
        self.engine = engine

    # ─── Write path ───────────────────────────────────────────────────────────

    def enqueue(
        self,
        operation: str,
        table_name: str,
        record_id: str,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Record that a row changed. Returns False (and logs) on any failure.

        A pending entry for the same (table, record) is superseded in place,
        so the queue holds at most one pending entry per row.
        """
        try:
            if operation not in OPERATIONS:
                raise ValueError(f"Unknown operation: {operation!r}")
            payload = None
            if operation != "delete" and snapshot is not None:
                payload = json.dumps(snapshot, default=str)

            with Session(self.engine) as s:
                entry = s.exec(
                    select(QueuedChange).where(
                        QueuedChange.table_name == table_name,
                        QueuedChange.record_id == record_id,
                        QueuedChange.consumed_at.is_(None),
                    )
                ).first()
                if entry is None:
                    entry = QueuedChange(
                        operation=operation,
                        table_name=table_name,
                        record_id=record_id,
                    )
                entry.operation = operation
                entry.payload_json = payload
                entry.enqueued_at = utcnow()
                s.add(entry)
                s.commit()
            return True
        except Exception:
            logger.exception(
                "Failed to queue %s of %s/%s for sync", operation, table_name, record_id
            )
            return False

    def after_write(
        self,
        operation: str,
        table_name: str,
        record_id: str,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> None:
        """WriteHook entry point."""
        self.enqueue(operation, table_name, record_id, snapshot)

    # ─── Sync side ────────────────────────────────────────────────────────────

    def pending(self, table_name: Optional[str] = None) -> List[QueuedChange]:
        """Pending entries, oldest first."""
        statement = select(QueuedChange).where(QueuedChange.consumed_at.is_(None))
        if table_name is not None:
            statement = statement.where(QueuedChange.table_name == table_name)
        with Session(self.engine) as s:
            return list(s.exec(statement.order_by(QueuedChange.enqueued_at)).all())

    def pending_deletes(self, table_name: str) -> List[QueuedChange]:
        return [c for c in self.pending(table_name) if c.operation == "delete"]

    def consume(self, change_ids: Iterable[int]) -> int:
        """Mark specific entries consumed."""
        ids = list(change_ids)
        if not ids:
            return 0
        with Session(self.engine) as s:
            result = s.exec(
                update(QueuedChange)
                .where(QueuedChange.id.in_(ids), QueuedChange.consumed_at.is_(None))
                .values(consumed_at=utcnow())
            )
            s.commit()
        return result.rowcount

    def mark_consumed(
        self,
        table_name: str,
        before: datetime,
        operations: Optional[Iterable[str]] = None,
    ) -> int:
        """Consume a table's pending entries enqueued before `before`."""
        statement = update(QueuedChange).where(
            QueuedChange.table_name == table_name,
            QueuedChange.consumed_at.is_(None),
            QueuedChange.enqueued_at < before,
        )
        if operations is not None:
            statement = statement.where(QueuedChange.operation.in_(list(operations)))
        with Session(self.engine) as s:
            result = s.exec(statement.values(consumed_at=utcnow()))
            s.commit()
        return result.rowcount

    def purge_consumed(self, older_than: datetime) -> int:
        """Delete consumed entries older than `older_than`."""
        with Session(self.engine) as s:
            result = s.exec(
                sa_delete(QueuedChange).where(
                    QueuedChange.consumed_at.is_not(None),
                    QueuedChange.consumed_at < older_than,
                )
            )
            s.commit()
        return result.rowcount

    def stats(self) -> QueueStats:
        counter = select(func.count()).select_from(QueuedChange)
        with Session(self.engine) as s:
            pending = s.exec(counter.where(QueuedChange.consumed_at.is_(None))).one()
            consumed = s.exec(counter.where(QueuedChange.consumed_at.is_not(None))).one()
        return QueueStats(pending=pending, consumed=consumed)
