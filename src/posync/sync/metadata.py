"""
SyncMetadataStore: owner of the per-table watermark rows.

No other component writes SyncMetadata. Persistence errors propagate to the
caller; this store never retries.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from posync.models.base import utcnow
from posync.models.sync import SyncMetadata
from posync.sync.resolver import SyncDirection

logger = logging.getLogger(__name__)


class SyncMetadataStore:
    """Reads and writes SyncMetadata rows in the local store."""

    def __init__(self, engine):
        self.engine = engine

    def get(self, table_name: str) -> Optional[SyncMetadata]:
        with Session(self.engine) as s:
            return s.exec(
                select(SyncMetadata).where(SyncMetadata.table_name == table_name)
            ).first()

    def list_all(self) -> List[SyncMetadata]:
        with Session(self.engine) as s:
            return list(s.exec(select(SyncMetadata).order_by(SyncMetadata.table_name)).all())

    def upsert(
        self,
        table_name: str,
        last_sync_at: datetime,
        sync_version: Optional[int] = None,
        direction: Optional[SyncDirection] = None,
    ) -> SyncMetadata:
        """
        Create or update the watermark row for a table.

        Args:
            table_name: Logical table name.
            last_sync_at: Start time of the pass that just succeeded.
            sync_version: Explicit version; defaults to previous + 1.
            direction: When given, the matching per-direction cursor is
                moved to `last_sync_at` as well.

        Returns:
            The persisted row.
        """
        now = utcnow()
        with Session(self.engine) as s:
            row = s.exec(
                select(SyncMetadata).where(SyncMetadata.table_name == table_name)
            ).first()
            if row is None:
                row = SyncMetadata(
                    table_name=table_name,
                    sync_version=sync_version or 1,
                    created_at=now,
                )
            else:
                row.sync_version = sync_version or (row.sync_version or 0) + 1

            row.last_sync_at = last_sync_at
            if direction is SyncDirection.PUSH:
                row.last_push_at = last_sync_at
            elif direction is SyncDirection.PULL:
                row.last_pull_at = last_sync_at
            row.updated_at = now

            s.add(row)
            s.commit()
            s.refresh(row)
            return row

    def increment_conflict_count(self, table_name: str) -> None:
        """Bump the conflict counter. No-op if the table has never synced."""
        with Session(self.engine) as s:
            result = s.exec(
                update(SyncMetadata)
                .where(SyncMetadata.table_name == table_name)
                .values(
                    conflict_count=SyncMetadata.conflict_count + 1,
                    updated_at=utcnow(),
                )
            )
            s.commit()
        if result.rowcount == 0:
            logger.debug("No sync metadata for %s yet; conflict not counted", table_name)

    def delete(self, table_name: str) -> bool:
        """Remove the watermark row so the next pass re-scans the whole table."""
        with Session(self.engine) as s:
            row = s.exec(
                select(SyncMetadata).where(SyncMetadata.table_name == table_name)
            ).first()
            if row is None:
                return False
            s.delete(row)
            s.commit()
            return True
