"""
TableSynchronizer: one table, one direction, one pass.

Flow for a push pass (pull is the mirror image, remote → local):
  1. Capture the pass start time and read the table's push cursor
  2. Scan local rows with updated_at >= cursor (the dirty set)
  3. For each row: fetch the remote copy, ask the resolver, apply
  4. Apply queued deletes (the scan cannot see deleted rows)
  5. Advance the watermark to the pass start time, consume the queue

A failure while applying one record is logged and the pass moves on; the
record is counted in `failed` and the watermark stops at its `updated_at`,
so the next pass picks it up again. A failure while scanning or while
writing the watermark aborts the pass and propagates; the watermark then
stays where it was, so the next pass scans the same window again.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from posync.models.base import TrackedRecord, utcnow
from posync.models.sync import QueuedChange, SyncMetadata
from posync.sync.errors import SyncInProgressError
from posync.sync.metadata import SyncMetadataStore
from posync.sync.queue import ChangeQueue
from posync.sync.registry import TableRegistry
from posync.sync.resolver import Decision, SyncDirection, decide
from posync.sync.source import ChangeSource

logger = logging.getLogger(__name__)


@dataclass
class TableSyncStats:
    records_synced: int = 0
    conflicts: int = 0
    failed: int = 0


def _cursor(meta: Optional[SyncMetadata], direction: SyncDirection):
    if meta is None:
        return None
    if direction is SyncDirection.PUSH:
        return meta.last_push_at
    return meta.last_pull_at


class TableSynchronizer:
    """Runs push and pull passes for tracked tables."""

    def __init__(
        self,
        local_engine,
        remote_engine,
        registry: TableRegistry,
        metadata: SyncMetadataStore,
        queue: Optional[ChangeQueue] = None,
        clock: Callable = utcnow,
    ):
        self.local_engine = local_engine
        self.remote_engine = remote_engine
        self.registry = registry
        self.metadata = metadata
        self.queue = queue
        self.clock = clock
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def push(self, table_name: str) -> TableSyncStats:
        """Propagate local changes of one table to the remote store."""
        return self._run(table_name, SyncDirection.PUSH)

    def pull(self, table_name: str) -> TableSyncStats:
        """Propagate remote changes of one table to the local store."""
        return self._run(table_name, SyncDirection.PULL)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _lock_for(self, table_name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(table_name, threading.Lock())

    def _run(self, table_name: str, direction: SyncDirection) -> TableSyncStats:
        model = self.registry.model_for(table_name)
        lock = self._lock_for(table_name)
        if not lock.acquire(blocking=False):
            raise SyncInProgressError(f"{direction.value} pass already in progress")
        try:
            local = ChangeSource(self.local_engine, model)
            remote = ChangeSource(self.remote_engine, model)
            return self._pass(table_name, direction, local, remote)
        finally:
            lock.release()

    def _pass(
        self,
        table_name: str,
        direction: SyncDirection,
        local: ChangeSource,
        remote: ChangeSource,
    ) -> TableSyncStats:
        started_at = self.clock()
        since = _cursor(self.metadata.get(table_name), direction)
        source = local if direction is SyncDirection.PUSH else remote
        dirty = source.modified_since(since)
        deletes = self._pending_deletes(table_name)

        logger.info(
            "%s %s: %d candidate records since %s",
            direction.value, table_name, len(dirty), since or "the beginning",
        )

        stats = TableSyncStats()
        watermark = started_at
        for record in dirty:
            try:
                self._apply(table_name, direction, record, local, remote, deletes, stats)
            except Exception:
                logger.exception(
                    "Error syncing %s record %s (%s)", table_name, record.id, direction.value
                )
                stats.failed += 1
                # Rescanned next pass, since the scan is >= the watermark
                watermark = min(watermark, record.updated_at)

        if direction is SyncDirection.PUSH and deletes:
            self._apply_deletes(table_name, remote, deletes, stats)

        self.metadata.upsert(table_name, watermark, direction=direction)

        if direction is SyncDirection.PUSH and self.queue is not None:
            try:
                self.queue.mark_consumed(
                    table_name, before=watermark, operations=("create", "update")
                )
            except Exception:
                logger.warning("Could not consume sync queue for %s", table_name, exc_info=True)

        logger.info(
            "%s %s done: %d synced, %d conflicts, %d failed",
            direction.value, table_name, stats.records_synced, stats.conflicts, stats.failed,
        )
        return stats

    def _pending_deletes(self, table_name: str) -> Dict[str, QueuedChange]:
        if self.queue is None:
            return {}
        return {c.record_id: c for c in self.queue.pending_deletes(table_name)}

    def _apply(
        self,
        table_name: str,
        direction: SyncDirection,
        record: TrackedRecord,
        local: ChangeSource,
        remote: ChangeSource,
        deletes: Dict[str, QueuedChange],
        stats: TableSyncStats,
    ) -> None:
        if direction is SyncDirection.PUSH:
            local_rec, remote_rec = record, remote.get(record.id)
        else:
            local_rec, remote_rec = local.get(record.id), record

        decision = decide(local_rec, remote_rec, direction)

        if decision is Decision.INSERT_LOCAL:
            pending = deletes.get(record.id)
            if pending is not None and remote_rec.updated_at <= pending.enqueued_at:
                # Deleted here after the remote write; the next push removes it remotely
                return
            local.insert(remote_rec)
        elif decision is Decision.UPDATE_LOCAL:
            local.update(remote_rec)
        elif decision is Decision.INSERT_REMOTE:
            remote.insert(local_rec)
        elif decision is Decision.UPDATE_REMOTE:
            remote.update(local_rec)
        elif decision is Decision.CONFLICT_SKIP:
            self._record_conflict(table_name, record.id, local_rec, remote_rec, stats)
            return
        else:
            return
        stats.records_synced += 1

    def _apply_deletes(
        self,
        table_name: str,
        remote: ChangeSource,
        deletes: Dict[str, QueuedChange],
        stats: TableSyncStats,
    ) -> None:
        for record_id, change in deletes.items():
            try:
                remote_rec = remote.get(record_id)
                if remote_rec is None:
                    pass
                elif remote_rec.updated_at > change.enqueued_at:
                    self._record_conflict(table_name, record_id, None, remote_rec, stats)
                elif remote.delete(record_id):
                    stats.records_synced += 1
                self.queue.consume([change.id])
            except Exception:
                # Entry stays pending; the next push retries it
                logger.exception("Error deleting %s record %s remotely", table_name, record_id)
                stats.failed += 1

    def _record_conflict(self, table_name, record_id, local_rec, remote_rec, stats) -> None:
        logger.info(
            "Conflict on %s record %s: local=%s remote=%s, newer copy kept",
            table_name,
            record_id,
            local_rec.updated_at.isoformat() if local_rec is not None else "deleted",
            remote_rec.updated_at.isoformat(),
        )
        stats.conflicts += 1
        self.metadata.increment_conflict_count(table_name)
