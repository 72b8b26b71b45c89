"""
SyncOrchestrator: runs the table synchronizer across every tracked table.

Each table runs inside its own failure boundary: one table raising is
recorded in the run report and the remaining tables still run. Nothing is
retried within an invocation; the scheduler calls again later. Records a
pass could not write still leave the table counted as processed, and are
reported as an error for that table.
"""
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlmodel import Session, select

from posync.models.base import utcnow
from posync.models.sync import SyncMetadata, SyncRun
from posync.sync.errors import UnknownTableError
from posync.sync.metadata import SyncMetadataStore
from posync.sync.queue import ChangeQueue, QueueStats
from posync.sync.registry import TableRegistry
from posync.sync.source import ping
from posync.sync.table_sync import TableSynchronizer, TableSyncStats

logger = logging.getLogger(__name__)

SYNC_IN_PROGRESS = "Sync already in progress"


@dataclass
class RunReport:
    success: bool = False
    tables_processed: int = 0
    records_synced: int = 0
    conflicts: int = 0
    errors: List[str] = field(default_factory=list)

    def combine(self, other: "RunReport") -> "RunReport":
        errors = self.errors + other.errors
        return RunReport(
            success=not errors,
            tables_processed=self.tables_processed + other.tables_processed,
            records_synced=self.records_synced + other.records_synced,
            conflicts=self.conflicts + other.conflicts,
            errors=errors,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TableStatus:
    table_name: str
    last_sync_at: Optional[datetime] = None
    sync_version: int = 0
    conflict_count: int = 0

    @classmethod
    def from_metadata(cls, meta: SyncMetadata) -> "TableStatus":
        return cls(
            table_name=meta.table_name,
            last_sync_at=meta.last_sync_at,
            sync_version=meta.sync_version,
            conflict_count=meta.conflict_count,
        )


class SyncOrchestrator:
    """Entry point for "sync now" and per-table sync status."""

    def __init__(
        self,
        synchronizer: TableSynchronizer,
        metadata: SyncMetadataStore,
        queue: Optional[ChangeQueue] = None,
    ):
        self.synchronizer = synchronizer
        self.metadata = metadata
        self.queue = queue
        self._run_lock = threading.Lock()

    @property
    def registry(self) -> TableRegistry:
        return self.synchronizer.registry

    # ─── Sync operations ──────────────────────────────────────────────────────

    def sync_to_cloud(self) -> RunReport:
        """Push every tracked table, local → remote."""
        return self._recorded("push", lambda: self._run([("push", self.synchronizer.push)]))

    def sync_from_cloud(self) -> RunReport:
        """Pull every tracked table, remote → local."""
        return self._recorded("pull", lambda: self._run([("pull", self.synchronizer.pull)]))

    def sync_now(self) -> RunReport:
        """Push then pull. Refuses to start while another sync_now() runs."""
        if not self._run_lock.acquire(blocking=False):
            logger.info("Sync requested while another run is in progress")
            return RunReport(success=False, errors=[SYNC_IN_PROGRESS])
        try:
            return self._recorded("both", lambda: self._run([
                ("push", self.synchronizer.push),
                ("pull", self.synchronizer.pull),
            ]))
        finally:
            self._run_lock.release()

    def _run(self, passes: List[Tuple[str, Callable[[str], TableSyncStats]]]) -> RunReport:
        """Probe the remote store once, then run each direction in order."""
        try:
            ping(self.synchronizer.remote_engine)
        except Exception as exc:
            logger.warning("Remote store unreachable, skipping sync: %s", exc)
            return RunReport(errors=[f"Cannot connect to cloud database: {exc}"])

        report = None
        for label, run_table in passes:
            result = self._sync_all(label, run_table)
            report = result if report is None else report.combine(result)
        return report

    def _sync_all(self, label: str, run_table: Callable[[str], TableSyncStats]) -> RunReport:
        report = RunReport()

        for table_name in self.registry:
            try:
                stats = run_table(table_name)
            except Exception as exc:
                logger.error("%s of %s failed: %s", label, table_name, exc)
                report.errors.append(f"{table_name}: {exc}")
                continue
            report.tables_processed += 1
            report.records_synced += stats.records_synced
            report.conflicts += stats.conflicts
            if stats.failed:
                report.errors.append(f"{table_name}: {stats.failed} record(s) failed")

        report.success = not report.errors
        logger.info(
            "%s completed: %d tables, %d records, %d conflicts, %d errors",
            label,
            report.tables_processed,
            report.records_synced,
            report.conflicts,
            len(report.errors),
        )
        return report

    def _recorded(self, direction: str, run: Callable[[], RunReport]) -> RunReport:
        """Run `run` and keep a SyncRun audit row for it."""
        log = self._create_run_log(direction)
        report = run()
        self._finish_run_log(log, report)
        return report

    def _create_run_log(self, direction: str) -> Optional[SyncRun]:
        try:
            log = SyncRun(direction=direction, started_at=utcnow(), status="running")
            with Session(self.metadata.engine) as s:
                s.add(log)
                s.commit()
                s.refresh(log)
            return log
        except Exception:
            logger.warning("Could not record sync run start", exc_info=True)
            return None

    def _finish_run_log(self, log: Optional[SyncRun], report: RunReport) -> None:
        if log is None:
            return
        if report.success:
            status = "success"
        elif report.tables_processed:
            status = "partial"
        else:
            status = "error"
        try:
            with Session(self.metadata.engine) as s:
                db_log = s.get(SyncRun, log.id)
                db_log.status = status
                db_log.finished_at = utcnow()
                db_log.tables_processed = report.tables_processed
                db_log.records_synced = report.records_synced
                db_log.conflicts = report.conflicts
                db_log.error_message = "; ".join(report.errors) or None
                s.add(db_log)
                s.commit()
        except Exception:
            logger.warning("Could not record sync run result", exc_info=True)

    # ─── Status and control ───────────────────────────────────────────────────

    def get_sync_status(self, table_name: str) -> Optional[TableStatus]:
        self.registry.model_for(table_name)
        meta = self.metadata.get(table_name)
        return TableStatus.from_metadata(meta) if meta else None

    def get_all_sync_statuses(self) -> List[TableStatus]:
        return [TableStatus.from_metadata(m) for m in self.metadata.list_all()]

    def reset_sync_status(self, table_name: str) -> bool:
        """Forget the table's watermark; its next pass re-scans every row."""
        if table_name not in self.registry:
            raise UnknownTableError(table_name)
        removed = self.metadata.delete(table_name)
        logger.info("Sync status for %s reset (existed=%s)", table_name, removed)
        return removed

    def queue_stats(self) -> QueueStats:
        if self.queue is None:
            return QueueStats()
        return self.queue.stats()

    def latest_run(self) -> Optional[SyncRun]:
        with Session(self.metadata.engine) as s:
            return s.exec(
                select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            ).first()
