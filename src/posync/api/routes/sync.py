"""Sync trigger, status and control routes."""
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from posync.sync.errors import UnknownTableError
from posync.sync.orchestrator import SyncOrchestrator

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    direction: Literal["both", "push", "pull"] = "both"


class RunReportResponse(BaseModel):
    success: bool
    tables_processed: int
    records_synced: int
    conflicts: int
    errors: List[str]


class TableStatusResponse(BaseModel):
    table_name: str
    last_sync_at: Optional[datetime]
    sync_version: int
    conflict_count: int


class ResetResponse(BaseModel):
    table_name: str
    reset: bool


class QueueStatsResponse(BaseModel):
    pending: int
    consumed: int


class SyncRunResponse(BaseModel):
    status: str
    direction: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    tables_processed: Optional[int] = None
    records_synced: Optional[int] = None
    conflicts: Optional[int] = None
    error_message: Optional[str] = None


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """FastAPI dependency: the orchestrator owned by the app."""
    return request.app.state.orchestrator


@router.post("/trigger", response_model=RunReportResponse)
def trigger_sync(
    request: SyncTriggerRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Run a sync pass now and return its report."""
    if request.direction == "push":
        report = orchestrator.sync_to_cloud()
    elif request.direction == "pull":
        report = orchestrator.sync_from_cloud()
    else:
        report = orchestrator.sync_now()
    return RunReportResponse(**report.to_dict())


@router.get("/status", response_model=List[TableStatusResponse])
def all_statuses(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Watermark and counters for every table that has synced at least once."""
    return [
        TableStatusResponse(**vars(status))
        for status in orchestrator.get_all_sync_statuses()
    ]


@router.get("/status/{table_name}", response_model=TableStatusResponse)
def table_status(
    table_name: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    try:
        status = orchestrator.get_sync_status(table_name)
    except UnknownTableError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    if status is None:
        return TableStatusResponse(
            table_name=table_name, last_sync_at=None, sync_version=0, conflict_count=0
        )
    return TableStatusResponse(**vars(status))


@router.delete("/status/{table_name}", response_model=ResetResponse)
def reset_status(
    table_name: str, orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Drop the table's watermark so the next pass re-scans it fully."""
    try:
        removed = orchestrator.reset_sync_status(table_name)
    except UnknownTableError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return ResetResponse(table_name=table_name, reset=removed)


@router.get("/queue", response_model=QueueStatsResponse)
def queue_stats(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    stats = orchestrator.queue_stats()
    return QueueStatsResponse(pending=stats.pending, consumed=stats.consumed)


@router.get("/runs/latest", response_model=SyncRunResponse)
def latest_run(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Return the most recent sync run."""
    run = orchestrator.latest_run()
    if not run:
        return SyncRunResponse(status="never_run")
    return SyncRunResponse(
        status=run.status,
        direction=run.direction,
        started_at=run.started_at,
        finished_at=run.finished_at,
        tables_processed=run.tables_processed,
        records_synced=run.records_synced,
        conflicts=run.conflicts,
        error_message=run.error_message,
    )
