"""
Main entrypoint: runs the sync scheduler, or a one-off command.

FastAPI runs separately under uvicorn (for the trigger/status endpoints).

Usage:
    python -m posync                # starts the interval sync scheduler
    python -m posync sync           # one push+pull pass, prints the report
    python -m posync status         # prints per-table sync status
    uvicorn posync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import json
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_once() -> int:
    from posync.bootstrap import build_orchestrator

    report = build_orchestrator().sync_now()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.success else 1


def _print_status() -> int:
    from posync.bootstrap import build_orchestrator

    orchestrator = build_orchestrator()
    statuses = {s.table_name: s for s in orchestrator.get_all_sync_statuses()}
    for table_name in orchestrator.registry:
        status = statuses.get(table_name)
        if status is None:
            print(f"{table_name:<20} never synced")
        else:
            print(
                f"{table_name:<20} last={status.last_sync_at.isoformat()} "
                f"version={status.sync_version} conflicts={status.conflict_count}"
            )
    stats = orchestrator.queue_stats()
    print(f"queue: {stats.pending} pending, {stats.consumed} consumed")
    return 0


async def _run_scheduler() -> None:
    from posync.bootstrap import build_orchestrator
    from posync.config import get_settings
    from posync.scheduler.jobs import build_scheduler

    settings = get_settings()
    orchestrator = build_orchestrator()

    scheduler = build_scheduler(orchestrator)
    scheduler.start()
    logger.info(
        "Scheduler started (sync every %d min)", settings.sync_interval_minutes
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m posync sync|status` or just `python -m posync`
    command = sys.argv[1] if len(sys.argv) > 1 else None
    if command == "sync":
        sys.exit(_run_once())
    elif command == "status":
        sys.exit(_print_status())
    else:
        asyncio.run(_run_scheduler())
