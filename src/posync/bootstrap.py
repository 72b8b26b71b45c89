"""Wiring: build one SyncOrchestrator per process from settings."""
import logging
from typing import Optional

from posync.config import Settings, get_settings
from posync.db.engine import build_engine, init_local_store, init_remote_store
from posync.repository import Repository
from posync.sync.metadata import SyncMetadataStore
from posync.sync.orchestrator import SyncOrchestrator
from posync.sync.queue import ChangeQueue
from posync.sync.registry import TableRegistry, default_registry
from posync.sync.table_sync import TableSynchronizer

logger = logging.getLogger(__name__)


def build_orchestrator(
    settings: Optional[Settings] = None,
    *,
    local_engine=None,
    remote_engine=None,
    registry: Optional[TableRegistry] = None,
) -> SyncOrchestrator:
    """
    Construct the orchestrator and its collaborators.

    Engines may be injected (tests, or a host application that already owns
    them); otherwise they are created from the database URLs in settings.
    Schemas are created and migrated on both stores.
    """
    settings = settings or get_settings()
    registry = (registry or default_registry()).restricted_to(settings.sync_tables)

    if local_engine is None:
        local_engine = build_engine(settings.local_database_url)
    if remote_engine is None:
        remote_engine = build_engine(settings.remote_database_url)

    init_local_store(local_engine)
    try:
        init_remote_store(remote_engine, registry.models())
    except Exception as exc:
        # Offline at startup is normal for a POS terminal; passes will report it
        logger.warning("Remote store not initialised: %s", exc)

    metadata = SyncMetadataStore(local_engine)
    queue = ChangeQueue(local_engine)
    synchronizer = TableSynchronizer(
        local_engine=local_engine,
        remote_engine=remote_engine,
        registry=registry,
        metadata=metadata,
        queue=queue,
    )
    logger.info("Sync orchestrator ready for tables: %s", ", ".join(registry.names()))
    return SyncOrchestrator(synchronizer=synchronizer, metadata=metadata, queue=queue)


def build_repository(orchestrator: SyncOrchestrator, table_name: str) -> Repository:
    """Repository for a tracked table whose writes feed the change queue."""
    model = orchestrator.registry.model_for(table_name)
    hooks = [orchestrator.queue] if orchestrator.queue is not None else []
    return Repository(
        orchestrator.synchronizer.local_engine, model, table_name, hooks=hooks
    )
