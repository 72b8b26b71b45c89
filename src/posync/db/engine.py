"""Engine construction and schema setup for the local and remote stores."""
from typing import Iterable, Type

from sqlmodel import SQLModel, create_engine

from posync.db.migrations import run_migrations


def build_engine(url: str):
    """Create a SQLAlchemy engine for either store."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # sync passes run in worker threads
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def _import_models() -> None:
    # Import all models so metadata is populated before create_all
    from posync.models.catalog import Category, Product, ProductVariant, User  # noqa
    from posync.models.sales import Transaction, TransactionItem  # noqa
    from posync.models.sync import QueuedChange, SyncMetadata, SyncRun  # noqa


def init_local_store(engine) -> None:
    """Create every table (tracked + bookkeeping) on the local store."""
    _import_models()
    SQLModel.metadata.create_all(engine)
    run_migrations(engine)


def init_remote_store(engine, models: Iterable[Type[SQLModel]]) -> None:
    """Create only the tracked tables on the remote store."""
    _import_models()
    SQLModel.metadata.create_all(engine, tables=[m.__table__ for m in models])
    run_migrations(engine)
