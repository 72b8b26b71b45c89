"""Shared test fixtures."""
from datetime import datetime, timedelta
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from posync.models.catalog import Category, Product, ProductVariant, User  # noqa: F401
from posync.models.sales import Transaction, TransactionItem  # noqa: F401
from posync.models.sync import QueuedChange, SyncMetadata, SyncRun  # noqa: F401
from posync.sync.metadata import SyncMetadataStore
from posync.sync.orchestrator import SyncOrchestrator
from posync.sync.queue import ChangeQueue
from posync.sync.registry import default_registry
from posync.sync.table_sync import TableSynchronizer

T0 = datetime(2025, 1, 15, 9, 0)


class FakeClock:
    """Callable clock whose time the test controls."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _memory_engine():
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(name="local_engine")
def local_engine_fixture():
    """In-memory SQLite engine standing in for the terminal's local store."""
    engine = _memory_engine()
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="remote_engine")
def remote_engine_fixture():
    """In-memory SQLite engine standing in for the shared remote store."""
    engine = _memory_engine()
    tables = [m.__table__ for m in default_registry().models()]
    SQLModel.metadata.create_all(engine, tables=tables)
    yield engine
    SQLModel.metadata.drop_all(engine, tables=tables)


@pytest.fixture(name="test_session")
def test_session_fixture(local_engine) -> Generator[Session, None, None]:
    """Provides a session on the local store."""
    with Session(local_engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock(T0 + timedelta(hours=1))


@pytest.fixture(name="metadata_store")
def metadata_store_fixture(local_engine) -> SyncMetadataStore:
    return SyncMetadataStore(local_engine)


@pytest.fixture(name="queue")
def queue_fixture(local_engine) -> ChangeQueue:
    return ChangeQueue(local_engine)


@pytest.fixture(name="synchronizer")
def synchronizer_fixture(local_engine, remote_engine, metadata_store, queue, clock):
    return TableSynchronizer(
        local_engine=local_engine,
        remote_engine=remote_engine,
        registry=default_registry(),
        metadata=metadata_store,
        queue=queue,
        clock=clock,
    )


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(synchronizer, metadata_store, queue) -> SyncOrchestrator:
    return SyncOrchestrator(synchronizer=synchronizer, metadata=metadata_store, queue=queue)


def add_rows(engine, *rows) -> None:
    """Insert rows into a store verbatim (timestamps included)."""
    with Session(engine) as s:
        for row in rows:
            s.add(row)
        s.commit()


def make_product(product_id: str, updated_at: datetime, name: str = None, price: float = 9.5):
    return Product(
        id=product_id,
        name=name or f"Product {product_id}",
        base_price=price,
        created_at=updated_at,
        updated_at=updated_at,
    )


def make_category(category_id: str, updated_at: datetime, name: str = None):
    return Category(
        id=category_id,
        name=name or f"Category {category_id}",
        created_at=updated_at,
        updated_at=updated_at,
    )
