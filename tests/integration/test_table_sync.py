"""Integration tests for push/pull passes against two in-memory stores."""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from conftest import T0, add_rows, make_category, make_product
from posync.models.catalog import Category, Product
from posync.models.sync import QueuedChange
from posync.sync.errors import SyncInProgressError, UnknownTableError
from posync.sync.resolver import SyncDirection
from posync.sync.source import ChangeSource


def rows(engine, model=Product):
    with Session(engine) as s:
        return {r.id: r for r in s.exec(select(model)).all()}


def queued_delete(record_id, enqueued_at, table_name="products"):
    return QueuedChange(
        operation="delete",
        table_name=table_name,
        record_id=record_id,
        enqueued_at=enqueued_at,
    )


# ─── Push ─────────────────────────────────────────────────────────────────────

class TestPush:
    def test_inserts_and_updates_remote(self, synchronizer, local_engine, remote_engine):
        add_rows(local_engine, make_product("p1", T0), make_product("p2", T0, name="New Tea"))
        add_rows(remote_engine, make_product("p2", T0 - timedelta(days=1), name="Old Tea"))

        stats = synchronizer.push("products")

        assert stats.records_synced == 2
        assert stats.conflicts == 0
        remote = rows(remote_engine)
        assert set(remote) == {"p1", "p2"}
        assert remote["p2"].name == "New Tea"
        assert remote["p2"].updated_at == T0

    def test_watermark_is_pass_start_time(self, synchronizer, metadata_store, local_engine, clock):
        add_rows(local_engine, make_product("p1", T0))
        synchronizer.push("products")

        meta = metadata_store.get("products")
        assert meta.last_sync_at == clock.now
        assert meta.last_push_at == clock.now
        assert meta.last_pull_at is None
        assert meta.sync_version == 1

    def test_second_pass_without_changes_writes_nothing(self, synchronizer, local_engine, clock):
        add_rows(local_engine, make_product("p1", T0))
        synchronizer.push("products")
        clock.advance(minutes=5)

        stats = synchronizer.push("products")

        assert stats.records_synced == 0
        assert stats.conflicts == 0

    def test_only_rows_changed_since_cursor_are_scanned(
        self, synchronizer, local_engine, remote_engine, clock
    ):
        add_rows(local_engine, make_product("p1", T0))
        synchronizer.push("products")

        # Written after the first pass started
        add_rows(local_engine, make_product("p2", clock.now + timedelta(seconds=30)))
        clock.advance(minutes=5)
        stats = synchronizer.push("products")

        assert stats.records_synced == 1
        assert set(rows(remote_engine)) == {"p1", "p2"}

    def test_stale_local_copy_is_a_conflict(
        self, synchronizer, metadata_store, local_engine, remote_engine
    ):
        metadata_store.upsert("products", T0, direction=SyncDirection.PUSH)
        add_rows(local_engine, make_product("p1", T0 + timedelta(seconds=10), name="Local"))
        add_rows(remote_engine, make_product("p1", T0 + timedelta(seconds=20), name="Remote"))

        stats = synchronizer.push("products")

        assert stats.records_synced == 0
        assert stats.conflicts == 1
        assert rows(remote_engine)["p1"].name == "Remote"
        assert rows(local_engine)["p1"].name == "Local"
        assert metadata_store.get("products").conflict_count == 1

    def test_equal_timestamps_are_a_noop(self, synchronizer, local_engine, remote_engine):
        add_rows(local_engine, make_product("p1", T0, name="Same"))
        add_rows(remote_engine, make_product("p1", T0, name="Same"))

        stats = synchronizer.push("products")

        assert stats.records_synced == 0
        assert stats.conflicts == 0

    def test_failed_record_does_not_stop_the_pass(self, synchronizer, local_engine, remote_engine):
        add_rows(
            local_engine,
            make_product("p1", T0),
            make_product("p2", T0 + timedelta(seconds=1)),
        )
        original_insert = ChangeSource.insert

        def flaky_insert(self, record):
            if record.id == "p1":
                raise RuntimeError("constraint failed")
            return original_insert(self, record)

        with patch.object(ChangeSource, "insert", flaky_insert):
            stats = synchronizer.push("products")

        assert stats.records_synced == 1
        assert stats.failed == 1
        assert set(rows(remote_engine)) == {"p2"}

    def test_failed_record_is_retried_next_pass(
        self, synchronizer, metadata_store, local_engine, remote_engine, clock
    ):
        add_rows(
            local_engine,
            make_product("p1", T0),
            make_product("p2", T0 + timedelta(seconds=1)),
        )
        original_insert = ChangeSource.insert

        def flaky_insert(self, record):
            if record.id == "p1":
                raise RuntimeError("constraint failed")
            return original_insert(self, record)

        with patch.object(ChangeSource, "insert", flaky_insert):
            synchronizer.push("products")

        # Watermark holds at the failed record
        assert metadata_store.get("products").last_push_at == T0

        clock.advance(minutes=5)
        stats = synchronizer.push("products")

        assert stats.records_synced == 1
        assert stats.failed == 0
        assert set(rows(remote_engine)) == {"p1", "p2"}
        assert metadata_store.get("products").last_push_at == clock.now

    def test_watermark_kept_when_metadata_write_fails(
        self, synchronizer, metadata_store, local_engine
    ):
        metadata_store.upsert("products", T0, direction=SyncDirection.PUSH)
        add_rows(local_engine, make_product("p1", T0 + timedelta(minutes=1)))

        with patch.object(metadata_store, "upsert", side_effect=RuntimeError("disk I/O error")):
            with pytest.raises(RuntimeError):
                synchronizer.push("products")

        meta = metadata_store.get("products")
        assert meta.last_push_at == T0
        assert meta.sync_version == 1

    def test_scan_failure_propagates(self, synchronizer, metadata_store):
        with patch.object(ChangeSource, "modified_since", side_effect=RuntimeError("no such table")):
            with pytest.raises(RuntimeError):
                synchronizer.push("products")
        assert metadata_store.get("products") is None


# ─── Pull ─────────────────────────────────────────────────────────────────────

class TestPull:
    def test_inserts_and_updates_local(self, synchronizer, local_engine, remote_engine):
        add_rows(local_engine, make_category("c1", T0, name="Drinks"))
        add_rows(
            remote_engine,
            make_category("c1", T0 + timedelta(minutes=10), name="Beverages"),
            make_category("c2", T0, name="Snacks"),
        )

        stats = synchronizer.pull("categories")

        assert stats.records_synced == 2
        local = rows(local_engine, Category)
        assert local["c1"].name == "Beverages"
        assert local["c2"].name == "Snacks"

    def test_pull_sets_pull_cursor_only(self, synchronizer, metadata_store, clock):
        synchronizer.pull("products")
        meta = metadata_store.get("products")
        assert meta.last_pull_at == clock.now
        assert meta.last_push_at is None

    def test_newer_local_copy_is_pushed_back(self, synchronizer, local_engine, remote_engine):
        add_rows(local_engine, make_product("p1", T0 + timedelta(minutes=10), name="Local"))
        add_rows(remote_engine, make_product("p1", T0, name="Remote"))

        stats = synchronizer.pull("products")

        assert stats.records_synced == 1
        assert stats.conflicts == 0
        assert rows(remote_engine)["p1"].name == "Local"

    def test_failed_local_write_is_retried_next_pull(
        self, synchronizer, local_engine, remote_engine, clock
    ):
        add_rows(remote_engine, make_product("p1", T0))

        with patch.object(ChangeSource, "insert", side_effect=RuntimeError("database is locked")):
            stats = synchronizer.pull("products")
        assert stats.failed == 1
        assert rows(local_engine) == {}

        clock.advance(minutes=5)
        stats = synchronizer.pull("products")

        assert stats.records_synced == 1
        assert "p1" in rows(local_engine)

    def test_push_cursor_does_not_hide_remote_changes(
        self, synchronizer, remote_engine, local_engine, clock
    ):
        # A push that started after the remote write must not advance the pull cursor
        add_rows(remote_engine, make_product("p1", clock.now - timedelta(minutes=1)))
        synchronizer.push("products")
        clock.advance(minutes=5)

        synchronizer.pull("products")

        assert "p1" in rows(local_engine)


# ─── Deletes ──────────────────────────────────────────────────────────────────

class TestQueuedDeletes:
    def test_push_deletes_remote_row(
        self, synchronizer, local_engine, remote_engine, queue
    ):
        add_rows(remote_engine, make_product("p1", T0))
        add_rows(local_engine, queued_delete("p1", T0 + timedelta(minutes=30)))

        stats = synchronizer.push("products")

        assert stats.records_synced == 1
        assert rows(remote_engine) == {}
        assert queue.pending("products") == []

    def test_remote_edit_after_delete_wins(
        self, synchronizer, local_engine, remote_engine, queue
    ):
        add_rows(remote_engine, make_product("p1", T0 + timedelta(minutes=45)))
        add_rows(local_engine, queued_delete("p1", T0 + timedelta(minutes=30)))

        stats = synchronizer.push("products")

        assert stats.conflicts == 1
        assert stats.records_synced == 0
        assert "p1" in rows(remote_engine)
        assert queue.pending("products") == []

    def test_failed_remote_delete_stays_pending(
        self, synchronizer, local_engine, remote_engine, queue
    ):
        add_rows(remote_engine, make_product("p1", T0))
        add_rows(local_engine, queued_delete("p1", T0 + timedelta(minutes=30)))

        with patch.object(ChangeSource, "delete", side_effect=RuntimeError("database is locked")):
            stats = synchronizer.push("products")

        assert stats.failed == 1
        assert "p1" in rows(remote_engine)
        assert [c.record_id for c in queue.pending("products")] == ["p1"]

        stats = synchronizer.push("products")
        assert stats.records_synced == 1
        assert rows(remote_engine) == {}

    def test_delete_of_row_missing_remotely_is_consumed(
        self, synchronizer, local_engine, queue
    ):
        add_rows(local_engine, queued_delete("p1", T0))

        stats = synchronizer.push("products")

        assert stats.records_synced == 0
        assert queue.pending("products") == []

    def test_pull_does_not_resurrect_pending_delete(
        self, synchronizer, local_engine, remote_engine
    ):
        add_rows(remote_engine, make_product("p1", T0))
        add_rows(local_engine, queued_delete("p1", T0 + timedelta(minutes=30)))

        stats = synchronizer.pull("products")

        assert stats.records_synced == 0
        assert rows(local_engine) == {}

    def test_pull_restores_row_edited_remotely_after_delete(
        self, synchronizer, local_engine, remote_engine
    ):
        add_rows(remote_engine, make_product("p1", T0 + timedelta(minutes=45)))
        add_rows(local_engine, queued_delete("p1", T0 + timedelta(minutes=30)))

        synchronizer.pull("products")

        assert "p1" in rows(local_engine)


# ─── Guards ───────────────────────────────────────────────────────────────────

class TestGuards:
    def test_unknown_table(self, synchronizer):
        with pytest.raises(UnknownTableError):
            synchronizer.push("search_analytics")

    def test_concurrent_pass_on_same_table_refused(self, synchronizer):
        lock = synchronizer._lock_for("products")
        lock.acquire()
        try:
            with pytest.raises(SyncInProgressError):
                synchronizer.pull("products")
        finally:
            lock.release()

    def test_other_tables_not_blocked(self, synchronizer):
        lock = synchronizer._lock_for("products")
        lock.acquire()
        try:
            synchronizer.push("categories")
        finally:
            lock.release()

    def test_lock_released_after_failure(self, synchronizer):
        with patch.object(ChangeSource, "modified_since", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                synchronizer.push("products")
        synchronizer.push("products")
