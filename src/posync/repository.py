"""
Repository: CRUD for one tracked table, with post-write hooks.

Every committed create/update/delete is announced to the registered
WriteHook objects (normally the ChangeQueue). Hooks run after the commit
and can never fail the write.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type

from sqlmodel import Session, select

from posync.models.base import TrackedRecord, new_id, utcnow

logger = logging.getLogger(__name__)


class WriteHook(Protocol):
    def after_write(
        self,
        operation: str,
        table_name: str,
        record_id: str,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class Repository:
    """Local-store CRUD for a tracked table."""

    def __init__(
        self,
        engine,
        model: Type[TrackedRecord],
        table_name: str,
        hooks: Sequence[WriteHook] = (),
    ):
        self.engine = engine
        self.model = model
        self.table_name = table_name
        self.hooks = list(hooks)

    def get(self, record_id: str) -> Optional[TrackedRecord]:
        with Session(self.engine) as s:
            return s.get(self.model, record_id)

    def list(self, limit: Optional[int] = None, offset: int = 0) -> List[TrackedRecord]:
        statement = select(self.model).order_by(self.model.created_at).offset(offset)
        if limit is not None:
            statement = statement.limit(limit)
        with Session(self.engine) as s:
            return list(s.exec(statement).all())

    def create(self, **fields: Any) -> TrackedRecord:
        now = utcnow()
        fields.setdefault("id", new_id())
        fields.setdefault("created_at", now)
        fields["updated_at"] = now
        record = self.model(**fields)
        with Session(self.engine) as s:
            s.add(record)
            s.commit()
            s.refresh(record)
        self._notify("create", record.id, record)
        return record

    def update(self, record_id: str, **fields: Any) -> Optional[TrackedRecord]:
        """Apply `fields` and advance `updated_at`. None if the row is missing."""
        fields.pop("id", None)
        with Session(self.engine) as s:
            record = s.get(self.model, record_id)
            if record is None:
                return None
            for k, v in fields.items():
                setattr(record, k, v)
            record.updated_at = utcnow()
            s.add(record)
            s.commit()
            s.refresh(record)
        self._notify("update", record_id, record)
        return record

    def delete(self, record_id: str) -> bool:
        with Session(self.engine) as s:
            record = s.get(self.model, record_id)
            if record is None:
                return False
            s.delete(record)
            s.commit()
        self._notify("delete", record_id, None)
        return True

    def _notify(self, operation: str, record_id: str, record: Optional[TrackedRecord]) -> None:
        snapshot = record.model_dump(mode="json") if record is not None else None
        for hook in self.hooks:
            try:
                hook.after_write(operation, self.table_name, record_id, snapshot)
            except Exception:
                logger.exception("Post-write hook failed for %s %s", self.table_name, record_id)
