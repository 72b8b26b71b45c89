"""Row access for one tracked table on one store (local or remote)."""
from datetime import datetime
from typing import List, Optional, Type

from sqlalchemy import text
from sqlmodel import Session, select

from posync.models.base import TrackedRecord


class ChangeSource:
    """
    Reads and writes one tracked table through a single engine.

    Returned rows are detached from their session, so they can be compared
    and copied into the other store freely. Writes copy every column
    verbatim, including `updated_at`, so both stores agree on the timestamp
    once a record has been propagated.
    """

    def __init__(self, engine, model: Type[TrackedRecord]):
        self.engine = engine
        self.model = model

    def modified_since(self, since: Optional[datetime]) -> List[TrackedRecord]:
        """Rows with `updated_at >= since`, oldest first. `None` means all rows."""
        statement = select(self.model)
        if since is not None:
            statement = statement.where(self.model.updated_at >= since)
        statement = statement.order_by(self.model.updated_at)
        with Session(self.engine) as s:
            return list(s.exec(statement).all())

    def get(self, record_id: str) -> Optional[TrackedRecord]:
        with Session(self.engine) as s:
            return s.get(self.model, record_id)

    def insert(self, record: TrackedRecord) -> None:
        with Session(self.engine) as s:
            s.add(self.model(**record.model_dump()))
            s.commit()

    def update(self, record: TrackedRecord) -> bool:
        """Overwrite the row with `record`'s values. False if the row is gone."""
        with Session(self.engine) as s:
            existing = s.get(self.model, record.id)
            if existing is None:
                return False
            for k, v in record.model_dump().items():
                setattr(existing, k, v)
            s.add(existing)
            s.commit()
            return True

    def delete(self, record_id: str) -> bool:
        with Session(self.engine) as s:
            existing = s.get(self.model, record_id)
            if existing is None:
                return False
            s.delete(existing)
            s.commit()
            return True


def ping(engine) -> None:
    """Round-trip a trivial query. Raises whatever the driver raises."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
