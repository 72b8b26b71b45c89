"""
Conflict resolution: last writer wins by `updated_at`.

`decide()` is pure. It never merges fields; it only picks which copy of a
record should reach the other store, or refuses to propagate when that would
overwrite a newer write.

Rules, in order:
  1. Only one side has the record → insert it on the other side.
  2. Local is newer → update remote.
  3. Remote is newer → update local when pulling; when pushing this is a
     conflict (the local copy is stale) and the record is skipped.
  4. Same timestamp → nothing to do.

Known limitation: the comparison trusts both stores' clocks. Skew between
terminals and the remote host makes the winner arbitrary within the skew
window.
"""
import enum
from typing import Optional

from posync.models.base import TrackedRecord


class SyncDirection(str, enum.Enum):
    PUSH = "push"  # local → remote
    PULL = "pull"  # remote → local


class Decision(str, enum.Enum):
    INSERT_REMOTE = "insert_remote"
    UPDATE_REMOTE = "update_remote"
    INSERT_LOCAL = "insert_local"
    UPDATE_LOCAL = "update_local"
    CONFLICT_SKIP = "conflict_skip"
    NOOP = "noop"


def decide(
    local: Optional[TrackedRecord],
    remote: Optional[TrackedRecord],
    direction: SyncDirection,
) -> Decision:
    """Decide what a pass running in `direction` should do with one record."""
    if local is None and remote is None:
        return Decision.NOOP
    if remote is None:
        return Decision.INSERT_REMOTE
    if local is None:
        return Decision.INSERT_LOCAL

    if local.updated_at > remote.updated_at:
        return Decision.UPDATE_REMOTE
    if remote.updated_at > local.updated_at:
        if direction is SyncDirection.PULL:
            return Decision.UPDATE_LOCAL
        return Decision.CONFLICT_SKIP
    return Decision.NOOP
