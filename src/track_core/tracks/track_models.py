# src/track_core/tracks/track_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from .track_errors import InvalidPosition, InvalidStatus


class TrackStatus(StrEnum):
    """
    Track lifecycle status.

    Notes:
    - "done" and "superseded" are final: nothing below a final track may be active.
    - "on_hold" can only be resumed through a trusted caller (see status_machine).
    """

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    BLOCKED = "blocked"
    SUPERSEDED = "superseded"
    ON_HOLD = "on_hold"

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATUSES

    @classmethod
    def parse(cls, raw: str | TrackStatus) -> TrackStatus:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise InvalidStatus(str(raw)) from None

    @classmethod
    def from_db(cls, raw: str | None) -> TrackStatus:
        if not raw:
            return cls.PLANNED
        try:
            return cls(raw)
        except ValueError:
            return cls.PLANNED


FINAL_STATUSES: frozenset[TrackStatus] = frozenset({TrackStatus.DONE, TrackStatus.SUPERSEDED})
NON_FINAL_STATUSES: frozenset[TrackStatus] = frozenset(
    {TrackStatus.PLANNED, TrackStatus.IN_PROGRESS, TrackStatus.BLOCKED, TrackStatus.ON_HOLD}
)
# Default status view shows work that is still open.
ACTIVE_STATUSES: frozenset[TrackStatus] = NON_FINAL_STATUSES
ARCHIVABLE_STATUSES: frozenset[TrackStatus] = frozenset(
    {TrackStatus.DONE, TrackStatus.ON_HOLD, TrackStatus.SUPERSEDED}
)

SUPERSEDED_NEXT_PROMPT = "Parent marked done - task superseded"

# Default for optional update arguments, so None can mean "clear the value".
UNSET: Any = object()


class MovePosition(StrEnum):
    BEFORE = "before"
    AFTER = "after"

    @classmethod
    def parse(cls, raw: str | MovePosition) -> MovePosition:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise InvalidPosition(str(raw)) from None


class TrackKind(StrEnum):
    SUPER = "super"
    FEATURE = "feature"
    TASK = "task"


def utc_now() -> str:
    """ISO-8601 UTC timestamp; sorts lexicographically."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Track:
    id: str
    title: str
    parent_id: str | None
    summary: str
    next_prompt: str
    status: TrackStatus
    worktree: str | None
    sort_order: int
    archived: bool
    created_at: str
    updated_at: str
    completed_at: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True, slots=True)
class Dependency:
    blocking_id: str
    blocked_id: str


# Columns that TrackRepo.update() accepts.
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "summary",
        "next_prompt",
        "status",
        "worktree",
        "sort_order",
        "archived",
        "updated_at",
        "completed_at",
    }
)
