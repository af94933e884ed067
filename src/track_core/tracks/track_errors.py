# src/track_core/tracks/track_errors.py

"""
Error variants raised by the track engine.

Every failure is its own class with structured attributes so hosts can
branch on the type (and map it to an exit code or HTTP status) without
parsing messages. Validation errors are raised before any write happens.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class TrackError(Exception):
    """Base class for all engine errors."""

    http_status = 400


# ---- lookups ----


class NotFound(TrackError):
    http_status = 404

    def __init__(self, track_id: str, what: str = "track") -> None:
        self.track_id = track_id
        self.what = what
        super().__init__(f"Unknown {what} id: {track_id}")


class UnknownTrack(NotFound):
    """A track referenced by a dependency edge does not exist."""


class UnknownParent(NotFound):
    def __init__(self, track_id: str) -> None:
        super().__init__(track_id, what="parent track")


class AmbiguousTrack(TrackError):
    def __init__(self, value: str, matches: Sequence[Any]) -> None:
        self.value = value
        self.matches = list(matches)
        super().__init__(f"Multiple tracks match the title {value!r} ({len(self.matches)} matches)")


# ---- structure ----


class DuplicateId(TrackError):
    def __init__(self, track_id: str) -> None:
        self.track_id = track_id
        super().__init__(f"Track id already exists: {track_id}")


class CannotDeleteRoot(TrackError):
    def __init__(self, track_id: str) -> None:
        self.track_id = track_id
        super().__init__(f"Cannot delete the root track: {track_id}")


class DifferentParent(TrackError):
    def __init__(
        self,
        track_id: str,
        target_id: str,
        parent_id: str | None,
        target_parent_id: str | None,
    ) -> None:
        self.track_id = track_id
        self.target_id = target_id
        self.parent_id = parent_id
        self.target_parent_id = target_parent_id
        super().__init__(
            f"Tracks must have the same parent: {track_id} (parent {parent_id or '(root)'}) "
            f"vs {target_id} (parent {target_parent_id or '(root)'})"
        )


class EmptyTitle(TrackError):
    def __init__(self) -> None:
        super().__init__("Track title cannot be empty")


class RootExists(TrackError):
    def __init__(self, root_id: str) -> None:
        self.root_id = root_id
        super().__init__(f"A root track already exists ({root_id}); pass a parent id")


class SelfMove(TrackError):
    def __init__(self, track_id: str) -> None:
        self.track_id = track_id
        super().__init__(f"Cannot move a track relative to itself: {track_id}")


class InvalidPosition(TrackError):
    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid position: {value} (valid: before, after)")


# ---- dependencies ----


class SelfDependency(TrackError):
    def __init__(self, track_id: str) -> None:
        self.track_id = track_id
        super().__init__(f"A track cannot block itself: {track_id}")


class CycleDetected(TrackError):
    def __init__(self, blocking_id: str, blocked_id: str) -> None:
        self.blocking_id = blocking_id
        self.blocked_id = blocked_id
        super().__init__(
            f"Adding dependency would create a cycle: {blocking_id} cannot block {blocked_id}"
        )


# ---- status ----


class InvalidStatus(TrackError):
    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"Invalid status: {value} "
            "(valid: planned, in_progress, done, blocked, superseded, on_hold)"
        )


class NoOpTransition(TrackError):
    def __init__(self, track_id: str, status: str) -> None:
        self.track_id = track_id
        self.status = status
        super().__init__(f"Track {track_id} is already '{status}'")


class InvalidTransition(TrackError):
    def __init__(self, track_id: str, from_status: str, to_status: str, reason: str = "") -> None:
        self.track_id = track_id
        self.from_status = from_status
        self.to_status = to_status
        msg = f"Cannot change status of {track_id} from '{from_status}' to '{to_status}'"
        super().__init__(f"{msg}: {reason}" if reason else msg)


class NotArchivable(InvalidTransition):
    def __init__(self, track_id: str, status: str) -> None:
        super().__init__(
            track_id,
            status,
            "archived",
            reason="only done, on_hold or superseded tracks can be archived",
        )


class AncestorFinal(TrackError):
    def __init__(
        self,
        track_id: str,
        status: str,
        ancestor_id: str,
        ancestor_status: str,
    ) -> None:
        self.track_id = track_id
        self.status = status
        self.ancestor_id = ancestor_id
        self.ancestor_status = ancestor_status
        super().__init__(
            f"Cannot set status to '{status}': ancestor {ancestor_id} is '{ancestor_status}'"
        )


# ---- project ----


class ProjectNotFound(TrackError):
    http_status = 404

    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(f"No track project found from {path}")


class ProjectExists(TrackError):
    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(f"Track project already exists at {path}")
