# src/track_core/tracks/status_machine.py

"""
Status transitions and their cascades.

There is no fixed transition table. A change is validated against context:
- setting the current status again is rejected (NoOpTransition),
- on_hold -> in_progress needs a trusted caller (InvalidTransition),
- a non-final status is rejected under a done/superseded ancestor (AncestorFinal).

Cascades run inside the same transaction as the triggering write:
- done: dependents whose blockers are all done go blocked -> planned,
  then every active descendant is forced to superseded;
- new blocking edge: a planned blocked track goes to blocked;
- removed blocking edge: a blocked track with no blockers left goes to planned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import TrackRepo
from . import dependencies, hierarchy
from .track_errors import (
    AncestorFinal,
    EmptyTitle,
    InvalidTransition,
    NoOpTransition,
    NotArchivable,
    NotFound,
)
from .track_models import (
    ARCHIVABLE_STATUSES,
    NON_FINAL_STATUSES,
    SUPERSEDED_NEXT_PROMPT,
    UNSET,
    Track,
    TrackStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusChange:
    track_id: str
    old_status: TrackStatus
    new_status: TrackStatus
    unblocked: list[str] = field(default_factory=list)
    superseded: list[str] = field(default_factory=list)
    changed_at: str = ""


@dataclass(slots=True)
class EdgeChange:
    blocking_id: str
    blocked_id: str
    edge_changed: bool
    # Status the blocked track was moved to by the cascade, if any.
    cascaded_status: TrackStatus | None = None


def _require(store: TrackRepo, track_id: str) -> Track:
    track = store.get(track_id)
    if track is None:
        raise NotFound(track_id)
    return track


def _check_ancestors(store: TrackRepo, track: Track, new_status: TrackStatus) -> None:
    final = hierarchy.first_final_ancestor(store, track)
    if final is not None:
        raise AncestorFinal(track.id, new_status.value, final.id, final.status.value)


def validate_transition(
    store: TrackRepo,
    track: Track,
    new_status: TrackStatus,
    *,
    trusted: bool = False,
) -> None:
    """Raise if track may not move to new_status; never writes."""
    if track.status is new_status:
        raise NoOpTransition(track.id, new_status.value)

    match new_status:
        case TrackStatus.IN_PROGRESS:
            if track.status is TrackStatus.ON_HOLD and not trusted:
                raise InvalidTransition(
                    track.id,
                    track.status.value,
                    new_status.value,
                    reason="an on_hold track can only be resumed by a trusted caller",
                )
            _check_ancestors(store, track, new_status)
        case TrackStatus.PLANNED | TrackStatus.BLOCKED | TrackStatus.ON_HOLD:
            _check_ancestors(store, track, new_status)
        case TrackStatus.DONE | TrackStatus.SUPERSEDED:
            pass


def set_status(
    store: TrackRepo,
    track_id: str,
    status: TrackStatus | str,
    *,
    trusted: bool = False,
) -> StatusChange:
    """
    Move a track to a new status and apply the cascades it triggers.

    trusted=True is the higher-trust path (e.g. a browser UI) that may resume
    an on_hold track directly into in_progress.
    """
    with store.transaction():
        change = write_status(store, track_id, status, trusted=trusted)
        apply_cascades(store, change)

    logger.info(
        "Track status id=%s %s -> %s unblocked=%s superseded=%s",
        track_id,
        change.old_status.value,
        change.new_status.value,
        change.unblocked,
        change.superseded,
    )
    return change


def write_status(
    store: TrackRepo,
    track_id: str,
    status: TrackStatus | str,
    *,
    trusted: bool = False,
) -> StatusChange:
    """Validate and store the new status only; cascades are left to apply_cascades()."""
    new_status = TrackStatus.parse(status)

    with store.transaction():
        track = _require(store, track_id)
        validate_transition(store, track, new_status, trusted=trusted)

        now = utc_now()
        fields: dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status.is_final:
            fields["completed_at"] = now
        store.update(track_id, **fields)

    return StatusChange(
        track_id=track_id,
        old_status=track.status,
        new_status=new_status,
        changed_at=now,
    )


def apply_cascades(store: TrackRepo, change: StatusChange) -> StatusChange:
    """
    Run the side effects of a stored status change and record them on `change`.

    Reads the edge set at call time, so edges added after write_status() are
    taken into account.
    """
    now = change.changed_at or utc_now()
    with store.transaction():
        match change.new_status:
            case TrackStatus.DONE:
                change.unblocked = _unblock_dependents(store, change.track_id, now)
                change.superseded = _supersede_descendants(store, change.track_id, now)
            case (
                TrackStatus.PLANNED
                | TrackStatus.IN_PROGRESS
                | TrackStatus.BLOCKED
                | TrackStatus.ON_HOLD
                | TrackStatus.SUPERSEDED
            ):
                pass
    return change


def _unblock_dependents(store: TrackRepo, track_id: str, now: str) -> list[str]:
    unblocked: list[str] = []
    for dependent_id in store.dependents_of(track_id):
        dependent = store.get(dependent_id)
        if dependent is None or dependent.status is not TrackStatus.BLOCKED:
            continue
        if dependencies.all_blockers_done(store, dependent_id):
            store.update(dependent_id, status=TrackStatus.PLANNED, updated_at=now)
            unblocked.append(dependent_id)
    return unblocked


def _supersede_descendants(store: TrackRepo, track_id: str, now: str) -> list[str]:
    # Bypasses the ancestor rule on purpose: this is what enforces it.
    superseded: list[str] = []
    for descendant in hierarchy.descendants_of(store, track_id):
        if descendant.status not in NON_FINAL_STATUSES:
            continue
        store.update(
            descendant.id,
            status=TrackStatus.SUPERSEDED,
            next_prompt=SUPERSEDED_NEXT_PROMPT,
            updated_at=now,
            completed_at=now,
        )
        superseded.append(descendant.id)
    return superseded


def block(store: TrackRepo, blocking_id: str, blocked_id: str) -> EdgeChange:
    """Add blocking_id -> blocked_id; a planned blocked track becomes blocked."""
    with store.transaction():
        inserted = dependencies.add_edge(store, blocking_id, blocked_id)
        change = EdgeChange(blocking_id, blocked_id, edge_changed=inserted)

        blocked = _require(store, blocked_id)
        if blocked.status is TrackStatus.PLANNED:
            store.update(blocked_id, status=TrackStatus.BLOCKED, updated_at=utc_now())
            change.cascaded_status = TrackStatus.BLOCKED
            logger.info("Track auto-blocked id=%s by=%s", blocked_id, blocking_id)
    return change


def unblock(store: TrackRepo, blocking_id: str, blocked_id: str) -> EdgeChange:
    """Remove blocking_id -> blocked_id; a blocked track left without blockers becomes planned."""
    with store.transaction():
        removed = dependencies.remove_edge(store, blocking_id, blocked_id)
        change = EdgeChange(blocking_id, blocked_id, edge_changed=removed)

        blocked = store.get(blocked_id)
        if (
            blocked is not None
            and blocked.status is TrackStatus.BLOCKED
            and not store.blockers_of(blocked_id)
        ):
            store.update(blocked_id, status=TrackStatus.PLANNED, updated_at=utc_now())
            change.cascaded_status = TrackStatus.PLANNED
            logger.info("Track auto-unblocked id=%s", blocked_id)
    return change


def update_fields(
    store: TrackRepo,
    track_id: str,
    *,
    title: Any = UNSET,
    summary: Any = UNSET,
    next_prompt: Any = UNSET,
    worktree: Any = UNSET,
) -> Track:
    """Free-text updates; unconditional and never cascading. worktree=None unsets it."""
    fields: dict[str, Any] = {}
    if title is not UNSET:
        clean = (title or "").strip()
        if not clean:
            raise EmptyTitle()
        fields["title"] = clean
    if summary is not UNSET:
        fields["summary"] = summary or ""
    if next_prompt is not UNSET:
        fields["next_prompt"] = next_prompt or ""
    if worktree is not UNSET:
        fields["worktree"] = worktree

    with store.transaction():
        track = _require(store, track_id)
        if fields:
            fields["updated_at"] = utc_now()
            store.update(track_id, **fields)
            track = _require(store, track_id)
    return track


def add_files(store: TrackRepo, track_id: str, paths: Iterable[str]) -> int:
    with store.transaction():
        _require(store, track_id)
        added = store.add_files(track_id, paths)
    logger.debug("Track files added id=%s count=%d", track_id, added)
    return added


def set_archived(store: TrackRepo, track_id: str, archived: bool) -> bool:
    """
    Archive or unarchive one track (descendants are not touched).

    Only done/on_hold/superseded tracks can be archived. Returns False when the
    flag already had the requested value.
    """
    with store.transaction():
        track = _require(store, track_id)
        if archived and track.status not in ARCHIVABLE_STATUSES:
            raise NotArchivable(track_id, track.status.value)
        if track.archived == bool(archived):
            return False
        store.update(track_id, archived=bool(archived), updated_at=utc_now())

    logger.info("Track %s id=%s", "archived" if archived else "unarchived", track_id)
    return True
