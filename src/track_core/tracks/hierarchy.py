# src/track_core/tracks/hierarchy.py

"""
Parent/child tree over tracks.

Tracks are never reparented: a track is created under an existing parent and
stays there until it is deleted. Sibling order is the only mutable structure.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from ..core.ports import TrackRepo
from .track_errors import (
    AncestorFinal,
    CannotDeleteRoot,
    DifferentParent,
    DuplicateId,
    EmptyTitle,
    NotFound,
    RootExists,
    SelfMove,
    UnknownParent,
)
from .track_ids import generate_id
from .track_models import MovePosition, Track, TrackStatus, utc_now

logger = logging.getLogger(__name__)

_MAX_ID_ATTEMPTS = 5


def _require(store: TrackRepo, track_id: str) -> Track:
    track = store.get(track_id)
    if track is None:
        raise NotFound(track_id)
    return track


def create(
    store: TrackRepo,
    *,
    title: str,
    parent_id: str | None = None,
    summary: str = "",
    next_prompt: str = "",
    worktree: str | None = None,
    sort_order: int | None = None,
    files: Iterable[str] | None = None,
) -> Track:
    """
    Create a new track in status "planned".

    The new track goes last among its siblings unless sort_order is given.
    A track without a parent is the project root; only one may exist.
    """
    clean_title = (title or "").strip()
    if not clean_title:
        raise EmptyTitle()

    with store.transaction():
        if parent_id is not None:
            parent = store.get(parent_id)
            if parent is None:
                raise UnknownParent(parent_id)
            final = first_final_ancestor(store, parent, include_self=True)
            if final is not None:
                raise AncestorFinal(
                    parent_id, TrackStatus.PLANNED.value, final.id, final.status.value
                )
        else:
            existing_root = store.get_root()
            if existing_root is not None:
                raise RootExists(existing_root.id)

        if sort_order is None:
            current_max = store.max_sort_order(parent_id)
            sort_order = 0 if current_max is None else current_max + 1

        now = utc_now()
        track = Track(
            id="",
            title=clean_title,
            parent_id=parent_id,
            summary=summary or "",
            next_prompt=next_prompt or "",
            status=TrackStatus.PLANNED,
            worktree=worktree,
            sort_order=int(sort_order),
            archived=False,
            created_at=now,
            updated_at=now,
            completed_at=None,
        )

        for attempt in range(_MAX_ID_ATTEMPTS):
            track.id = generate_id()
            try:
                store.insert(track)
                break
            except DuplicateId:
                logger.warning("Track id collision id=%s attempt=%d", track.id, attempt + 1)
        else:
            raise DuplicateId(track.id)

        if files:
            store.add_files(track.id, files)

    logger.info("Track created id=%s parent=%s title=%r", track.id, parent_id, clean_title)
    return track


def children_of(store: TrackRepo, track_id: str) -> list[Track]:
    return store.list_children(track_id)


def descendants_of(store: TrackRepo, track_id: str) -> list[Track]:
    """
    All transitive children of track_id, breadth-first.

    Uses an explicit queue instead of recursion; siblings are visited in
    sort order so the result is deterministic for a given tree.
    """
    out: list[Track] = []
    seen: set[str] = {track_id}
    queue: deque[str] = deque([track_id])
    while queue:
        current = queue.popleft()
        for child in store.list_children(current):
            if child.id in seen:
                continue
            seen.add(child.id)
            out.append(child)
            queue.append(child.id)
    return out


def ancestors_of(store: TrackRepo, track_id: str) -> list[Track]:
    """Parent first, root last."""
    track = _require(store, track_id)
    return _walk_up(store, track)


def _walk_up(store: TrackRepo, track: Track) -> list[Track]:
    out: list[Track] = []
    seen: set[str] = {track.id}
    parent_id = track.parent_id
    while parent_id is not None and parent_id not in seen:
        parent = store.get(parent_id)
        if parent is None:
            break
        out.append(parent)
        seen.add(parent.id)
        parent_id = parent.parent_id
    return out


def first_final_ancestor(store: TrackRepo, track: Track, *, include_self: bool = False) -> Track | None:
    """Nearest ancestor (or the track itself) whose status is done/superseded."""
    if include_self and track.status.is_final:
        return track
    for ancestor in _walk_up(store, track):
        if ancestor.status.is_final:
            return ancestor
    return None


def move_relative(
    store: TrackRepo,
    track_id: str,
    target_id: str,
    position: MovePosition | str,
) -> list[str]:
    """
    Place track_id immediately before/after target_id among their siblings.

    The whole sibling list is renumbered 0..n-1 in the new order, so repeated
    moves never drift and untouched siblings keep their relative order.
    Returns the sibling ids in their new order.
    """
    pos = MovePosition.parse(position)
    if track_id == target_id:
        raise SelfMove(track_id)

    with store.transaction():
        track = _require(store, track_id)
        target = store.get(target_id)
        if target is None:
            raise NotFound(target_id, what="target track")
        if track.parent_id != target.parent_id:
            raise DifferentParent(track_id, target_id, track.parent_id, target.parent_id)
        if track.parent_id is None:
            # Only the root has no parent; it has no siblings to reorder against.
            return [track.id]

        ordered = [t.id for t in store.list_children(track.parent_id) if t.id != track_id]
        index = ordered.index(target_id)
        ordered.insert(index if pos is MovePosition.BEFORE else index + 1, track_id)

        siblings = {t.id: t for t in store.list_children(track.parent_id)}
        now = utc_now()
        changed = 0
        for new_order, sibling_id in enumerate(ordered):
            if siblings[sibling_id].sort_order != new_order:
                store.update(sibling_id, sort_order=new_order, updated_at=now)
                changed += 1

    logger.info(
        "Track moved id=%s %s target=%s renumbered=%d", track_id, pos.value, target_id, changed
    )
    return ordered


def delete_cascade(store: TrackRepo, track_id: str) -> int:
    """
    Delete a track together with its whole subtree.

    File associations and dependency edges (either direction) touching any
    deleted id go in the same transaction. Returns the number of deleted tracks.
    """
    with store.transaction():
        track = _require(store, track_id)
        if track.is_root:
            raise CannotDeleteRoot(track_id)

        descendants = descendants_of(store, track_id)
        doomed = [track_id, *(d.id for d in descendants)]

        n_files = store.delete_files_for(doomed)
        n_edges = store.delete_dependencies_touching(doomed)
        # Breadth-first order reversed: children always go before their parent.
        for doomed_id in reversed(doomed):
            store.delete(doomed_id)

    logger.info(
        "Track deleted id=%s descendants=%d files=%d edges=%d",
        track_id,
        len(descendants),
        n_files,
        n_edges,
    )
    return len(doomed)
