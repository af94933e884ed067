# src/track_core/tracks/dependencies.py

"""
Blocking dependencies between tracks.

An edge (blocking_id, blocked_id) means blocking_id has to be done before
blocked_id can proceed. Edges may cross branches of the tree; the edge set is
kept acyclic by checking reachability before every insert.

This module only maintains the graph. Status side effects of adding/removing
an edge live in status_machine.block()/unblock().
"""

from __future__ import annotations

import logging
from collections import deque

from ..core.ports import TrackRepo
from .track_errors import CycleDetected, SelfDependency, UnknownTrack
from .track_models import TrackStatus

logger = logging.getLogger(__name__)


def blockers_of(store: TrackRepo, track_id: str) -> list[str]:
    """Ids of tracks that block track_id."""
    return store.blockers_of(track_id)


def dependents_of(store: TrackRepo, track_id: str) -> list[str]:
    """Ids of tracks that track_id blocks."""
    return store.dependents_of(track_id)


def would_create_cycle(store: TrackRepo, blocking_id: str, blocked_id: str) -> bool:
    """
    True if adding blocking_id -> blocked_id would close a cycle.

    That is the case when blocking_id is already reachable from blocked_id
    following existing blocking -> blocked edges.
    """
    if blocking_id == blocked_id:
        return True

    adjacency: dict[str, list[str]] = {}
    for dep in store.all_dependencies():
        adjacency.setdefault(dep.blocking_id, []).append(dep.blocked_id)

    seen: set[str] = {blocked_id}
    queue: deque[str] = deque([blocked_id])
    while queue:
        current = queue.popleft()
        for nxt in adjacency.get(current, ()):
            if nxt == blocking_id:
                return True
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return False


def add_edge(store: TrackRepo, blocking_id: str, blocked_id: str) -> bool:
    """
    Insert a blocking edge.

    Re-adding an existing edge is a no-op. Returns True if a new edge was stored.
    """
    if blocking_id == blocked_id:
        raise SelfDependency(blocking_id)

    with store.transaction():
        for track_id in (blocking_id, blocked_id):
            if not store.exists(track_id):
                raise UnknownTrack(track_id)
        if blocked_id in store.dependents_of(blocking_id):
            return False
        if would_create_cycle(store, blocking_id, blocked_id):
            raise CycleDetected(blocking_id, blocked_id)
        inserted = store.insert_dependency(blocking_id, blocked_id)

    if inserted:
        logger.info("Dependency added %s blocks %s", blocking_id, blocked_id)
    return inserted


def remove_edge(store: TrackRepo, blocking_id: str, blocked_id: str) -> bool:
    """Remove a blocking edge; removing a missing edge is not an error."""
    with store.transaction():
        removed = store.delete_dependency(blocking_id, blocked_id)
    if removed:
        logger.info("Dependency removed %s no longer blocks %s", blocking_id, blocked_id)
    return removed


def all_blockers_done(store: TrackRepo, track_id: str) -> bool:
    """True when track_id has at least one blocker and every blocker is done."""
    blockers = store.blockers_of(track_id)
    if not blockers:
        return False
    for blocker_id in blockers:
        blocker = store.get(blocker_id)
        if blocker is None or blocker.status is not TrackStatus.DONE:
            return False
    return True
