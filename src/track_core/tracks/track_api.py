# src/track_core/tracks/track_api.py

"""
High-level entry point for hosts (CLI dispatcher, agent server, browser API).

TrackManager wraps one store handle and exposes the engine operations with
the argument shapes front-ends use. Every call that writes runs in a single
store transaction, so a failed cascade never leaves partial changes behind.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import TrackRepo
from . import dependencies, hierarchy, projection, status_machine
from .projection import TrackDetails
from .status_machine import EdgeChange, StatusChange
from .track_errors import AmbiguousTrack, NotFound
from .track_models import UNSET, MovePosition, Track, TrackStatus

logger = logging.getLogger(__name__)

# Passing this as worktree to update_track clears the tag.
UNSET_WORKTREE = "-"


@dataclass(slots=True)
class UpdateResult:
    track: Track
    status_change: StatusChange | None = None
    files_added: int = 0
    added_blocks: list[str] = field(default_factory=list)
    removed_blocks: list[str] = field(default_factory=list)
    auto_blocked: list[str] = field(default_factory=list)
    auto_unblocked: list[str] = field(default_factory=list)

    @property
    def unblocked(self) -> list[str]:
        cascaded = self.status_change.unblocked if self.status_change else []
        return [*self.auto_unblocked, *cascaded]

    @property
    def superseded(self) -> list[str]:
        return list(self.status_change.superseded) if self.status_change else []


class TrackManager:
    def __init__(self, store: TrackRepo) -> None:
        self._store = store

    @property
    def store(self) -> TrackRepo:
        return self._store

    # ---- reads ----

    def get_track(self, track_id: str) -> Track | None:
        return self._store.get(track_id)

    def track_exists(self, track_id: str) -> bool:
        return self._store.exists(track_id)

    def get_root(self) -> Track | None:
        return self._store.get_root()

    def resolve_track_id(self, value: str) -> str:
        """
        Resolve a track id or an exact title to a track id.

        Ids win over titles. Raises NotFound or AmbiguousTrack.
        """
        needle = (value or "").strip()
        if needle and self._store.exists(needle):
            return needle
        matches = self._store.find_by_title(needle) if needle else []
        if not matches:
            raise NotFound(value)
        if len(matches) > 1:
            raise AmbiguousTrack(value, matches)
        return matches[0].id

    def get_details(self, track_id: str) -> TrackDetails:
        return projection.project(self._store, track_id)

    def get_status(
        self,
        *,
        track_id: str | None = None,
        include_all: bool = False,
        worktree: str | None = None,
        include_archived: bool = False,
    ) -> list[TrackDetails]:
        return projection.status_view(
            self._store,
            track_id=track_id,
            include_all=include_all,
            worktree=worktree,
            include_archived=include_archived,
        )

    def children_of(self, track_id: str) -> list[Track]:
        return hierarchy.children_of(self._store, track_id)

    def descendants_of(self, track_id: str) -> list[Track]:
        return hierarchy.descendants_of(self._store, track_id)

    def blockers_of(self, track_id: str) -> list[str]:
        return dependencies.blockers_of(self._store, track_id)

    def dependents_of(self, track_id: str) -> list[str]:
        return dependencies.dependents_of(self._store, track_id)

    def would_create_cycle(self, blocking_id: str, blocked_id: str) -> bool:
        return dependencies.would_create_cycle(self._store, blocking_id, blocked_id)

    # ---- writes ----

    def create_track(
        self,
        *,
        title: str,
        parent_id: str | None = None,
        summary: str = "",
        next_prompt: str = "",
        worktree: str | None = None,
        files: Iterable[str] | None = None,
    ) -> Track:
        if parent_id is None:
            root = self._store.get_root()
            if root is not None:
                parent_id = root.id
        return hierarchy.create(
            self._store,
            title=title,
            parent_id=parent_id,
            summary=summary,
            next_prompt=next_prompt,
            worktree=worktree,
            files=files,
        )

    def update_track(
        self,
        track_id: str,
        *,
        status: TrackStatus | str | None = None,
        trusted: bool = False,
        title: Any = UNSET,
        summary: Any = UNSET,
        next_prompt: Any = UNSET,
        worktree: Any = UNSET,
        files: Sequence[str] | None = None,
        blocks: Sequence[str] | None = None,
        unblocks: Sequence[str] | None = None,
    ) -> UpdateResult:
        """
        Apply a combined update in one transaction.

        Order: status write, text fields, files, new blocking edges, removed
        blocking edges, and last the status cascades. Running the done
        cascade after the edge changes lets it release tracks blocked in the
        same call. Any failure rolls back all of it.
        """
        if worktree == UNSET_WORKTREE:
            worktree = None

        store = self._store
        with store.transaction():
            if not store.exists(track_id):
                raise NotFound(track_id)

            status_change = None
            if status is not None:
                status_change = status_machine.write_status(store, track_id, status, trusted=trusted)

            track = status_machine.update_fields(
                store,
                track_id,
                title=title,
                summary=summary,
                next_prompt=next_prompt,
                worktree=worktree,
            )
            result = UpdateResult(track=track, status_change=status_change)

            if files:
                result.files_added = status_machine.add_files(store, track_id, files)

            for blocked_id in blocks or ():
                change = status_machine.block(store, track_id, blocked_id)
                result.added_blocks.append(blocked_id)
                if change.cascaded_status is TrackStatus.BLOCKED:
                    result.auto_blocked.append(blocked_id)

            for blocked_id in unblocks or ():
                change = status_machine.unblock(store, track_id, blocked_id)
                result.removed_blocks.append(blocked_id)
                if change.cascaded_status is TrackStatus.PLANNED:
                    result.auto_unblocked.append(blocked_id)

            if status_change is not None:
                status_machine.apply_cascades(store, status_change)

            result.track = store.get(track_id) or track

        logger.info(
            "Track updated id=%s status=%s blocks=%s unblocks=%s unblocked=%s superseded=%s",
            track_id,
            result.track.status.value,
            result.added_blocks,
            result.removed_blocks,
            result.unblocked,
            result.superseded,
        )
        return result

    def set_status(self, track_id: str, status: TrackStatus | str, *, trusted: bool = False) -> StatusChange:
        return status_machine.set_status(self._store, track_id, status, trusted=trusted)

    def add_files(self, track_id: str, paths: Iterable[str]) -> int:
        return status_machine.add_files(self._store, track_id, paths)

    def add_dependency(self, blocking_id: str, blocked_id: str) -> EdgeChange:
        return status_machine.block(self._store, blocking_id, blocked_id)

    def remove_dependency(self, blocking_id: str, blocked_id: str) -> EdgeChange:
        return status_machine.unblock(self._store, blocking_id, blocked_id)

    def move_track(self, track_id: str, target_id: str, position: MovePosition | str) -> list[str]:
        return hierarchy.move_relative(self._store, track_id, target_id, position)

    def delete_track(self, track_id: str) -> int:
        return hierarchy.delete_cascade(self._store, track_id)

    def set_archived(self, track_id: str, archived: bool) -> bool:
        return status_machine.set_archived(self._store, track_id, archived)
