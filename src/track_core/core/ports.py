# src/track_core/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

Hierarchy, dependency and status functions depend on this Protocol instead of
the concrete SQLite store, so tests can run the same engine code against an
in-memory repo and hosts can pass their own handle explicitly.
"""

from collections.abc import Iterable
from contextlib import AbstractContextManager
from typing import Any, Protocol

from ..tracks.track_models import Dependency, Track, TrackStatus


class TrackRepo(Protocol):
    # Transaction scope: writes inside commit together or not at all.
    # Nested scopes join the outermost one.
    def transaction(self) -> AbstractContextManager[Any]: ...

    # Tracks
    def get(self, track_id: str) -> Track | None: ...
    def exists(self, track_id: str) -> bool: ...
    def insert(self, track: Track) -> None: ...
    def update(self, track_id: str, **fields: Any) -> None: ...
    def delete(self, track_id: str) -> None: ...

    def query_all(
            self,
            *,
            statuses: Iterable[TrackStatus] | None = None,
            unarchived_only: bool = False,
            worktree: str | None = None,
    ) -> list[Track]: ...

    def list_children(self, parent_id: str) -> list[Track]: ...
    def get_root(self) -> Track | None: ...
    def find_by_title(self, title: str) -> list[Track]: ...
    def max_sort_order(self, parent_id: str | None) -> int | None: ...
    def count_tracks(self) -> int: ...

    # Dependency edges (blocking_id -> blocked_id)
    def insert_dependency(self, blocking_id: str, blocked_id: str) -> bool: ...
    def delete_dependency(self, blocking_id: str, blocked_id: str) -> bool: ...
    def blockers_of(self, track_id: str) -> list[str]: ...
    def dependents_of(self, track_id: str) -> list[str]: ...
    def all_dependencies(self) -> list[Dependency]: ...
    def delete_dependencies_touching(self, track_ids: Iterable[str]) -> int: ...

    # File associations
    def add_files(self, track_id: str, paths: Iterable[str]) -> int: ...
    def files_of(self, track_id: str) -> list[str]: ...
    def all_files(self) -> dict[str, list[str]]: ...
    def delete_files_for(self, track_ids: Iterable[str]) -> int: ...
