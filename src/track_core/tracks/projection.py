# src/track_core/tracks/projection.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from ..core.ports import TrackRepo
from . import hierarchy
from .track_errors import NotFound
from .track_models import ACTIVE_STATUSES, Dependency, Track, TrackKind, TrackStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackDetails:
    """Read-only view of one track plus its relations, for renderers."""

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
    completed_at: str | None
    kind: TrackKind
    files: tuple[str, ...]
    children: tuple[str, ...]
    blocks: tuple[str, ...]
    blocked_by: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["kind"] = self.kind.value
        for key in ("files", "children", "blocks", "blocked_by"):
            data[key] = list(data[key])
        return data


def _kind_for(track: Track, has_children: bool) -> TrackKind:
    if track.is_root:
        return TrackKind.SUPER
    return TrackKind.FEATURE if has_children else TrackKind.TASK


def build_track_tree(
    tracks: Iterable[Track],
    file_map: Mapping[str, list[str]],
    dependencies: Iterable[Dependency],
) -> list[TrackDetails]:
    """
    Attach derived fields to each track.

    children only lists ids present in `tracks` (so filtered views stay
    self-consistent); blocks/blocked_by always reflect the full edge set.
    Input order is kept; children follow sibling order.
    """
    track_list = list(tracks)
    present = {t.id for t in track_list}

    children: dict[str, list[Track]] = {}
    for t in track_list:
        if t.parent_id is not None and t.parent_id in present:
            children.setdefault(t.parent_id, []).append(t)

    blocks: dict[str, list[str]] = {}
    blocked_by: dict[str, list[str]] = {}
    for dep in dependencies:
        blocks.setdefault(dep.blocking_id, []).append(dep.blocked_id)
        blocked_by.setdefault(dep.blocked_id, []).append(dep.blocking_id)

    out: list[TrackDetails] = []
    for t in track_list:
        kids = sorted(children.get(t.id, []), key=lambda c: (c.sort_order, c.created_at))
        out.append(
            TrackDetails(
                id=t.id,
                title=t.title,
                parent_id=t.parent_id,
                summary=t.summary,
                next_prompt=t.next_prompt,
                status=t.status,
                worktree=t.worktree,
                sort_order=t.sort_order,
                archived=t.archived,
                created_at=t.created_at,
                updated_at=t.updated_at,
                completed_at=t.completed_at,
                kind=_kind_for(t, bool(kids)),
                files=tuple(file_map.get(t.id, ())),
                children=tuple(c.id for c in kids),
                blocks=tuple(blocks.get(t.id, ())),
                blocked_by=tuple(blocked_by.get(t.id, ())),
            )
        )
    return out


def project(store: TrackRepo, track_id: str) -> TrackDetails:
    """Composite view of a single track (all children, regardless of status)."""
    track = store.get(track_id)
    if track is None:
        raise NotFound(track_id)

    kids = store.list_children(track_id)
    deps = [
        *(Dependency(track_id, d) for d in store.dependents_of(track_id)),
        *(Dependency(b, track_id) for b in store.blockers_of(track_id)),
    ]
    details = build_track_tree([track, *kids], {track_id: store.files_of(track_id)}, deps)
    return details[0]


def status_view(
    store: TrackRepo,
    *,
    track_id: str | None = None,
    include_all: bool = False,
    worktree: str | None = None,
    include_archived: bool = False,
) -> list[TrackDetails]:
    """
    Tracks for a status listing.

    Default: active, unarchived tracks (plus the root if it is active).
    include_all: every track. worktree: only tracks tagged with it.
    track_id: that track and its descendants within the filtered set; the
    target itself is always included.
    """
    if include_all:
        tracks = store.query_all()
    else:
        tracks = store.query_all(statuses=ACTIVE_STATUSES, unarchived_only=not include_archived)

    if track_id is not None:
        target = store.get(track_id)
        if target is None:
            raise NotFound(track_id)
        wanted = {track_id, *(d.id for d in hierarchy.descendants_of(store, track_id))}
        tracks = [t for t in tracks if t.id in wanted]
        if not any(t.id == track_id for t in tracks):
            tracks = [target, *tracks]
    else:
        if worktree is not None:
            tracks = [t for t in tracks if t.worktree == worktree]
        if not include_all:
            root = store.get_root()
            if (
                root is not None
                and root.status in ACTIVE_STATUSES
                and not any(t.id == root.id for t in tracks)
            ):
                tracks = [root, *tracks]

    logger.debug(
        "Status view track=%s all=%s worktree=%s -> %d tracks",
        track_id,
        include_all,
        worktree,
        len(tracks),
    )
    return build_track_tree(tracks, store.all_files(), store.all_dependencies())
