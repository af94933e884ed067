# tests/test_track_api.py

from __future__ import annotations

import pytest

from track_core.tracks.track_api import TrackManager
from track_core.tracks.track_errors import AmbiguousTrack, CycleDetected, NotFound, UnknownTrack
from track_core.tracks.track_models import TrackStatus


def test_create_track_defaults_to_root_parent(manager: TrackManager, root) -> None:
    t = manager.create_track(title="Feature", files=["a.py"])
    assert t.parent_id == root.id
    assert manager.store.files_of(t.id) == ["a.py"]
    assert manager.get_root().id == root.id
    assert [c.id for c in manager.children_of(root.id)] == [t.id]


def test_resolve_track_id(manager: TrackManager) -> None:
    a = manager.create_track(title="Login page")
    dup1 = manager.create_track(title="Refactor")
    dup2 = manager.create_track(title="Refactor")

    assert manager.resolve_track_id(a.id) == a.id
    assert manager.resolve_track_id("Login page") == a.id

    with pytest.raises(AmbiguousTrack) as exc:
        manager.resolve_track_id("Refactor")
    assert {m.id for m in exc.value.matches} == {dup1.id, dup2.id}

    with pytest.raises(NotFound):
        manager.resolve_track_id("nothing like this")
    with pytest.raises(NotFound):
        manager.resolve_track_id("")


def test_update_track_combined(manager: TrackManager) -> None:
    t = manager.create_track(title="T")
    other = manager.create_track(title="Other")
    third = manager.create_track(title="Third")
    manager.add_dependency(third.id, t.id)

    result = manager.update_track(
        t.id,
        status="in_progress",
        summary="working",
        next_prompt="finish",
        worktree="feature-x",
        files=["t.py"],
        blocks=[other.id],
    )

    assert result.status_change is not None
    assert result.status_change.old_status is TrackStatus.BLOCKED
    assert result.track.status is TrackStatus.IN_PROGRESS
    assert result.track.summary == "working"
    assert result.track.worktree == "feature-x"
    assert result.files_added == 1
    assert result.added_blocks == [other.id]
    assert result.auto_blocked == [other.id]
    assert manager.get_track(other.id).status is TrackStatus.BLOCKED

    result = manager.update_track(t.id, status="done", worktree="-", unblocks=[other.id])
    assert result.track.worktree is None
    assert result.removed_blocks == [other.id]
    # Edges are removed before the done cascade runs, so the release is reported here.
    assert result.auto_unblocked == [other.id]
    assert result.status_change.unblocked == []
    assert result.unblocked == [other.id]
    assert manager.get_track(other.id).status is TrackStatus.PLANNED


def test_update_track_single_field_leaves_others_alone(manager: TrackManager) -> None:
    t = manager.create_track(title="T", next_prompt="keep me", worktree="wt")

    result = manager.update_track(t.id, summary="s")

    assert result.status_change is None
    assert result.track.summary == "s"
    assert result.track.title == "T"
    assert result.track.next_prompt == "keep me"
    assert result.track.worktree == "wt"
    assert result.track.status is TrackStatus.PLANNED

    # Nothing to change is fine too.
    assert manager.update_track(t.id).track.summary == "s"


def test_update_track_done_releases_tracks_blocked_in_same_call(manager: TrackManager) -> None:
    t = manager.create_track(title="T")
    x = manager.create_track(title="X")
    y = manager.create_track(title="Y")
    manager.add_dependency(y.id, x.id)

    first = manager.update_track(t.id, status="done", blocks=[x.id])
    # y still blocks x, so x stays blocked.
    assert first.auto_blocked == []
    assert first.unblocked == []
    assert manager.get_track(x.id).status is TrackStatus.BLOCKED

    u = manager.create_track(title="U")
    v = manager.create_track(title="V")
    result = manager.update_track(u.id, status="done", blocks=[v.id])

    assert result.auto_blocked == [v.id]
    assert result.status_change.unblocked == [v.id]
    assert result.unblocked == [v.id]
    assert manager.get_track(v.id).status is TrackStatus.PLANNED
    assert manager.blockers_of(v.id) == [u.id]


def test_update_track_rolls_back_on_failure(manager: TrackManager) -> None:
    a = manager.create_track(title="A")
    b = manager.create_track(title="B")
    manager.add_dependency(a.id, b.id)

    with pytest.raises(CycleDetected):
        manager.update_track(b.id, status="in_progress", summary="changed", blocks=[a.id])

    b_after = manager.get_track(b.id)
    assert b_after.status is TrackStatus.BLOCKED
    assert b_after.summary == ""
    assert manager.blockers_of(a.id) == []

    with pytest.raises(UnknownTrack):
        manager.update_track(b.id, summary="x", blocks=["missing0"])
    assert manager.get_track(b.id).summary == ""

    with pytest.raises(NotFound):
        manager.update_track("missing0", summary="x")


def test_manager_write_passthroughs(manager: TrackManager, root) -> None:
    a = manager.create_track(title="A")
    b = manager.create_track(title="B")
    child = manager.create_track(title="Child", parent_id=a.id)

    assert manager.move_track(b.id, a.id, "before") == [b.id, a.id]
    assert manager.would_create_cycle(a.id, b.id) is False
    assert manager.add_dependency(a.id, b.id).edge_changed is True
    assert manager.dependents_of(a.id) == [b.id]
    assert manager.remove_dependency(a.id, b.id).cascaded_status is TrackStatus.PLANNED

    assert manager.set_status(a.id, TrackStatus.DONE).superseded == [child.id]
    assert manager.set_archived(a.id, True) is True
    assert manager.add_files(b.id, ["b.py"]) == 1
    assert manager.get_details(a.id).children == (child.id,)
    assert [d.id for d in manager.get_status()] == [root.id, b.id]

    assert manager.delete_track(a.id) == 2
    assert not manager.track_exists(child.id)
    assert [d.id for d in manager.descendants_of(root.id)] == [b.id]
