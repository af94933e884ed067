# tests/test_status_machine.py

from __future__ import annotations

import pytest

from track_core.tracks import hierarchy, status_machine
from track_core.tracks.track_errors import (
    AncestorFinal,
    CycleDetected,
    EmptyTitle,
    InvalidStatus,
    InvalidTransition,
    NoOpTransition,
    NotArchivable,
    NotFound,
)
from track_core.tracks.track_models import SUPERSEDED_NEXT_PROMPT, TrackStatus


def _status(store, track_id: str) -> TrackStatus:
    track = store.get(track_id)
    assert track is not None
    return track.status


def test_same_status_is_rejected(store, root) -> None:
    t = hierarchy.create(store, title="T", parent_id=root.id)
    with pytest.raises(NoOpTransition):
        status_machine.set_status(store, t.id, "planned")
    with pytest.raises(InvalidStatus):
        status_machine.set_status(store, t.id, "finished")
    with pytest.raises(NotFound):
        status_machine.set_status(store, "missing0", TrackStatus.DONE)


def test_on_hold_resume_needs_trusted_caller(store, root) -> None:
    t = hierarchy.create(store, title="T", parent_id=root.id)
    status_machine.set_status(store, t.id, TrackStatus.ON_HOLD)

    with pytest.raises(InvalidTransition) as exc:
        status_machine.set_status(store, t.id, TrackStatus.IN_PROGRESS)
    assert exc.value.from_status == "on_hold"
    assert _status(store, t.id) is TrackStatus.ON_HOLD

    change = status_machine.set_status(store, t.id, TrackStatus.IN_PROGRESS, trusted=True)
    assert change.old_status is TrackStatus.ON_HOLD
    assert _status(store, t.id) is TrackStatus.IN_PROGRESS


def test_non_final_status_under_final_ancestor_is_rejected(store, root) -> None:
    parent = hierarchy.create(store, title="Parent", parent_id=root.id)
    child = hierarchy.create(store, title="Child", parent_id=parent.id)
    grandchild = hierarchy.create(store, title="Grandchild", parent_id=child.id)
    status_machine.set_status(store, parent.id, TrackStatus.DONE)

    for target in (TrackStatus.PLANNED, TrackStatus.IN_PROGRESS, TrackStatus.BLOCKED, TrackStatus.ON_HOLD):
        with pytest.raises(AncestorFinal) as exc:
            status_machine.set_status(store, grandchild.id, target)
        assert exc.value.ancestor_id in (parent.id, child.id)
        assert _status(store, grandchild.id) is TrackStatus.SUPERSEDED

    # Final statuses are still allowed below a final ancestor.
    status_machine.set_status(store, grandchild.id, TrackStatus.DONE)
    assert _status(store, grandchild.id) is TrackStatus.DONE


def test_done_stamps_completed_at(store, root) -> None:
    t = hierarchy.create(store, title="T", parent_id=root.id)
    change = status_machine.set_status(store, t.id, TrackStatus.DONE)

    stored = store.get(t.id)
    assert change.new_status is TrackStatus.DONE
    assert stored.status is TrackStatus.DONE
    assert stored.completed_at is not None
    assert stored.completed_at == stored.updated_at

    # Leaving a final status keeps the completion stamp as-is.
    status_machine.set_status(store, t.id, TrackStatus.IN_PROGRESS)
    again = store.get(t.id)
    assert again.completed_at == stored.completed_at


def test_done_supersedes_active_descendants(store, root) -> None:
    parent = hierarchy.create(store, title="Parent", parent_id=root.id)
    planned = hierarchy.create(store, title="Planned", parent_id=parent.id, next_prompt="do it")
    held = hierarchy.create(store, title="Held", parent_id=parent.id)
    finished = hierarchy.create(store, title="Finished", parent_id=parent.id)
    nested = hierarchy.create(store, title="Nested", parent_id=held.id)
    status_machine.set_status(store, held.id, TrackStatus.ON_HOLD)
    status_machine.set_status(store, finished.id, TrackStatus.DONE)
    finished_at = store.get(finished.id).completed_at

    change = status_machine.set_status(store, parent.id, TrackStatus.DONE)

    assert change.superseded == [planned.id, held.id, nested.id]
    for track_id in change.superseded:
        t = store.get(track_id)
        assert t.status is TrackStatus.SUPERSEDED
        assert t.next_prompt == SUPERSEDED_NEXT_PROMPT
        assert t.completed_at is not None

    untouched = store.get(finished.id)
    assert untouched.status is TrackStatus.DONE
    assert untouched.completed_at == finished_at


def test_block_unblock_end_to_end(store, root) -> None:
    a = hierarchy.create(store, title="A", parent_id=root.id)
    b = hierarchy.create(store, title="B", parent_id=root.id)

    edge = status_machine.block(store, b.id, a.id)
    assert edge.edge_changed is True
    assert edge.cascaded_status is TrackStatus.BLOCKED
    assert _status(store, a.id) is TrackStatus.BLOCKED

    change = status_machine.set_status(store, b.id, TrackStatus.DONE)
    assert change.unblocked == [a.id]
    assert _status(store, a.id) is TrackStatus.PLANNED
    assert _status(store, b.id) is TrackStatus.DONE
    assert store.get(b.id).completed_at is not None


def test_done_waits_for_all_blockers(store, root) -> None:
    a = hierarchy.create(store, title="A", parent_id=root.id)
    b1 = hierarchy.create(store, title="B1", parent_id=root.id)
    b2 = hierarchy.create(store, title="B2", parent_id=root.id)
    status_machine.block(store, b1.id, a.id)
    status_machine.block(store, b2.id, a.id)

    assert status_machine.set_status(store, b1.id, TrackStatus.DONE).unblocked == []
    assert _status(store, a.id) is TrackStatus.BLOCKED

    assert status_machine.set_status(store, b2.id, TrackStatus.DONE).unblocked == [a.id]
    assert _status(store, a.id) is TrackStatus.PLANNED


def test_block_only_affects_planned_tracks(store, root) -> None:
    a = hierarchy.create(store, title="A", parent_id=root.id)
    b = hierarchy.create(store, title="B", parent_id=root.id)
    status_machine.set_status(store, a.id, TrackStatus.IN_PROGRESS)

    edge = status_machine.block(store, b.id, a.id)
    assert edge.cascaded_status is None
    assert _status(store, a.id) is TrackStatus.IN_PROGRESS

    with pytest.raises(CycleDetected):
        status_machine.block(store, a.id, b.id)
    assert _status(store, b.id) is TrackStatus.PLANNED


def test_unblock_restores_planned_when_no_blockers_left(store, root) -> None:
    a = hierarchy.create(store, title="A", parent_id=root.id)
    b1 = hierarchy.create(store, title="B1", parent_id=root.id)
    b2 = hierarchy.create(store, title="B2", parent_id=root.id)
    status_machine.block(store, b1.id, a.id)
    status_machine.block(store, b2.id, a.id)

    assert status_machine.unblock(store, b1.id, a.id).cascaded_status is None
    assert _status(store, a.id) is TrackStatus.BLOCKED

    edge = status_machine.unblock(store, b2.id, a.id)
    assert edge.edge_changed is True
    assert edge.cascaded_status is TrackStatus.PLANNED
    assert _status(store, a.id) is TrackStatus.PLANNED

    # Removing an edge that is not there is fine.
    again = status_machine.unblock(store, b2.id, a.id)
    assert again.edge_changed is False
    assert again.cascaded_status is None


def test_unblock_of_manually_blocked_track_without_edges(store, root) -> None:
    a = hierarchy.create(store, title="A", parent_id=root.id)
    b = hierarchy.create(store, title="B", parent_id=root.id)
    status_machine.set_status(store, a.id, TrackStatus.BLOCKED)

    edge = status_machine.unblock(store, b.id, a.id)
    assert edge.edge_changed is False
    assert _status(store, a.id) is TrackStatus.PLANNED


def test_cascade_failure_rolls_back_everything(store, root, monkeypatch) -> None:
    parent = hierarchy.create(store, title="Parent", parent_id=root.id)
    first = hierarchy.create(store, title="First", parent_id=parent.id)
    second = hierarchy.create(store, title="Second", parent_id=parent.id)

    original_update = store.update

    def failing_update(track_id, **fields):
        if track_id == second.id:
            raise RuntimeError("disk full")
        return original_update(track_id, **fields)

    monkeypatch.setattr(store, "update", failing_update)

    with pytest.raises(RuntimeError, match="disk full"):
        status_machine.set_status(store, parent.id, TrackStatus.DONE)

    monkeypatch.undo()
    assert _status(store, parent.id) is TrackStatus.PLANNED
    assert store.get(parent.id).completed_at is None
    assert _status(store, first.id) is TrackStatus.PLANNED
    assert _status(store, second.id) is TrackStatus.PLANNED


def test_update_fields_never_cascade(store, root) -> None:
    t = hierarchy.create(store, title="T", parent_id=root.id)
    status_machine.set_status(store, root.id, TrackStatus.DONE)

    updated = status_machine.update_fields(
        store, t.id, title="Renamed", summary="now", next_prompt="later", worktree="wt-1"
    )
    assert updated.title == "Renamed"
    assert (updated.summary, updated.next_prompt, updated.worktree) == ("now", "later", "wt-1")
    assert updated.status is TrackStatus.SUPERSEDED

    cleared = status_machine.update_fields(store, t.id, worktree=None)
    assert cleared.worktree is None
    assert cleared.title == "Renamed"

    with pytest.raises(EmptyTitle):
        status_machine.update_fields(store, t.id, title=" ")
    assert status_machine.add_files(store, t.id, ["x.py", "x.py", " "]) == 1
    assert status_machine.add_files(store, t.id, ["x.py"]) == 0


def test_archive_rules(store, root) -> None:
    t = hierarchy.create(store, title="T", parent_id=root.id)
    child = hierarchy.create(store, title="Child", parent_id=t.id)

    with pytest.raises(NotArchivable):
        status_machine.set_archived(store, t.id, True)
    assert store.get(t.id).archived is False

    status_machine.set_status(store, t.id, TrackStatus.DONE)
    assert status_machine.set_archived(store, t.id, True) is True
    assert status_machine.set_archived(store, t.id, True) is False
    assert store.get(t.id).archived is True
    # Flat: the (superseded) child keeps its own flag.
    assert store.get(child.id).archived is False

    # Unarchive has no status precondition.
    assert status_machine.set_archived(store, t.id, False) is True
    assert store.get(t.id).archived is False
    with pytest.raises(NotFound):
        status_machine.set_archived(store, "missing0", True)


def test_cascades_see_edges_added_after_the_status_write(store, root) -> None:
    t = hierarchy.create(store, title="T", parent_id=root.id)
    x = hierarchy.create(store, title="X", parent_id=root.id)

    with store.transaction():
        change = status_machine.write_status(store, t.id, TrackStatus.DONE)
        assert change.unblocked == []
        status_machine.block(store, t.id, x.id)
        assert _status(store, x.id) is TrackStatus.BLOCKED
        status_machine.apply_cascades(store, change)

    assert change.unblocked == [x.id]
    assert _status(store, x.id) is TrackStatus.PLANNED
    assert store.get(t.id).completed_at == change.changed_at
