# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from track_core.config import Settings
from track_core.tracks import hierarchy
from track_core.tracks.track_api import TrackManager
from track_core.tracks.track_models import Track
from track_core.tracks.track_store import SQLiteTrackStore

from .fakes import InMemoryTrackRepo


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Explicit settings for tests.

    We build Settings directly rather than reading the environment, to keep
    unit tests isolated and deterministic.
    """
    return Settings(
        track_dir_name=".track",
        db_file_name="track.db",
        project_root=None,
        log_level="DEBUG",
        log_to_file=False,
        busy_timeout_ms=1000,
    )


@pytest.fixture()
def sqlite_store(tmp_path: Path) -> SQLiteTrackStore:
    return SQLiteTrackStore(tmp_path / ".track" / "track.db", timeout=1.0)


@pytest.fixture(params=["sqlite", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    """
    Engine tests run against both TrackRepo implementations.

    NOTE: the SQLite store is the one hosts use; the in-memory repo checks that
    the engine only relies on the port.
    """
    if request.param == "sqlite":
        return SQLiteTrackStore(tmp_path / ".track" / "track.db", timeout=1.0)
    return InMemoryTrackRepo()


@pytest.fixture()
def root(store) -> Track:
    return hierarchy.create(store, title="Project", sort_order=0)


@pytest.fixture()
def manager(store, root: Track) -> TrackManager:
    return TrackManager(store)
