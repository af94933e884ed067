# src/track_core/bootstrap.py

"""
Project bootstrap helpers.

This module is the "composition root" for hosts:
- locates the project (the directory holding the .track marker),
- creates the database and the root track on init,
- wires a SQLiteTrackStore into a TrackManager,
- optionally configures logging into the .track directory.
"""

from __future__ import annotations

import json
import logging
import shutil
import tomllib
from pathlib import Path

from .config import Settings, get_settings
from .logging_setup import level_from_name, setup_logging
from .tracks import hierarchy
from .tracks.track_api import TrackManager
from .tracks.track_errors import ProjectExists, ProjectNotFound
from .tracks.track_models import Track
from .tracks.track_store import SQLiteTrackStore

logger = logging.getLogger(__name__)


def find_project_root(start: str | Path | None = None, *, settings: Settings | None = None) -> Path | None:
    """Walk up from start (default: cwd) to the first directory containing the marker dir."""
    if settings is None:
        settings = get_settings()
    current = Path(start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if settings.track_dir(candidate).is_dir():
            return candidate
    return None


def _package_json_name(directory: Path) -> str | None:
    path = directory / "package.json"
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError):
        logger.debug("Unreadable package.json at %s", path, exc_info=True)
        return None
    name = data.get("name") if isinstance(data, dict) else None
    return name.strip() if isinstance(name, str) and name.strip() else None


def _pyproject_name(directory: Path) -> str | None:
    path = directory / "pyproject.toml"
    if not path.is_file():
        return None
    try:
        data = tomllib.loads(path.read_text("utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        logger.debug("Unreadable pyproject.toml at %s", path, exc_info=True)
        return None
    name = data.get("project", {}).get("name")
    return name.strip() if isinstance(name, str) and name.strip() else None


def detect_project_name(directory: str | Path) -> str:
    """package.json name, then pyproject.toml [project].name, then the directory name."""
    directory = Path(directory).resolve()
    return _package_json_name(directory) or _pyproject_name(directory) or directory.name


def open_store(root: str | Path, *, settings: Settings | None = None) -> SQLiteTrackStore:
    if settings is None:
        settings = get_settings()
    return SQLiteTrackStore(settings.db_path(root), timeout=settings.busy_timeout_seconds)


def init_project(
    directory: str | Path,
    *,
    name: str | None = None,
    force: bool = False,
    settings: Settings | None = None,
) -> Track:
    """
    Create <directory>/.track/track.db and the root track.

    Raises ProjectExists unless force=True, which wipes the marker dir first.
    """
    if settings is None:
        settings = get_settings()
    directory = Path(directory).resolve()
    track_dir = settings.track_dir(directory)

    if track_dir.exists():
        if not force:
            raise ProjectExists(track_dir)
        logger.warning("Removing existing track directory %s", track_dir)
        shutil.rmtree(track_dir)

    project_name = (name or "").strip() or detect_project_name(directory)
    store = open_store(directory, settings=settings)
    root = hierarchy.create(store, title=project_name, parent_id=None, sort_order=0)
    logger.info("Initialized track project name=%r root=%s db=%s", project_name, root.id, store.db_path)
    return root


def open_project(
    directory: str | Path | None = None,
    *,
    settings: Settings | None = None,
) -> TrackManager:
    """
    Open the project containing `directory` (default: TRACK_PROJECT_ROOT or cwd).

    Raises ProjectNotFound when no marker directory is found.
    """
    if settings is None:
        settings = get_settings()
    start = directory if directory is not None else settings.project_root
    root = find_project_root(start, settings=settings)
    if root is None:
        raise ProjectNotFound(Path(start or Path.cwd()))
    return TrackManager(open_store(root, settings=settings))


def configure_logging(root: str | Path, *, settings: Settings | None = None) -> None:
    """Host helper: console at the configured level, full log file in .track/."""
    if settings is None:
        settings = get_settings()
    log_dir = settings.track_dir(root) if settings.log_to_file else None
    setup_logging(log_dir=log_dir, console_level=level_from_name(settings.log_level))
