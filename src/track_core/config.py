# src/track_core/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole engine host.
- Nothing is read from disk except the optional .env file.
- Hosts and tests may build their own Settings and pass it explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TRACK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- Project layout ----
    track_dir_name: str
    db_file_name: str
    project_root: Path | None

    # ---- Logging ----
    log_level: str
    log_to_file: bool

    # ---- SQLite ----
    busy_timeout_ms: int

    def track_dir(self, root: str | Path) -> Path:
        return Path(root) / self.track_dir_name

    def db_path(self, root: str | Path) -> Path:
        return self.track_dir(root) / self.db_file_name

    @property
    def busy_timeout_seconds(self) -> float:
        return max(0, self.busy_timeout_ms) / 1000.0

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv(override=False)
        return Settings(
            track_dir_name=_env(_k("DIR_NAME"), ".track").strip() or ".track",
            db_file_name=_env(_k("DB_FILE"), "track.db").strip() or "track.db",
            project_root=_env_path(_k("PROJECT_ROOT")),
            log_level=_env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO",
            log_to_file=_env_bool(_k("LOG_TO_FILE"), True),
            busy_timeout_ms=_env_int(_k("BUSY_TIMEOUT_MS"), 30000),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
