# src/track_core/tracks/track_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from .track_errors import DuplicateId, NotFound
from .track_models import UPDATABLE_FIELDS, Dependency, Track, TrackStatus, utc_now

logger = logging.getLogger(__name__)

_TRACK_ORDER = "ORDER BY sort_order ASC, created_at ASC, rowid ASC"


class SQLiteTrackStore:
    """
    SQLite track store.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect columns missing from older databases
    - add columns with ALTER TABLE only when needed

    Transactions:
    - transaction() opens one connection, runs BEGIN IMMEDIATE and commits on
      exit (ROLLBACK on any exception). Nested scopes join the outer one.
    - methods called outside a transaction use a short-lived connection each.

    A store instance is meant to be used from one thread; separate processes
    (CLI invocations, a long-lived server) coordinate through SQLite locking.
    """

    def __init__(self, db_path: str | Path, *, timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = float(timeout)
        self._tx_conn: sqlite3.Connection | None = None
        self._ensure_schema()
        try:
            total = self.count_tracks()
        except sqlite3.Error:
            total = -1
        logger.info("TrackStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are demarcated explicitly below.
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.OperationalError):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        if self._tx_conn is not None:
            yield self._tx_conn
            return

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            self._tx_conn = conn
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                logger.debug("TrackStore transaction rolled back", exc_info=True)
                raise
            conn.execute("COMMIT")
        finally:
            self._tx_conn = None
            conn.close()

    @contextlib.contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        if self._tx_conn is not None:
            yield self._tx_conn
            return
        conn = self._get_conn()
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tracks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    parent_id TEXT REFERENCES tracks(id),
                    summary TEXT NOT NULL DEFAULT '',
                    next_prompt TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'planned',
                    worktree TEXT,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                )
                """
            )

            # Migrations (safe): add columns introduced after the first schema.
            cur.execute("PRAGMA table_info(tracks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tracks ADD COLUMN {name} {decl}")
                logger.info("TrackStore migration: added column %s", name)

            add_col("worktree", "TEXT")
            add_col("sort_order", "INTEGER NOT NULL DEFAULT 0")
            add_col("archived", "INTEGER NOT NULL DEFAULT 0")
            add_col("completed_at", "TEXT")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS track_files (
                    track_id TEXT NOT NULL REFERENCES tracks(id),
                    file_path TEXT NOT NULL,
                    UNIQUE (track_id, file_path)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS track_dependencies (
                    blocking_id TEXT NOT NULL REFERENCES tracks(id),
                    blocked_id TEXT NOT NULL REFERENCES tracks(id),
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (blocking_id, blocked_id),
                    CHECK (blocking_id <> blocked_id)
                )
                """
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tracks_parent ON tracks(parent_id, sort_order)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tracks_status ON tracks(status, archived)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_deps_blocked ON track_dependencies(blocked_id)")

    @staticmethod
    def _row_to_track(row: sqlite3.Row) -> Track:
        return Track(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            parent_id=row["parent_id"],
            summary=str(row["summary"] or ""),
            next_prompt=str(row["next_prompt"] or ""),
            status=TrackStatus.from_db(row["status"]),
            worktree=row["worktree"],
            sort_order=int(row["sort_order"] or 0),
            archived=bool(row["archived"]),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
            completed_at=row["completed_at"],
        )

    @staticmethod
    def _to_db(name: str, value: Any) -> Any:
        if name == "status":
            return TrackStatus.parse(value).value
        if name == "archived":
            return 1 if value else 0
        if name == "sort_order":
            return int(value)
        return value

    # ---- tracks ----

    def count_tracks(self) -> int:
        with self._reading() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tracks").fetchone()
            return int(n)

    def get(self, track_id: str) -> Track | None:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
            return self._row_to_track(row) if row else None

    def exists(self, track_id: str) -> bool:
        with self._reading() as conn:
            row = conn.execute("SELECT 1 FROM tracks WHERE id = ?", (track_id,)).fetchone()
            return row is not None

    def insert(self, track: Track) -> None:
        with self.transaction() as conn:
            if conn.execute("SELECT 1 FROM tracks WHERE id = ?", (track.id,)).fetchone():
                raise DuplicateId(track.id)
            conn.execute(
                """
                INSERT INTO tracks(
                    id, title, parent_id, summary, next_prompt, status,
                    worktree, sort_order, archived,
                    created_at, updated_at, completed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    track.id,
                    track.title,
                    track.parent_id,
                    track.summary,
                    track.next_prompt,
                    track.status.value,
                    track.worktree,
                    int(track.sort_order),
                    1 if track.archived else 0,
                    track.created_at,
                    track.updated_at,
                    track.completed_at,
                ),
            )
        logger.debug(
            "Track inserted id=%s parent=%s status=%s", track.id, track.parent_id, track.status.value
        )

    def update(self, track_id: str, **fields: Any) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown track fields: {', '.join(sorted(unknown))}")
        if not fields:
            if not self.exists(track_id):
                raise NotFound(track_id)
            return

        names = list(fields)
        assignments = ", ".join(f"{name} = ?" for name in names)
        params = [self._to_db(name, fields[name]) for name in names]
        params.append(track_id)

        with self.transaction() as conn:
            cur = conn.execute(f"UPDATE tracks SET {assignments} WHERE id = ?", params)
            if cur.rowcount == 0:
                raise NotFound(track_id)

    def delete(self, track_id: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM tracks WHERE id = ?", (track_id,))

    def query_all(
        self,
        *,
        statuses: Iterable[TrackStatus] | None = None,
        unarchived_only: bool = False,
        worktree: str | None = None,
    ) -> list[Track]:
        where: list[str] = []
        params: list[Any] = []

        if statuses is not None:
            values = [TrackStatus.parse(s).value for s in statuses]
            if not values:
                return []
            where.append(f"status IN ({','.join('?' for _ in values)})")
            params.extend(values)

        if unarchived_only:
            where.append("archived = 0")

        if worktree is not None:
            where.append("worktree = ?")
            params.append(worktree)

        sql = "SELECT * FROM tracks"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" {_TRACK_ORDER}"

        with self._reading() as conn:
            return [self._row_to_track(r) for r in conn.execute(sql, params).fetchall()]

    def list_children(self, parent_id: str) -> list[Track]:
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT * FROM tracks WHERE parent_id = ? {_TRACK_ORDER}", (parent_id,)
            ).fetchall()
            return [self._row_to_track(r) for r in rows]

    def get_root(self) -> Track | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT * FROM tracks WHERE parent_id IS NULL ORDER BY created_at ASC LIMIT 1"
            ).fetchone()
            return self._row_to_track(row) if row else None

    def find_by_title(self, title: str) -> list[Track]:
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT * FROM tracks WHERE title = ? {_TRACK_ORDER}", (title,)
            ).fetchall()
            return [self._row_to_track(r) for r in rows]

    def max_sort_order(self, parent_id: str | None) -> int | None:
        with self._reading() as conn:
            if parent_id is None:
                row = conn.execute(
                    "SELECT MAX(sort_order) FROM tracks WHERE parent_id IS NULL"
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT MAX(sort_order) FROM tracks WHERE parent_id = ?", (parent_id,)
                ).fetchone()
            return int(row[0]) if row and row[0] is not None else None

    # ---- dependencies ----

    def insert_dependency(self, blocking_id: str, blocked_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO track_dependencies(blocking_id, blocked_id, created_at)
                VALUES (?, ?, ?)
                """,
                (blocking_id, blocked_id, utc_now()),
            )
            return cur.rowcount == 1

    def delete_dependency(self, blocking_id: str, blocked_id: str) -> bool:
        with self.transaction() as conn:
            cur = conn.execute(
                "DELETE FROM track_dependencies WHERE blocking_id = ? AND blocked_id = ?",
                (blocking_id, blocked_id),
            )
            return cur.rowcount > 0

    def blockers_of(self, track_id: str) -> list[str]:
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT blocking_id FROM track_dependencies
                WHERE blocked_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (track_id,),
            ).fetchall()
            return [str(r["blocking_id"]) for r in rows]

    def dependents_of(self, track_id: str) -> list[str]:
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT blocked_id FROM track_dependencies
                WHERE blocking_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (track_id,),
            ).fetchall()
            return [str(r["blocked_id"]) for r in rows]

    def all_dependencies(self) -> list[Dependency]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT blocking_id, blocked_id FROM track_dependencies ORDER BY created_at ASC, rowid ASC"
            ).fetchall()
            return [Dependency(str(r["blocking_id"]), str(r["blocked_id"])) for r in rows]

    def delete_dependencies_touching(self, track_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(track_ids))
        if not ids:
            return 0
        ph = ",".join("?" for _ in ids)
        with self.transaction() as conn:
            cur = conn.execute(
                f"DELETE FROM track_dependencies WHERE blocking_id IN ({ph}) OR blocked_id IN ({ph})",
                [*ids, *ids],
            )
            return int(cur.rowcount)

    # ---- files ----

    def add_files(self, track_id: str, paths: Iterable[str]) -> int:
        clean = [p.strip() for p in paths if p and p.strip()]
        if not clean:
            return 0
        added = 0
        with self.transaction() as conn:
            for path in dict.fromkeys(clean):
                cur = conn.execute(
                    "INSERT OR IGNORE INTO track_files(track_id, file_path) VALUES (?, ?)",
                    (track_id, path),
                )
                added += cur.rowcount
        return added

    def files_of(self, track_id: str) -> list[str]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT file_path FROM track_files WHERE track_id = ? ORDER BY rowid ASC",
                (track_id,),
            ).fetchall()
            return [str(r["file_path"]) for r in rows]

    def all_files(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        with self._reading() as conn:
            for r in conn.execute("SELECT track_id, file_path FROM track_files ORDER BY rowid ASC"):
                out.setdefault(str(r["track_id"]), []).append(str(r["file_path"]))
        return out

    def delete_files_for(self, track_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(track_ids))
        if not ids:
            return 0
        ph = ",".join("?" for _ in ids)
        with self.transaction() as conn:
            cur = conn.execute(f"DELETE FROM track_files WHERE track_id IN ({ph})", ids)
            return int(cur.rowcount)
