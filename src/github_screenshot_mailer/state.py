from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from .models import PersistedAttempt, RecordFilter, RecordPage, ScreenshotStatus


logger = logging.getLogger(__name__)


class AttemptStore(Protocol):
    def save(self, attempt: PersistedAttempt) -> PersistedAttempt: ...


def _to_utc_iso(dt: datetime) -> str:
    # Stored as UTC ISO strings so lexical order == chronological order.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where(flt: RecordFilter) -> tuple[str, list[object]]:
    """
    Translate a RecordFilter into a WHERE clause (empty string when nothing is filtered) and its params.
    """
    clauses: list[str] = []
    params: list[object] = []

    if flt.target:
        clauses.append("target = ?")
        params.append(flt.target)
    if flt.recipient:
        clauses.append("lower(recipient) = lower(?)")
        params.append(flt.recipient)
    if flt.status is not None:
        clauses.append("status = ?")
        params.append(flt.status.value)
    if flt.completed_from is not None:
        clauses.append("completed_at >= ?")
        params.append(_to_utc_iso(flt.completed_from))
    if flt.completed_to is not None:
        clauses.append("completed_at <= ?")
        params.append(_to_utc_iso(flt.completed_to))
    if flt.min_file_size_bytes is not None:
        clauses.append("file_size_bytes >= ?")
        params.append(flt.min_file_size_bytes)
    if flt.max_file_size_bytes is not None:
        clauses.append("file_size_bytes <= ?")
        params.append(flt.max_file_size_bytes)
    if flt.file_name_contains:
        clauses.append("lower(file_name) LIKE ? ESCAPE '\\'")
        params.append(f"%{_escape_like(flt.file_name_contains.lower())}%")
    if flt.keyword:
        kw = f"%{_escape_like(flt.keyword.lower())}%"
        clauses.append(
            "(lower(target) LIKE ? ESCAPE '\\' OR lower(recipient) LIKE ? ESCAPE '\\' "
            "OR lower(file_name) LIKE ? ESCAPE '\\')"
        )
        params.extend([kw, kw, kw])

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


class RecordStore:
    """
    sqlite3-backed store of screenshot attempts (successes and failures).

    Safe to share across threads: one connection, serialised by a lock.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        self._conn = self._open_or_recreate()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._ensure_schema()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _open_or_recreate(self) -> sqlite3.Connection:
        """
        Open the DB. If it looks corrupted, move it aside and start fresh; history is nice-to-have.
        """
        if self.db_path.exists():
            try:
                conn = self._connect()
                if self._connection_is_healthy(conn):
                    return conn
                conn.close()
                raise sqlite3.DatabaseError("SQLite quick_check failed")
            except sqlite3.Error as e:
                logger.warning("Record DB appears corrupted/unreadable; creating a fresh one. (%s)", e)
                self._quarantine_db_files()
        return self._connect()

    @staticmethod
    def _connection_is_healthy(conn: sqlite3.Connection) -> bool:
        try:
            # Touch schema_version to fail fast on "file is not a database".
            _ = conn.execute("PRAGMA schema_version;").fetchone()
            row = conn.execute("PRAGMA quick_check;").fetchone()
            return bool(row and row[0] == "ok")
        except sqlite3.Error:
            return False

    def _quarantine_db_files(self) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        for p in (self.db_path, Path(str(self.db_path) + "-wal"), Path(str(self.db_path) + "-shm")):
            try:
                if p.exists():
                    p.replace(p.with_name(p.name + f".corrupt-{stamp}"))
            except OSError:
                logger.debug("Failed to quarantine path=%s", p, exc_info=True)

    def _ensure_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS screenshot_attempts (
                  id TEXT PRIMARY KEY,
                  target TEXT NOT NULL,
                  recipient TEXT NOT NULL,
                  file_name TEXT NOT NULL,
                  file_path TEXT NOT NULL,
                  file_size_bytes INTEGER NOT NULL DEFAULT 0,
                  completed_at TEXT NOT NULL,
                  status TEXT NOT NULL,
                  error_message TEXT
                );
                """
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_attempts_completed_at ON screenshot_attempts(completed_at);"
            )
            self._conn.commit()

    def save(self, attempt: PersistedAttempt) -> PersistedAttempt:
        saved = attempt if attempt.id else attempt.model_copy(update={"id": str(uuid.uuid4())})
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO screenshot_attempts(
                  id, target, recipient, file_name, file_path, file_size_bytes, completed_at, status, error_message
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    saved.id,
                    saved.target,
                    saved.recipient,
                    saved.file_name,
                    saved.file_path,
                    saved.file_size_bytes,
                    _to_utc_iso(saved.completed_at),
                    saved.status.value,
                    saved.error_message,
                ),
            )
            self._conn.commit()
        return saved

    def get(self, attempt_id: str) -> Optional[PersistedAttempt]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM screenshot_attempts WHERE id = ?;",
                (attempt_id,),
            ).fetchone()
        return _row_to_attempt(row) if row else None

    def search(
        self,
        flt: Optional[RecordFilter] = None,
        *,
        limit: int = 50,
        offset: int = 0,
        ascending: bool = False,
    ) -> RecordPage:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        where, params = build_where(flt or RecordFilter())
        order = "ASC" if ascending else "DESC"
        with self._lock:
            total = self._conn.execute(f"SELECT COUNT(*) FROM screenshot_attempts {where};", params).fetchone()[0]
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM screenshot_attempts {where} "
                f"ORDER BY completed_at {order}, id {order} LIMIT ? OFFSET ?;",
                [*params, limit, offset],
            ).fetchall()
        return RecordPage(items=[_row_to_attempt(r) for r in rows], total=int(total), limit=limit, offset=offset)


_COLUMNS = "id, target, recipient, file_name, file_path, file_size_bytes, completed_at, status, error_message"


def _row_to_attempt(row: tuple) -> PersistedAttempt:
    return PersistedAttempt(
        id=row[0],
        target=row[1],
        recipient=row[2],
        file_name=row[3],
        file_path=row[4],
        file_size_bytes=int(row[5] or 0),
        completed_at=datetime.fromisoformat(row[6]),
        status=ScreenshotStatus(row[7]),
        error_message=row[8],
    )
