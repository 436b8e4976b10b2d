from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .settings import settings

log = logging.getLogger("lbsync")

_db_path: str | None = None

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def set_db_path(path: str | None) -> None:
    """Point the journal at another file (None = back to settings)."""
    global _db_path
    _db_path = path


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (a bind mount created by Docker
    before the file existed), the DB file is placed inside it.
    """
    p = os.path.abspath(_db_path or settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "lbsync.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              grp TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS passes (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              started_at TEXT NOT NULL,
              trigger_id TEXT,
              outcome TEXT NOT NULL, -- invalid|discover_failed|publish_failed|reload_failed|reloaded
              backends INTEGER NOT NULL DEFAULT 0,
              detail TEXT NOT NULL DEFAULT '',
              duration_ms REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_passes_started_at ON passes(started_at);
            """
        )


def log_event(level: str, message: str, group: str | None = None) -> None:
    """Journal an event and mirror it to the process log.

    A journal write failure is logged and never interrupts the caller.
    """
    level = level.upper()
    log.log(_LEVELS.get(level, logging.INFO), message)
    try:
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, grp, message) VALUES (?, ?, ?, ?)",
                (utc_now(), level, group, message),
            )
    except sqlite3.Error as e:
        log.warning("event journal unavailable: %s", e)


@dataclass(frozen=True)
class PassRow:
    id: int
    started_at: str
    trigger_id: str | None
    outcome: str
    backends: int
    detail: str
    duration_ms: float


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def record_pass(
    started_at: str,
    trigger_id: str | None,
    outcome: str,
    backends: int,
    detail: str,
    duration_ms: float,
) -> None:
    try:
        with connect() as conn:
            conn.execute(
                """
                INSERT INTO passes (started_at, trigger_id, outcome, backends, detail, duration_ms)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (started_at, trigger_id, outcome, backends, detail, duration_ms),
            )
    except sqlite3.Error as e:
        log.warning("pass journal unavailable: %s", e)


def latest_passes(limit: int = 50) -> list[PassRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM passes ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return _rows_to_dataclass(rows, PassRow)


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
