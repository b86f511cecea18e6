"""
SQLite database initialization and connection management.

Single responsibility: own the connection and create tables. All actual
queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Default DB lives at the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "taskpulse.db"

SCHEMA_SQL = """
-- Tasks ---------------------------------------------------------------------
CREATE TABLE IF NOT EXISTS tasks (
    id          TEXT    PRIMARY KEY,
    user_id     TEXT    NOT NULL,
    title       TEXT    NOT NULL,
    description TEXT    NOT NULL DEFAULT '',
    status      TEXT    NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'in_progress', 'completed')),
    priority    TEXT    NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low', 'medium', 'high')),
    due_date    TEXT,
    created_at  TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);

-- Time entries --------------------------------------------------------------
CREATE TABLE IF NOT EXISTS time_entries (
    id          TEXT    PRIMARY KEY,
    task_id     TEXT    NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    user_id     TEXT    NOT NULL,
    start_time  TEXT    NOT NULL,
    end_time    TEXT
);

-- At most one running entry per task -----------------------------------------
CREATE UNIQUE INDEX IF NOT EXISTS uq_time_entries_open_task
    ON time_entries(task_id) WHERE end_time IS NULL;

-- Indexes for common queries -------------------------------------------------
CREATE INDEX IF NOT EXISTS idx_tasks_user           ON tasks(user_id);
CREATE INDEX IF NOT EXISTS idx_time_entries_task    ON time_entries(task_id, start_time);
CREATE INDEX IF NOT EXISTS idx_time_entries_user    ON time_entries(user_id, start_time);
"""


def open_connection(db_path: str) -> sqlite3.Connection:
    """Open a connection with row access by name and foreign keys on."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = open_connection(str(self.db_path))
        if str(self.db_path) != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()
        logger.info("Database schema ensured.")


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Manages the SQLite connection and makes sure both tables exist on startup.
#
# Key pieces:
#   - SCHEMA_SQL: the full DDL, safe to run every launch.
#   - uq_time_entries_open_task: a partial unique index. Two inserts of a
#     running entry for the same task cannot both commit, no matter how
#     many processes share the file. Repository turns the resulting
#     IntegrityError into AlreadyOpenError.
#   - ON DELETE CASCADE: deleting a task removes its entries.
#
# Data flow:
#   App start -> Database.connect() -> tables created -> Repository uses conn
