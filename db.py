"""Database access wrapper shared by the endpoints and operator scripts.

Callers never touch ``sqlite3`` connections directly: they go through a
:class:`Database` handle, which binds parameters, normalises rows to plain dicts
and exposes explicit transaction control over one pinned pooled connection.
"""

import logging
import os
import sqlite3
from typing import Any, Dict, Iterable, Iterator, List, Optional

from db_pool import SQLiteConnectionPool

logger = logging.getLogger("eduadmin.db")

DB_PATH = os.getenv("DB_PATH", "data.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)

Row = Dict[str, Any]


class Database:
    """Handle over a single pooled connection.

    The connection is checked out lazily on first use and held until
    :meth:`close`, so ``begin``/``commit`` always talk to the same connection.
    """

    def __init__(self, pool: SQLiteConnectionPool):
        self._pool = pool
        self._connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = self._pool.acquire()
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            self._pool.release(connection)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _run(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        return self.connect().execute(sql, tuple(params))

    def query(self, sql: str, params: Iterable = ()) -> List[Row]:
        """Return every result row as a dict; an empty result is ``[]``."""
        return [dict(row) for row in self._run(sql, params).fetchall()]

    def query_one(self, sql: str, params: Iterable = ()) -> Optional[Row]:
        """Return the first row, or ``None`` when the query matched nothing."""
        row = self._run(sql, params).fetchone()
        return dict(row) if row is not None else None

    def execute(self, sql: str, params: Iterable = ()) -> int:
        """Run a mutating statement and return the affected row count."""
        return self._run(sql, params).rowcount

    def insert(self, sql: str, params: Iterable = ()) -> int:
        """Run an INSERT and return the generated row id."""
        return self._run(sql, params).lastrowid

    def begin(self, immediate: bool = False) -> None:
        """Open a transaction; ``immediate`` takes the write lock up front."""
        self.connect().execute("BEGIN IMMEDIATE" if immediate else "BEGIN")

    def commit(self) -> None:
        self.connect().commit()

    def rollback(self) -> None:
        self.connect().rollback()

    def in_transaction(self) -> bool:
        return self.connect().in_transaction


def get_database() -> Iterator[Database]:
    """FastAPI dependency yielding a request-scoped :class:`Database`."""
    database = Database(_pool)
    try:
        yield database
    finally:
        database.close()


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
      user_id        INTEGER PRIMARY KEY AUTOINCREMENT,
      username       TEXT NOT NULL UNIQUE,
      email          TEXT UNIQUE,
      password_hash  TEXT NOT NULL,
      full_name      TEXT,
      role           TEXT NOT NULL DEFAULT 'student',
      is_active      INTEGER NOT NULL DEFAULT 1,
      last_login     TIMESTAMP,
      created_at     TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS courses (
      course_id         INTEGER PRIMARY KEY AUTOINCREMENT,
      course_name       TEXT NOT NULL,
      subject_area      TEXT,
      difficulty_level  TEXT,
      is_active         INTEGER NOT NULL DEFAULT 1,
      created_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS course_assignments (
      assignment_id  INTEGER PRIMARY KEY AUTOINCREMENT,
      course_id      INTEGER NOT NULL,
      user_id        INTEGER NOT NULL,
      status         TEXT NOT NULL DEFAULT 'assigned',
      started_at     TIMESTAMP,
      completed_at   TIMESTAMP,
      assigned_at    TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
      FOREIGN KEY(course_id) REFERENCES courses(course_id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_assignments_course ON course_assignments(course_id)",
    """
    CREATE TABLE IF NOT EXISTS agents (
      agent_id            INTEGER PRIMARY KEY AUTOINCREMENT,
      agent_name          TEXT NOT NULL,
      temperature         REAL NOT NULL DEFAULT 0.7,
      max_tokens          INTEGER NOT NULL DEFAULT 512,
      system_prompt       TEXT NOT NULL DEFAULT '',
      is_student_advisor  INTEGER NOT NULL DEFAULT 0,
      is_active           INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS analytics_public_metrics (
      metric_key     TEXT PRIMARY KEY,
      metric_value   REAL NOT NULL DEFAULT 0,
      metric_type    TEXT NOT NULL DEFAULT 'count',
      display_label  TEXT NOT NULL,
      display_order  INTEGER NOT NULL DEFAULT 0,
      last_updated   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS analytics_daily_rollup (
      rollup_date               DATE PRIMARY KEY,
      total_active_users        INTEGER NOT NULL DEFAULT 0,
      new_users                 INTEGER NOT NULL DEFAULT 0,
      lessons_completed         INTEGER NOT NULL DEFAULT 0,
      quizzes_attempted         INTEGER NOT NULL DEFAULT 0,
      quizzes_passed            INTEGER NOT NULL DEFAULT 0,
      total_study_time_minutes  INTEGER NOT NULL DEFAULT 0,
      avg_mastery_score         REAL NOT NULL DEFAULT 0,
      updated_at                TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS progress_tracking (
      id            INTEGER PRIMARY KEY AUTOINCREMENT,
      user_id       INTEGER NOT NULL,
      course_id     INTEGER,
      metric_type   TEXT NOT NULL,
      metric_value  REAL NOT NULL DEFAULT 0,
      recorded_at   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rate_limits (
      id            INTEGER PRIMARY KEY AUTOINCREMENT,
      identifier    TEXT NOT NULL,
      endpoint      TEXT NOT NULL,
      requested_at  REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rate_limits_key ON rate_limits(identifier, endpoint, requested_at)",
)


def init_schema(database: Database) -> None:
    """Create the tables this service reads and writes if they are missing."""
    for statement in _SCHEMA:
        database.execute(statement)


def init() -> None:
    with Database(_pool) as database:
        init_schema(database)
    logger.info("Database schema ready at %s", _pool.database)
