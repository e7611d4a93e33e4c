"""SQLite connection pool for better resource management."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from queue import Empty, Queue
from typing import Generator

logger = logging.getLogger("eduadmin.db.pool")

class SQLiteConnectionPool:
    """Thread-safe SQLite connection pool."""

    def __init__(self, database: str, max_connections: int = 5):
        self.database = database
        self.max_connections = max_connections
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=max_connections)
        self._lock = threading.Lock()
        self._created_connections = 0

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with proper settings."""
        # Autocommit mode: transactions are opened explicitly with BEGIN.
        conn = sqlite3.connect(
            self.database,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        # Enable foreign key constraints
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def acquire(self) -> sqlite3.Connection:
        """Check a connection out of the pool, creating one if allowed."""
        try:
            return self._pool.get(block=False)
        except Empty:
            with self._lock:
                if self._created_connections < self.max_connections:
                    connection = self._create_connection()
                    self._created_connections += 1
                    logger.debug("Created new connection (total: %s)", self._created_connections)
                    return connection
            # If we've hit the limit, wait for a connection
            return self._pool.get(block=True)

    def release(self, connection: sqlite3.Connection) -> None:
        """Return ``connection`` to the pool, discarding any open transaction."""
        try:
            if connection.in_transaction:
                connection.rollback()
            self._pool.put(connection)
        except sqlite3.Error as e:
            logger.error("Error returning connection to pool: %s", e)
            # If we can't return it to the pool, close it
            try:
                connection.close()
            finally:
                with self._lock:
                    self._created_connections -= 1

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection from the pool or create a new one if needed."""
        connection = self.acquire()
        try:
            yield connection
        finally:
            self.release(connection)

    def close_all(self) -> None:
        """Close every idle connection held by the pool."""
        while True:
            try:
                connection = self._pool.get(block=False)
            except Empty:
                break
            connection.close()
            with self._lock:
                self._created_connections -= 1
