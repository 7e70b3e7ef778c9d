"""SQLite connection and initialization utilities."""

import sqlite3
from pathlib import Path
import threading

from .schema import get_init_schema, get_drop_schema
from ..core.exceptions import UpstreamStorageError


class DatabaseConnection:
    """Manage thread-local SQLite connections and schema init."""

    __slots__ = ("db_path", "_local", "_lock", "_initialized", "_connections", "_connections_lock")

    def __init__(self, db_path="./docvault.db"):
        """Initialize connection state."""
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False
        self._connections = set()
        self._connections_lock = threading.Lock()

    def initialize(self):
        """Initialize schema if not already initialized."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                conn = self._get_connection()
                for statement in get_init_schema():
                    conn.execute(statement)

                conn.commit()
                self._initialized = True

            except sqlite3.Error as e:
                raise UpstreamStorageError(f"Failed to initialize database: {e}")

    def reset(self):
        """Drop and recreate every table."""
        conn = self._get_connection()
        for statement in get_drop_schema():
            conn.execute(statement)
        self._initialized = False
        self.initialize()

    def _get_connection(self):
        """Get or create a thread-local SQLite connection."""
        conn = getattr(self._local, "connection", None)
        # a connection closed by close() from another thread is replaced
        if conn is None or conn not in self._connections:
            conn = sqlite3.connect(
                str(self.db_path), check_same_thread=False, isolation_level=None, timeout=10.0
            )
            conn.row_factory = sqlite3.Row
            with self._connections_lock:
                self._connections.add(conn)
            self._local.connection = conn

        return conn

    def get_transaction_context(self):
        """Return a transaction context manager (BEGIN/COMMIT/ROLLBACK)."""
        return TransactionContext(self._get_connection())

    def execute(self, query, params=None):
        """Execute a single SQL statement and return the number of affected rows."""
        cursor = self._get_connection().cursor()
        try:
            cursor.execute(query, params or ())
            return cursor.rowcount
        except sqlite3.Error as e:
            raise UpstreamStorageError(f"Metadata store write failed: {e}")
        finally:
            cursor.close()

    def fetch_one(self, query, params=None):
        """Fetch a single row as a dict or None."""
        cursor = self._get_connection().cursor()
        try:
            cursor.execute(query, params or ())
            row = cursor.fetchone()
            return dict(row) if row else None
        except sqlite3.Error as e:
            raise UpstreamStorageError(f"Metadata store read failed: {e}")
        finally:
            cursor.close()

    def fetch_all(self, query, params=None):
        """Fetch all rows as a list of dicts."""
        cursor = self._get_connection().cursor()
        try:
            cursor.execute(query, params or ())
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise UpstreamStorageError(f"Metadata store read failed: {e}")
        finally:
            cursor.close()

    def get_version(self):
        """Return current schema version number."""
        try:
            result = self.fetch_one("SELECT MAX(version) as version FROM schema_version")
            return result["version"] if result and result["version"] else 0
        except UpstreamStorageError:
            return 0

    def close(self):
        """Close every connection opened by any thread."""
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            conn.close()
        self._local.connection = None


class TransactionContext:
    """Context manager for transactions (BEGIN/COMMIT/ROLLBACK)."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Begin a transaction and return a cursor."""
        self.cursor = self.connection.cursor()
        self.cursor.execute("BEGIN IMMEDIATE")
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Commit on success, rollback on error, then close cursor."""
        try:
            if exc_type is None:
                self.connection.commit()
            else:
                self.connection.rollback()
        finally:
            if self.cursor:
                self.cursor.close()
