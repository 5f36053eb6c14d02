"""Key-value persistence backends for sessions and usage state.

Values are JSON documents stored as text. Callers own encoding and decoding,
so a corrupt value surfaces where it is parsed.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Protocol


class KeyValueStore(Protocol):
    """Protocol for string key-value persistence."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        ...


class InMemoryStore:
    """Process-local store. Nothing survives a restart."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SQLiteStore:
    """SQLite-based key-value store."""

    def __init__(self, db_path: str | Path):
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()

    def _initialize_db(self) -> None:
        """Create the table if it doesn't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)
            conn.commit()

    def get(self, key: str) -> str | None:
        """Get a value by key.

        Args:
            key: Storage key

        Returns:
            Stored text or None if not found
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        """Insert or replace a value.

        Args:
            key: Storage key
            value: Text to store
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """,
                (key, value, datetime.utcnow().isoformat()),
            )
            conn.commit()

    def remove(self, key: str) -> None:
        """Delete a key.

        Args:
            key: Storage key
        """
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()

    def keys(self) -> list[str]:
        """List stored keys in sorted order."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
            return [row[0] for row in rows]
