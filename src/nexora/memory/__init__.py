"""Session memory for nexora.

Keeps two independent session collections, one per tier, each with an
active-session pointer, and persists them through a key-value store.
Inline attachments are never written to storage.

Components:

- :class:`SessionStore` - Per-tier session collections with best-effort persistence
- :class:`SQLiteStore` - SQLite key-value backend with WAL mode
- :class:`InMemoryStore` - Process-local backend
"""

from nexora.memory.sessions import SessionStore
from nexora.memory.storage import InMemoryStore, KeyValueStore, SQLiteStore

__all__ = ["InMemoryStore", "KeyValueStore", "SQLiteStore", "SessionStore"]
