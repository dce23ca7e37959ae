"""storage/ -- Persistence backends for users and session tokens.

Layer rule: storage/ imports from auth.models, auth.errors and auth.tokens
only. It never imports the session service or anything in api/.
"""

from __future__ import annotations

from storage.base import Store
from storage.memory import MemoryStore
from storage.sql import SQLStore


def open_store(database_url: str = "") -> Store:
    """Return the backend selected by a database URL.

    Empty string selects the in-memory store; anything else is handed to
    SQLAlchemy as-is.
    """
    if not database_url:
        return MemoryStore()
    return SQLStore(database_url)


__all__ = ["Store", "MemoryStore", "SQLStore", "open_store"]
