"""Event store adapters.

One concrete implementation of IEventStore (src/interfaces/event_store.py):
    - SQLiteEventStore - local aiosqlite database (data/events.db)
"""

from src.providers.store.sqlite_event_store import SQLiteEventStore

__all__ = ["SQLiteEventStore"]
