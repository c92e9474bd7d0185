from helpdesk.storage.session_store import (
    InMemorySessionStore,
    SessionStore,
    SessionSweeper,
    SweepResult,
)
from helpdesk.storage.sqlite_store import SqliteSessionStore

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "SqliteSessionStore",
    "SessionSweeper",
    "SweepResult",
]
