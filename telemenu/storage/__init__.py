"""Session storage backends."""

from .session_storage import JsonFileSessionStorage, MemorySessionStorage, SessionStorage

__all__ = ["JsonFileSessionStorage", "MemorySessionStorage", "SessionStorage"]
