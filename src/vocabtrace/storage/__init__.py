"""Storage backends for vocabtrace."""

from vocabtrace.storage.sqlite import SQLiteStorage

__all__ = ["SQLiteStorage"]
