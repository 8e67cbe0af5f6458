"""
idbridge - Snapshot persistence for the main translation context.
"""

from idbridge.storage.store import (
    IdMapSnapshot,
    IdMapStore,
    JsonFileIdMapStore,
    MemoryIdMapStore,
)
from idbridge.storage.write_behind import WriteBehindQueue

__all__ = [
    "IdMapSnapshot",
    "IdMapStore",
    "JsonFileIdMapStore",
    "MemoryIdMapStore",
    "WriteBehindQueue",
]
