"""
idbridge - Id Map Stores.

A store loads and saves one snapshot of the main context:

    {"entries": [[1, "imap://..."], ...], "next_numeric_id": 7,
     "free_ids": [3], "ref_counts": [[1, 2], ...]}

Storage is not transactional and durability is best effort. Stores raise
PersistenceError; the session layer decides what that means.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

from idbridge.core.context import TranslationContext
from idbridge.errors import PersistenceError

logger = logging.getLogger(__name__)


class IdMapSnapshot(BaseModel):
    """Serialized form of a TranslationContext."""

    entries: list[tuple[int, str]] = Field(default_factory=list)
    next_numeric_id: int = 1
    free_ids: list[int] = Field(default_factory=list)
    ref_counts: list[tuple[int, int]] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "IdMapSnapshot":
        return cls()

    @classmethod
    def from_context(cls, context: TranslationContext) -> "IdMapSnapshot":
        return cls(
            entries=list(context.id_map.items()),
            next_numeric_id=context.next_numeric_id,
            free_ids=list(context.free_ids),
            ref_counts=list(context.ref_counts.items()),
        )

    def apply_to(self, context: TranslationContext) -> int:
        """Restore ``context`` from this snapshot. Returns entries restored."""
        return context.restore(
            entries=self.entries,
            next_numeric_id=self.next_numeric_id,
            free_ids=self.free_ids,
            ref_counts=self.ref_counts,
        )


@runtime_checkable
class IdMapStore(Protocol):
    """
    Load/save one snapshot. Failures should raise PersistenceError; any other
    exception is logged and contained by the session and write-behind queue.
    """

    def load(self) -> IdMapSnapshot: ...

    def save(self, snapshot: IdMapSnapshot) -> bool: ...


class JsonFileIdMapStore:
    """Snapshot in a JSON file, replaced atomically on every save."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> IdMapSnapshot:
        if not self.path.exists():
            logger.info(f"IdMapStore: No snapshot at {self.path}, starting empty")
            return IdMapSnapshot.empty()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            snapshot = IdMapSnapshot.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            raise PersistenceError(f"Failed to load id map from {self.path}: {e}") from e

        logger.info(
            f"IdMapStore: Loaded {len(snapshot.entries)} entries, nextId={snapshot.next_numeric_id}, "
            f"freeIds={len(snapshot.free_ids)}, refCounts={len(snapshot.ref_counts)}"
        )
        return snapshot

    def save(self, snapshot: IdMapSnapshot) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(snapshot.model_dump_json())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to save id map to {self.path}: {e}") from e

        logger.debug(f"IdMapStore: Saved {len(snapshot.entries)} entries, nextId={snapshot.next_numeric_id}")
        return True


class MemoryIdMapStore:
    """In-process store. ``fail_saves`` / ``fail_loads`` simulate a broken backend."""

    def __init__(self, snapshot: IdMapSnapshot | None = None):
        self.snapshot = snapshot
        self.save_count = 0
        self.fail_saves = False
        self.fail_loads = False

    def load(self) -> IdMapSnapshot:
        if self.fail_loads:
            raise PersistenceError("Memory store load failure")
        if self.snapshot is None:
            return IdMapSnapshot.empty()
        return self.snapshot.model_copy(deep=True)

    def save(self, snapshot: IdMapSnapshot) -> bool:
        if self.fail_saves:
            raise PersistenceError("Memory store save failure")
        self.snapshot = snapshot.model_copy(deep=True)
        self.save_count += 1
        return True
