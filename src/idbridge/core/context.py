"""
idbridge - Translation Context.

The mutable allocator state for one session:

- id_map:          numeric id -> external (platform) id
- next_numeric_id: counter for ids never handed out before
- free_ids:        released ids, reused (LIFO) before the counter grows
- ref_counts:      numeric id -> number of live turns referencing it

One durable "main" context exists per chat; every concurrent background
(headless) operation gets its own isolated context so it cannot corrupt the
main numeric space. Contexts are plain objects passed explicitly into every
translator call - there is no module-level "current" context.

Invariants:
- free_ids never contains a key of id_map
- ref_counts has no entry for an id absent from id_map
- next_numeric_id never decreases
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal

logger = logging.getLogger(__name__)


ContextState = Literal["fresh", "populated"]


def _is_valid_numeric_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


@dataclass
class TranslationContext:
    """Allocator state for one session (main or headless)."""

    id_map: dict[int, str] = field(default_factory=dict)
    next_numeric_id: int = 1
    free_ids: list[int] = field(default_factory=list)
    ref_counts: dict[int, int] = field(default_factory=dict)
    last_accessed: float = field(default_factory=time.time)

    # Mutation hook. The session manager points this at its write-behind
    # queue for the main context; isolated contexts leave it unset and are
    # never persisted.
    on_change: Callable[[], None] | None = field(default=None, repr=False, compare=False)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ContextState:
        if self.id_map or self.free_ids or self.next_numeric_id > 1:
            return "populated"
        return "fresh"

    @property
    def is_persistent(self) -> bool:
        return self.on_change is not None

    def touch(self) -> None:
        self.last_accessed = time.time()

    def mark_changed(self) -> None:
        """Notify the owner (if any) that the context needs persisting."""
        if self.on_change is not None:
            self.on_change()

    # =========================================================================
    # Lookups (no allocation)
    # =========================================================================

    def find_numeric_id(self, external_id: str) -> int | None:
        """Reverse scan of id_map. O(n) - maps hold tens to low hundreds of ids."""
        for numeric_id, mapped in self.id_map.items():
            if mapped == external_id:
                return numeric_id
        return None

    def entries(self) -> list[tuple[int, str]]:
        """Serializable (numeric_id, external_id) pairs, e.g. to ship a headless map."""
        return list(self.id_map.items())

    # =========================================================================
    # Restore (fresh -> populated from a snapshot)
    # =========================================================================

    def restore(
        self,
        entries: Iterable[Any],
        next_numeric_id: Any = 1,
        free_ids: Iterable[Any] = (),
        ref_counts: Iterable[Any] = (),
    ) -> int:
        """
        Replace this context's state with persisted state.

        Malformed pieces are dropped rather than rejected so that a partially
        corrupt snapshot still restores what it can. The invariants above are
        re-established on the way in. Returns the number of restored mappings.
        """
        self.id_map.clear()
        for entry in entries or ():
            try:
                numeric_id, external_id = entry
            except (TypeError, ValueError):
                logger.warning(f"IdTranslator: Dropping malformed entry {entry!r}")
                continue
            if _is_valid_numeric_id(numeric_id) and isinstance(external_id, str) and external_id:
                self.id_map[numeric_id] = external_id
            else:
                logger.warning(f"IdTranslator: Dropping malformed entry {entry!r}")

        self.free_ids = []
        seen: set[int] = set()
        for numeric_id in free_ids or ():
            if _is_valid_numeric_id(numeric_id) and numeric_id not in self.id_map and numeric_id not in seen:
                self.free_ids.append(numeric_id)
                seen.add(numeric_id)

        self.ref_counts = {}
        for entry in ref_counts or ():
            try:
                numeric_id, count = entry
            except (TypeError, ValueError):
                continue
            if numeric_id in self.id_map and _is_valid_numeric_id(count):
                self.ref_counts[numeric_id] = count

        floor = max([*self.id_map.keys(), *self.free_ids, 0]) + 1
        counter = next_numeric_id if _is_valid_numeric_id(next_numeric_id) else 1
        self.next_numeric_id = max(counter, floor)
        self.touch()

        logger.info(
            f"IdTranslator: Restored {len(self.id_map)} entries, nextId={self.next_numeric_id}, "
            f"freeIds={len(self.free_ids)}, refCounts={len(self.ref_counts)}"
        )
        return len(self.id_map)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        """Serialize for storage. JSON has no int keys, so maps become pair lists."""
        return {
            "entries": [[n, ext] for n, ext in self.id_map.items()],
            "next_numeric_id": self.next_numeric_id,
            "free_ids": list(self.free_ids),
            "ref_counts": [[n, c] for n, c in self.ref_counts.items()],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranslationContext":
        """Deserialize from dict."""
        context = cls()
        context.restore(
            entries=data.get("entries", []),
            next_numeric_id=data.get("next_numeric_id", 1),
            free_ids=data.get("free_ids", []),
            ref_counts=data.get("ref_counts", []),
        )
        return context


def create_isolated_context() -> TranslationContext:
    """
    Fresh context for a concurrent background (headless) operation.

    Each headless call (proactive check-in, reply generation, ...) gets its
    own numeric space; its entries are merged into the main context later
    with merge_id_map_from_headless().
    """
    return TranslationContext()
