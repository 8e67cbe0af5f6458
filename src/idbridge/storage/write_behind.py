"""
idbridge - Write-behind Persistence Queue.

Mutations call schedule(); writes are coalesced so a burst of allocations
costs one save. Three ways a pending write happens:

- asyncio host:   schedule() arms a loop.call_later() timer, re-armed on
                  every mutation (debounce), fire-and-forget
- no event loop:  the host calls poll() from its own loop/tick
- shutdown:       flush() writes synchronously and cancels the timer

A failed save leaves the queue dirty, so the next mutation (or flush)
retries it. Failures are logged, never raised.
"""

import asyncio
import logging
import time
from typing import Callable

from idbridge.errors import PersistenceError
from idbridge.storage.store import IdMapSnapshot, IdMapStore

logger = logging.getLogger(__name__)


class WriteBehindQueue:
    """Debounced, coalescing snapshot writer for one context."""

    def __init__(
        self,
        store: IdMapStore,
        snapshot_fn: Callable[[], IdMapSnapshot],
        debounce_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        on_write: Callable[[bool, str | None], None] | None = None,
    ):
        self.store = store
        self.debounce_seconds = debounce_seconds
        self._snapshot_fn = snapshot_fn
        self._clock = clock
        self._on_write = on_write

        self._dirty = False
        self._last_change: float | None = None
        self._timer: asyncio.TimerHandle | None = None

        self.write_count = 0
        self.failure_count = 0

    @property
    def pending(self) -> bool:
        return self._dirty

    def schedule(self) -> None:
        """Record a mutation; (re)arm the debounce timer if a loop is running."""
        self._dirty = True
        self._last_change = self._clock()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # No loop: poll() or flush() will write

        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._on_timer)

    def poll(self) -> bool:
        """Write if dirty and the debounce window has passed. Returns True if written."""
        if not self._dirty or self._last_change is None:
            return False
        if self._clock() - self._last_change < self.debounce_seconds:
            return False
        return self._write()

    def flush(self) -> bool:
        """Write any pending change now. Returns False only if a write failed."""
        self._cancel_timer()
        if not self._dirty:
            return True
        return self._write()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._dirty:
            self._write()

    def _write(self) -> bool:
        snapshot = self._snapshot_fn()
        try:
            ok = self.store.save(snapshot)
        except PersistenceError as e:
            ok = False
            error = str(e)
        except Exception as e:
            # Host-supplied stores may raise anything; a save never escalates
            ok = False
            error = f"{type(e).__name__}: {e}"
        else:
            error = None if ok else "store reported failure"

        if not ok:
            self.failure_count += 1
            logger.error(f"IdMapStore: Save failed, will retry on next change: {error}")
            if self._on_write:
                self._on_write(False, error)
            return False

        self._dirty = False
        self.write_count += 1
        logger.debug(f"IdMapStore: Persisted {len(snapshot.entries)} entries")
        if self._on_write:
            self._on_write(True, None)
        return True
