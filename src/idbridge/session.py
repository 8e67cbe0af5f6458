"""
idbridge - Translation Session.

Owns "the current main context" for one chat: restores it from the store
on open, routes every mutation to a write-behind queue, flushes on close,
and hands out isolated contexts for background work.

Usage:
    with TranslationSession.from_settings() as session:
        payload = session.encode(tool_result)           # app -> agent
        text = session.decode(agent_reply)              # agent -> app
        evicted = session.record_turn(turn, turns, meta)

        with session.headless() as bg:                  # background operation
            draft = encode_text(source, bg)
        shown = session.merge_from_headless(bg.entries(), draft)

The main context is only mutated from the foreground turn path. A merge is
the one operation touching two contexts; it takes the session lock so it
cannot interleave with foreground mutation when hosts use threads.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

from idbridge.config import settings
from idbridge.core.codec import decode_response, decode_text, encode_tool_result
from idbridge.core.collector import collect_turn_refs
from idbridge.core.context import TranslationContext, create_isolated_context
from idbridge.core.merge import merge_entries, remap_headless_text
from idbridge.core.refcount import (
    build_ref_counts,
    cleanup_evicted_ids,
    register_turn_refs,
    turn_refs,
    unregister_turn_refs,
)
from idbridge.core.tool_args import decode_tool_args
from idbridge.core.translator import (
    get_translation_stats,
    remap_external_id,
    reset_context,
    to_numeric_id,
    to_real_id,
)
from idbridge.errors import PersistenceError
from idbridge.memory.turns import ChatMeta, Turn, append_turn
from idbridge.observability.session_logger import SessionLogger
from idbridge.storage.store import IdMapSnapshot, IdMapStore, JsonFileIdMapStore
from idbridge.storage.write_behind import WriteBehindQueue

logger = logging.getLogger(__name__)


def _set_turn_refs(turn: Any, refs: list[int]) -> None:
    if isinstance(turn, dict):
        turn["_refs"] = refs
    else:
        turn.refs = refs


class TranslationSession:
    """The main translation context plus its persistence."""

    def __init__(
        self,
        store: IdMapStore,
        debounce_seconds: float = 0.5,
        events: SessionLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.events = events or SessionLogger.disabled()
        self.context = TranslationContext()
        self.queue = WriteBehindQueue(
            store,
            self._snapshot,
            debounce_seconds=debounce_seconds,
            clock=clock,
            on_write=self.events.persisted,
        )
        self.context.on_change = self.queue.schedule
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls) -> "TranslationSession":
        """Session backed by the configured JSON snapshot file."""
        events = SessionLogger(
            enabled=settings.idbridge_event_log,
            log_dir=settings.idbridge_event_log_dir,
        )
        return cls(
            store=JsonFileIdMapStore(settings.idbridge_store_path),
            debounce_seconds=settings.persist_debounce_seconds,
            events=events,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> "TranslationSession":
        """Restore the main context. A failed load starts empty rather than crashing."""
        try:
            snapshot = self.store.load()
        except Exception as e:
            # PersistenceError from our stores, anything at all from a host store
            error = str(e) if isinstance(e, PersistenceError) else f"{type(e).__name__}: {e}"
            logger.error(f"IdTranslator: Restore failed, starting with an empty map: {error}")
            self.events.restored(0, self.context.next_numeric_id, 0, error=error)
            return self

        with self._lock:
            restored = snapshot.apply_to(self.context)
        self.events.restored(restored, self.context.next_numeric_id, len(self.context.free_ids))
        return self

    def flush(self) -> bool:
        """Write pending changes now (blocking)."""
        with self._lock:
            return self.queue.flush()

    def poll(self) -> bool:
        """Let hosts without an event loop drive debounced writes."""
        with self._lock:
            return self.queue.poll()

    def close(self) -> bool:
        """Flush the last mutation batch and close the event log."""
        ok = self.flush()
        self.events.close()
        return ok

    def __enter__(self) -> "TranslationSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _snapshot(self) -> IdMapSnapshot:
        return IdMapSnapshot.from_context(self.context)

    # =========================================================================
    # Translation (main context)
    # =========================================================================

    def to_numeric_id(self, external_id: Any) -> int | None:
        with self._lock:
            return to_numeric_id(external_id, self.context)

    def to_real_id(self, numeric_id: Any) -> str | None:
        return to_real_id(numeric_id, self.context)

    def encode(self, payload: Any) -> Any:
        """Tool result / resource data on its way to the agent."""
        with self._lock:
            return encode_tool_result(payload, self.context)

    def decode(self, response: Any) -> Any:
        """Agent text (or {"assistant": ...}) on its way to the user."""
        return decode_response(response, self.context)

    def decode_tool_args(self, tool_name: str, args: Any) -> Any:
        return decode_tool_args(tool_name, args, self.context)

    def remap_external_id(self, old_external_id: str, new_external_id: str) -> int:
        with self._lock:
            return remap_external_id(old_external_id, new_external_id, self.context)

    def reset(self) -> None:
        with self._lock:
            reset_context(self.context)

    def stats(self) -> dict:
        return get_translation_stats(self.context)

    # =========================================================================
    # Turn bookkeeping
    # =========================================================================

    def register_turn(self, turn: Turn | dict) -> list[int]:
        """Collect (if not yet set) and count a turn's refs. Returns the refs."""
        with self._lock:
            refs = turn_refs(turn)
            if not refs:
                refs = collect_turn_refs(turn, self.context)
                _set_turn_refs(turn, refs)
            register_turn_refs(turn, self.context)

        turn_id = turn.get("_id", "") if isinstance(turn, dict) else turn.id
        self.events.turn_registered(turn_id, refs)
        return refs

    def unregister_turn(self, turn: Turn | dict) -> int:
        """Release one turn's refs (retry / withdrawn turn). Returns ids freed."""
        with self._lock:
            freed = unregister_turn_refs(turn, self.context)
        if freed:
            self.events.ids_freed(freed, 1, len(self.context.free_ids))
        return freed

    def cleanup_evicted(self, evicted_turns: Iterable[Turn | dict]) -> int:
        evicted = list(evicted_turns)
        with self._lock:
            freed = cleanup_evicted_ids(evicted, self.context)
        if evicted:
            self.events.ids_freed(freed, len(evicted), len(self.context.free_ids))
        return freed

    def record_turn(
        self,
        turn: Turn,
        turns: list[Turn],
        meta: ChatMeta,
        max_exchanges: int | None = None,
        chars_per_exchange: int | None = None,
    ) -> list[Turn]:
        """
        Foreground turn path: register refs, append, evict, reclaim.

        Returns the turns evicted by the conversation window.
        """
        with self._lock:
            self.register_turn(turn)
            evicted = append_turn(turn, turns, meta, max_exchanges, chars_per_exchange)
            if evicted:
                self.cleanup_evicted(evicted)
        return evicted

    def rebuild(self, turns: list[Turn | dict]) -> tuple[int, int]:
        """
        Repair path: recompute refs for turns missing them, rebuild counts,
        sweep orphans and persist immediately.
        """
        with self._lock:
            for turn in turns:
                if not turn_refs(turn):
                    _set_turn_refs(turn, collect_turn_refs(turn, self.context))
            referenced, orphans = build_ref_counts(turns, self.context)
            self.queue.flush()
        self.events.refcounts_rebuilt(referenced, orphans)
        return referenced, orphans

    # =========================================================================
    # Headless sessions
    # =========================================================================

    @contextmanager
    def headless(self) -> Iterator[TranslationContext]:
        """An isolated, never-persisted context for one background operation."""
        context = create_isolated_context()
        logger.debug("IdTranslator: Created isolated context")
        yield context

    def merge_from_headless(self, entries: Any, text: str) -> str:
        """Merge a headless map into main; return ``text`` in main's numeric space."""
        with self._lock:
            remap_table = merge_entries(entries, self.context)
        if remap_table:
            self.events.merged(len(remap_table), {k: v for k, v in remap_table.items() if k != v})
        return remap_headless_text(text, entries, remap_table)

    def decode_headless(self, entries: Any, text: str) -> str:
        """Merge, then decode for display in one step."""
        merged = self.merge_from_headless(entries, text)
        return decode_text(merged, self.context)
