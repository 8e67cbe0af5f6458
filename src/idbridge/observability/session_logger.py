"""
idbridge - Allocator Event Log.

Append-only JSONL trail of what happened to the main id map: restores,
turn registrations, reclamation batches, merges and persistence results.
Useful when the agent's numbers and the stored map drift apart.

Usage:
    events = SessionLogger(log_dir=Path("session_logs"))
    events.turn_registered("turn-1", [1, 2])
    events.close()

Each line:
    {"ts": "2026-01-01T17:30:00", "event": "ids_freed", "count": 2, ...}
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

MAX_STRING_LEN = 200
MAX_LIST_ITEMS = 10
MAX_DEPTH = 3


def _compact(value: Any, depth: int = 0) -> Any:
    """Shrink a value for one log line: clip strings, cap lists, stop at MAX_DEPTH."""
    if depth > MAX_DEPTH:
        return "<nested>"

    match value:
        case None | bool() | int() | float():
            return value
        case str() if len(value) > MAX_STRING_LEN:
            return f"{value[:MAX_STRING_LEN]}... ({len(value)} chars)"
        case str():
            return value
        case list() | tuple() | set():
            items = list(value)
            shown = [_compact(item, depth + 1) for item in items[:MAX_LIST_ITEMS]]
            hidden = len(items) - MAX_LIST_ITEMS
            if hidden > 0:
                shown.append(f"... +{hidden} more")
            return shown
        case dict():
            return {str(key): _compact(item, depth + 1) for key, item in value.items()}

    dump = getattr(value, "model_dump", None)
    if callable(dump):
        return _compact(dump(), depth)
    return str(value)[:MAX_STRING_LEN]


class SessionLogger:
    """JSONL event sink for one session. A disabled logger accepts every call."""

    def __init__(
        self,
        session_id: str | None = None,
        enabled: bool = True,
        log_dir: Path | str = Path("session_logs"),
    ):
        self.session_id = session_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.enabled = enabled
        self.log_path: Path | None = None
        self._stream: TextIO | None = None

        if enabled:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.log_path = directory / f"idmap_{self.session_id}.jsonl"
            self._stream = self.log_path.open("a", encoding="utf-8")
            self._emit("session_start", session_id=self.session_id)

    @classmethod
    def disabled(cls) -> "SessionLogger":
        return cls(enabled=False)

    def _emit(self, event: str, **fields: Any) -> None:
        if self._stream is None:
            return
        line = {"ts": datetime.now().isoformat(), "event": event, **fields}
        self._stream.write(json.dumps(line, default=str) + "\n")
        self._stream.flush()

    # =========================================================================
    # Allocator events
    # =========================================================================

    def restored(self, entries: int, next_numeric_id: int, free_ids: int, error: str | None = None) -> None:
        self._emit("restored", entries=entries, next_numeric_id=next_numeric_id, free_ids=free_ids, error=error)

    def turn_registered(self, turn_id: str, refs: list[int]) -> None:
        self._emit("turn_registered", turn_id=turn_id, refs=_compact(refs))

    def ids_freed(self, count: int, evicted_turns: int, free_pool: int) -> None:
        self._emit("ids_freed", count=count, evicted_turns=evicted_turns, free_pool=free_pool)

    def refcounts_rebuilt(self, referenced: int, orphans: int) -> None:
        self._emit("refcounts_rebuilt", referenced=referenced, orphans=orphans)

    def merged(self, entries: int, remapped: dict[int, int]) -> None:
        self._emit("merged", entries=entries, remapped=_compact(remapped))

    def persisted(self, ok: bool, error: str | None = None) -> None:
        self._emit("persisted" if ok else "persist_failed", error=error)

    def log(self, event_type: str, **fields: Any) -> None:
        """Anything the fixed events above don't cover."""
        self._emit(event_type, **_compact(fields))

    def close(self) -> str | None:
        """End the trail; returns the file path, or None when disabled."""
        if self._stream is None:
            return None
        self._emit("session_end")
        self._stream.close()
        self._stream = None
        return str(self.log_path)
