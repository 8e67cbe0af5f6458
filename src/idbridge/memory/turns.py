"""
idbridge - Conversation Turns & Window Eviction.

Persisted turns keep their bookkeeping in underscore-prefixed keys
(``_id``, ``_ts``, ``_type``, ``_chars``, ``_refs``) so the stored shape can
be handed to the agent after stripping them.

Window policy (two levels, oldest first):
1. At most 2 * max_exchanges turns (user + assistant per exchange)
2. At most max_exchanges * chars_per_exchange characters in total
The last ``welcome_back`` turn and everything after it are never evicted.
"""

import logging
import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from idbridge.config import MAX_EXCHANGES_HARD_CAP, settings

logger = logging.getLogger(__name__)

DEFAULT_CHARS_PER_EXCHANGE = 500

TurnRole = Literal["user", "assistant", "system"]


class Turn(BaseModel):
    """One persisted conversation unit."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    role: TurnRole
    content: str | None = None
    user_message: str | None = None

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="_id")
    ts: float = Field(default_factory=time.time, alias="_ts")
    type: str = Field(default="chat", alias="_type")  # "chat", "welcome_back", "greeting", "nudge"
    chars: int = Field(default=0, alias="_chars")
    # Numeric ids this turn references (set once, after collect_turn_refs)
    refs: list[int] = Field(default_factory=list, alias="_refs")

    @classmethod
    def create(cls, role: TurnRole, content: str | None = None, **kwargs: Any) -> "Turn":
        """Build a turn with its character count filled in."""
        turn = cls(role=role, content=content, **kwargs)
        if not turn.chars:
            turn.chars = len(content or "") + len(turn.user_message or "")
        return turn

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)

    def to_llm_message(self) -> dict:
        """Strip bookkeeping fields, leaving what the agent sees."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        return {k: v for k, v in data.items() if not k.startswith("_")}


class ChatMeta(BaseModel):
    total_chars: int = 0
    last_activity_ts: float = 0.0


def turns_to_llm_messages(turns: list[Turn]) -> list[dict]:
    return [turn.to_llm_message() for turn in turns]


def _is_head_protected(turns: list[Turn]) -> bool:
    """
    True if turns[0] must not be evicted.

    The last welcome_back and everything after it are protected. Recomputed
    on every call since eviction shifts the list.
    """
    for i in range(len(turns) - 1, -1, -1):
        if turns[i].type == "welcome_back":
            return i == 0
    return False


def enforce_budget(
    turns: list[Turn],
    meta: ChatMeta,
    max_exchanges: int | None = None,
    chars_per_exchange: int = DEFAULT_CHARS_PER_EXCHANGE,
) -> list[Turn]:
    """
    Evict oldest turns until the window fits. Mutates ``turns`` and ``meta``.

    Returns the evicted turns, oldest first. The caller releases their refs
    (cleanup_evicted_ids).
    """
    safe_max = min(max(max_exchanges or MAX_EXCHANGES_HARD_CAP, 1), MAX_EXCHANGES_HARD_CAP)
    max_messages = safe_max * 2
    max_chars = safe_max * chars_per_exchange

    evicted: list[Turn] = []

    while len(turns) > max_messages:
        if _is_head_protected(turns):
            break
        turn = turns.pop(0)
        meta.total_chars -= turn.chars
        evicted.append(turn)

    while meta.total_chars > max_chars and turns:
        if _is_head_protected(turns):
            break
        turn = turns.pop(0)
        meta.total_chars -= turn.chars
        evicted.append(turn)

    if evicted:
        logger.info(
            f"Turns: Evicted {len(evicted)} turns (maxExchanges={safe_max}, maxChars={max_chars}, "
            f"remaining={len(turns)}, chars={meta.total_chars})"
        )
    return evicted


def append_turn(
    turn: Turn,
    turns: list[Turn],
    meta: ChatMeta,
    max_exchanges: int | None = None,
    chars_per_exchange: int | None = None,
) -> list[Turn]:
    """Append a turn and enforce the window. Returns evicted turns."""
    turns.append(turn)
    meta.total_chars += turn.chars
    meta.last_activity_ts = turn.ts

    if max_exchanges is None:
        max_exchanges = settings.max_chat_exchanges
    if chars_per_exchange is None:
        chars_per_exchange = settings.idbridge_chars_per_exchange

    return enforce_budget(turns, meta, max_exchanges, chars_per_exchange)
