"""
idbridge - Conversation turn storage helpers.

Turns carry the numeric ids they reference; the window policy here decides
which turns are evicted, which in turn drives id reclamation.
"""

from idbridge.memory.turns import (
    ChatMeta,
    Turn,
    append_turn,
    enforce_budget,
    turns_to_llm_messages,
)

__all__ = [
    "ChatMeta",
    "Turn",
    "append_turn",
    "enforce_budget",
    "turns_to_llm_messages",
]
