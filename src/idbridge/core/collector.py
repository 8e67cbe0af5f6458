"""
idbridge - Turn Reference Collection.

A turn's refs are discovered by running its text through the same decode
pipeline used for display, with a collector set attached. to_real_id() is
the chokepoint every shape funnels through (canonical, repaired, loose), so
no second copy of the pattern set is needed.
"""

from typing import Any

from idbridge.core.codec import TOOL_CALL_PLACEHOLDER, decode_text
from idbridge.core.context import TranslationContext


def _turn_text(turn: Any, key: str) -> Any:
    if isinstance(turn, dict):
        return turn.get(key)
    return getattr(turn, key, None)


def collect_turn_refs(turn: Any, context: TranslationContext) -> list[int]:
    """
    Numeric ids referenced by a turn, deduplicated and sorted.

    Looks at the assistant content and the user message. Lookup only:
    nothing is allocated, so calling it twice gives the same answer.
    """
    collector: set[int] = set()

    content = _turn_text(turn, "content")
    if isinstance(content, str) and content and content != TOOL_CALL_PLACEHOLDER:
        decode_text(content, context, collect_into=collector)

    user_message = _turn_text(turn, "user_message")
    if isinstance(user_message, str) and user_message:
        decode_text(user_message, context, collect_into=collector)

    return sorted(collector)
