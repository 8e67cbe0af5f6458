"""
idbridge - Forward/Reverse Id Translation.

Forward (application -> agent): to_numeric_id() allocates or reuses a small
integer for an external id. Reverse (agent -> application): to_real_id()
resolves a numeric id, returning None for dangling references.

Neither direction raises for bad input or misses - both return None and log.
"""

import logging
import re
from typing import Any

from idbridge.core.context import TranslationContext

logger = logging.getLogger(__name__)

NUMERIC_ID_RE = re.compile(r"^\d+$")


def _coerce_numeric_id(value: Any) -> int | None:
    """Accept 4, "4", " 4 " or 4.0; reject everything else (bools included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        stripped = value.strip()
        if NUMERIC_ID_RE.match(stripped):
            return int(stripped)
    return None


# =============================================================================
# Forward: external -> numeric
# =============================================================================


def to_numeric_id(external_id: Any, context: TranslationContext) -> int | None:
    """
    Map an external id to a numeric id, allocating one if needed.

    Identical external ids yield the same numeric id until it is released.
    New ids come from the free list first (most recently freed), then from
    the counter. Input that already looks numeric is returned as an int so
    double translation is harmless.
    """
    if not isinstance(external_id, str) or not external_id:
        logger.warning(f"IdTranslator: Invalid external id: {external_id!r}")
        return None

    if NUMERIC_ID_RE.match(external_id):
        logger.warning(f"IdTranslator: Skipping numeric id: {external_id}")
        return int(external_id)

    existing = context.find_numeric_id(external_id)
    if existing is not None:
        logger.debug(f"IdTranslator: Real->Numeric: {external_id} -> {existing}")
        return existing

    if context.free_ids:
        numeric_id = context.free_ids.pop()
        logger.debug(f"IdTranslator: Reused free id {numeric_id} for: {external_id}")
    else:
        numeric_id = context.next_numeric_id
        context.next_numeric_id += 1

    context.id_map[numeric_id] = external_id
    context.touch()
    context.mark_changed()
    logger.debug(f"IdTranslator: Real->Numeric: {external_id} -> {numeric_id}")
    return numeric_id


# =============================================================================
# Reverse: numeric -> external
# =============================================================================


def to_real_id(
    numeric_id: Any,
    context: TranslationContext,
    collect_into: set[int] | None = None,
) -> str | None:
    """
    Resolve a numeric id to its external id.

    Returns None for malformed input and for dangling references (evicted or
    never allocated). When ``collect_into`` is given, every id that resolves
    is added to it - this is how collect_turn_refs() discovers a turn's
    references without a second copy of the pattern set.
    """
    value = _coerce_numeric_id(numeric_id)
    if value is None or value < 1:
        logger.warning(f"IdTranslator: Invalid numeric id: {numeric_id!r}")
        return None

    external_id = context.id_map.get(value)
    if external_id is None:
        logger.warning(f"IdTranslator: No mapping found for numeric id: {value}")
        return None

    if collect_into is not None:
        collect_into.add(value)

    context.touch()
    logger.debug(f"IdTranslator: Numeric->Real: {value} -> {external_id}")
    return external_id


# =============================================================================
# Maintenance
# =============================================================================


def remap_external_id(old_external_id: Any, new_external_id: Any, context: TranslationContext) -> int:
    """
    Point every numeric id mapped to ``old_external_id`` at ``new_external_id``.

    Used when the platform re-keys a resource (e.g. a message moved to another
    folder). The agent keeps using the same number. Returns the number of
    mappings updated.
    """
    if (
        not isinstance(old_external_id, str) or not old_external_id
        or not isinstance(new_external_id, str) or not new_external_id
    ):
        logger.warning(f"IdTranslator: remap_external_id invalid args old={old_external_id!r} new={new_external_id!r}")
        return 0

    existing = context.find_numeric_id(new_external_id)
    if existing is not None and new_external_id != old_external_id:
        logger.warning(
            f"IdTranslator: remap target {new_external_id} is already mapped to {existing}; "
            f"it will have more than one numeric id"
        )

    updated = 0
    for numeric_id, mapped in list(context.id_map.items()):
        if mapped == old_external_id:
            context.id_map[numeric_id] = new_external_id
            updated += 1

    if updated:
        context.touch()
        context.mark_changed()
        logger.debug(f"IdTranslator: Remapped {updated} id(s) {old_external_id} -> {new_external_id}")
    return updated


def reset_context(context: TranslationContext) -> None:
    """
    Drop every mapping, free id and ref count.

    The counter is kept: turns that outlive the reset may still say
    [Email](1), and that number must not come back meaning something else.
    """
    context.id_map.clear()
    context.free_ids.clear()
    context.ref_counts.clear()
    context.touch()
    context.mark_changed()
    logger.info("IdTranslator: Reset translation context")


def _guess_kind(external_id: str) -> str:
    # Message ids are folder URI + message id; contact ids carry an address
    if "@" in external_id and ":" in external_id:
        return "email"
    if "@" in external_id:
        return "contact"
    return "unknown"


def get_translation_stats(context: TranslationContext) -> dict:
    """Translation statistics for debugging."""
    return {
        "total_mappings": len(context.id_map),
        "next_numeric_id": context.next_numeric_id,
        "free_ids": len(context.free_ids),
        "referenced_ids": len(context.ref_counts),
        "last_accessed": context.last_accessed,
        "state": context.state,
        "mappings": [
            {
                "numeric_id": numeric_id,
                "real_id": external_id,
                "type": _guess_kind(external_id),
                "ref_count": context.ref_counts.get(numeric_id, 0),
            }
            for numeric_id, external_id in sorted(context.id_map.items())
        ],
    }
