"""
idbridge - Per-turn Reference Counting & Id Reclamation.

Each persisted turn carries the numeric ids it references (``_refs``).
ref_counts[id] is the number of live turns whose refs include id. When the
conversation window evicts turns, their refs are decremented; an id whose
count drops to zero is removed from id_map and pushed onto free_ids, so the
next allocation reuses it.

Turns may be Turn models (``.refs``) or plain dicts (``"_refs"``).
"""

import logging
from typing import Any, Iterable

from idbridge.core.context import TranslationContext

logger = logging.getLogger(__name__)


def turn_refs(turn: Any) -> list[int]:
    """Read a turn's referenced ids, whatever shape the turn is in."""
    if turn is None:
        return []
    if isinstance(turn, dict):
        refs = turn.get("_refs", turn.get("refs"))
    else:
        refs = getattr(turn, "refs", None)
    return list(refs) if refs else []


def register_turn_refs(turn: Any, context: TranslationContext) -> int:
    """
    Count a newly stored turn's refs. Call after populating its refs.

    Ids that are not (or no longer) mapped are skipped so ref_counts never
    holds an entry for an absent id. Returns the number of ids counted.
    """
    refs = turn_refs(turn)
    if not refs:
        return 0

    counted = 0
    for numeric_id in refs:
        if numeric_id not in context.id_map:
            logger.debug(f"RefCounts: Skipping unmapped id {numeric_id}")
            continue
        context.ref_counts[numeric_id] = context.ref_counts.get(numeric_id, 0) + 1
        counted += 1

    context.mark_changed()
    return counted


def _unregister_refs_internal(turn: Any, context: TranslationContext) -> int:
    """
    Decrement a turn's refs, freeing ids that reach zero.

    Does NOT notify the owner - callers batch and call mark_changed() once.
    Returns the number of ids freed.
    """
    refs = turn_refs(turn)
    if not refs:
        return 0

    freed = 0
    for numeric_id in refs:
        current = context.ref_counts.get(numeric_id, 0)
        if current > 1:
            context.ref_counts[numeric_id] = current - 1
            continue
        if current == 0:
            # Never registered (or already released); only a transition frees
            continue

        del context.ref_counts[numeric_id]
        if numeric_id in context.id_map:
            del context.id_map[numeric_id]
            context.free_ids.append(numeric_id)
            freed += 1
    return freed


def unregister_turn_refs(turn: Any, context: TranslationContext) -> int:
    """Release a single turn's refs (e.g. a retried or withdrawn turn)."""
    freed = _unregister_refs_internal(turn, context)
    if turn_refs(turn):
        context.mark_changed()
    return freed


def cleanup_evicted_ids(evicted_turns: Iterable[Any] | None, context: TranslationContext) -> int:
    """
    Release refs of turns dropped by the conversation window.

    One owner notification for the whole batch. Returns total ids freed.
    """
    evicted = list(evicted_turns or [])
    if not evicted:
        return 0

    total_freed = 0
    for turn in evicted:
        total_freed += _unregister_refs_internal(turn, context)

    if total_freed:
        logger.info(
            f"RefCounts: Freed {total_freed} ids from {len(evicted)} evicted turns, "
            f"free pool now {len(context.free_ids)}"
        )

    context.mark_changed()
    return total_freed


def build_ref_counts(turns: Iterable[Any], context: TranslationContext) -> tuple[int, int]:
    """
    Rebuild ref_counts from scratch from every retained turn.

    Repair path (first run, or after a crash left counts out of sync).
    Also sweeps orphans: ids in id_map that no retained turn references.
    Returns (referenced_id_count, orphans_freed).
    """
    ref_counts: dict[int, int] = {}
    for turn in turns:
        for numeric_id in turn_refs(turn):
            if numeric_id in context.id_map:
                ref_counts[numeric_id] = ref_counts.get(numeric_id, 0) + 1

    orphans = [numeric_id for numeric_id in context.id_map if numeric_id not in ref_counts]
    for numeric_id in orphans:
        del context.id_map[numeric_id]
        context.free_ids.append(numeric_id)

    context.ref_counts = ref_counts
    logger.info(f"RefCounts: Rebuilt - {len(ref_counts)} ids referenced, {len(orphans)} orphans freed")
    context.mark_changed()
    return len(ref_counts), len(orphans)
