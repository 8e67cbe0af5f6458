"""
idbridge - Headless Session Merge.

Background operations (proactive check-ins, reply drafting) run against
their own isolated context. Their output text references ids in THAT
numeric space; before it is shown in the chat it must be re-expressed in the
main context's space.

For each (headless_id, external_id) pair:
- external_id already mapped in main  -> reuse main's id
- headless_id unused in main          -> adopt it unchanged
- headless_id taken by something else -> mint a new id from main's counter

The resulting remap table rewrites every reference the decoder would resolve;
loose shapes are made canonical under the headless numbering first.
Collisions are resolved here, never reported as errors.
"""

import logging
import re
from typing import Any, Iterable

from idbridge.core.codec import canonicalize_text
from idbridge.core.context import TranslationContext
from idbridge.core.kinds import REFERENCE_KINDS

logger = logging.getLogger(__name__)

_LABELS = "|".join(k.text_pattern for k in REFERENCE_KINDS)
STRUCTURED_REF_RE = re.compile(
    rf"\[(?P<label>{_LABELS})\]\((?P<prefix>unique_id:)?(?P<ids>\d+(?::\d+)?)\)"
)


def _valid_entries(entries: Any) -> Iterable[tuple[int, str]]:
    if not isinstance(entries, (list, tuple)):
        return
    for entry in entries:
        try:
            numeric_id, external_id = entry
        except (TypeError, ValueError):
            logger.warning(f"Merge: Skipping malformed entry {entry!r}")
            continue
        if (
            isinstance(numeric_id, int) and not isinstance(numeric_id, bool) and numeric_id >= 1
            and isinstance(external_id, str) and external_id
        ):
            yield numeric_id, external_id
        else:
            logger.warning(f"Merge: Skipping malformed entry {entry!r}")


def _adopt(context: TranslationContext, numeric_id: int, external_id: str) -> None:
    """Insert a mapping under a caller-chosen id, keeping the free list consistent."""
    context.id_map[numeric_id] = external_id
    if numeric_id in context.free_ids:
        context.free_ids.remove(numeric_id)
    if numeric_id >= context.next_numeric_id:
        context.next_numeric_id = numeric_id + 1


def remap_structured_refs(text: str, remap_table: dict[int, int]) -> str:
    """Rewrite [Kind](n) and [Kind](n:m) through ``remap_table``; unknown ids stay."""
    if not isinstance(text, str) or not text or not remap_table:
        return text

    def replace(match: re.Match) -> str:
        parts = match.group("ids").split(":")
        new_parts = [str(remap_table.get(int(p), p)) for p in parts]
        return f"[{match.group('label')}]({match.group('prefix') or ''}{':'.join(new_parts)})"

    return STRUCTURED_REF_RE.sub(replace, text)


def remap_headless_text(text: str, entries: Any, remap_table: dict[int, int]) -> str:
    """
    Re-express headless ``text`` through ``remap_table``.

    Loose shapes ("Email 1", "(unique_id 1 and 2)", ...) are first made
    canonical under the headless numbering, so every reference the decoder
    would resolve is remapped, not just the [Kind](n) ones.
    """
    if not isinstance(text, str) or not text:
        return text
    if all(old == new for old, new in remap_table.items()):
        return text

    headless = TranslationContext()
    headless.id_map.update(_valid_entries(entries))
    return remap_structured_refs(canonicalize_text(text, headless), remap_table)


def merge_entries(entries: Any, context: TranslationContext) -> dict[int, int]:
    """
    Absorb a headless context's entries into ``context``.

    Returns the remap table (headless id -> main id) covering every valid
    entry. Must run without interleaved mutation of either context.
    """
    remap_table: dict[int, int] = {}

    for headless_id, external_id in _valid_entries(entries):
        existing = context.find_numeric_id(external_id)
        if existing is not None:
            remap_table[headless_id] = existing
        elif headless_id not in context.id_map:
            _adopt(context, headless_id, external_id)
            remap_table[headless_id] = headless_id
        else:
            new_id = context.next_numeric_id
            context.next_numeric_id += 1
            context.id_map[new_id] = external_id
            remap_table[headless_id] = new_id

    if not remap_table:
        return remap_table

    context.touch()
    context.mark_changed()

    remapped = sum(1 for old, new in remap_table.items() if old != new)
    logger.info(
        f"Merge: Merged {len(remap_table)} entries, {remapped} needed remapping, "
        f"map now has {len(context.id_map)} entries"
    )
    return remap_table


def merge_id_map_from_headless(
    entries: Any,
    text: str,
    context: TranslationContext,
) -> str:
    """
    Merge a headless context's entries and rewrite ``text`` accordingly.

    Returns text valid under ``context``'s numeric space.
    """
    remap_table = merge_entries(entries, context)
    return remap_headless_text(text, entries, remap_table)


def restore_id_map(entries: Any, context: TranslationContext) -> int:
    """
    Merge serialized entries into ``context`` keeping their numeric ids.

    Existing mappings under the same id are overwritten - use this for
    entries that were produced in ``context``'s own numeric space (e.g. a
    saved snapshot of this session). Returns the number restored.
    """
    restored = 0
    for numeric_id, external_id in _valid_entries(entries):
        _adopt(context, numeric_id, external_id)
        restored += 1

    if restored:
        context.touch()
        context.mark_changed()
    logger.info(f"Merge: Restored {restored} entries from serialized id map")
    return restored
