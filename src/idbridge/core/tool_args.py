"""
idbridge - Tool-call Argument Translation.

Agents call tools with numeric ids; tools need platform ids. Which
arguments carry ids depends on the tool family, keyed by name prefix.
First matching prefix wins, so more specific prefixes come first.
"""

import logging
from typing import Any

from idbridge.core.context import TranslationContext
from idbridge.core.kinds import CONTACT, EVENT, field_variants
from idbridge.core.translator import to_real_id

logger = logging.getLogger(__name__)


# (tool name prefix, single-id arguments, id-list arguments)
TOOL_ID_ARGUMENTS: list[tuple[str, tuple[str, ...], tuple[str, ...]]] = [
    ("email_", ("unique_id", "UniqueID"), ("unique_ids",)),
    ("calendar_event_", ("event_id", "EventID", "calendar_id", "CalendarID"), ()),
    ("contacts_", ("contact_id", "ContactID", "addressbook_id"), ()),
    ("calendar_", ("calendar_id", "CalendarID"), ()),
]

# Arguments that may arrive as "<container>:<item>"
COMPOUND_ARGUMENTS: frozenset[str] = frozenset(
    variant for kind in (CONTACT, EVENT) for variant in field_variants(kind.id_fields[0])
)


def _id_arguments_for(tool_name: str) -> tuple[tuple[str, ...], tuple[str, ...]] | None:
    for prefix, singles, lists in TOOL_ID_ARGUMENTS:
        if tool_name.startswith(prefix):
            return singles, lists
    return None


def _translate_value(
    key: str,
    value: Any,
    context: TranslationContext,
    collect_into: set[int] | None,
) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return value

    if key in COMPOUND_ARGUMENTS and isinstance(value, str) and ":" in value:
        numeric_container, _, numeric_item = value.partition(":")
        real_container = to_real_id(numeric_container, context, collect_into)
        real_item = to_real_id(numeric_item, context, collect_into)
        if real_container and real_item:
            return f"{real_container}:{real_item}"
        return value

    real_id = to_real_id(value, context, collect_into)
    return real_id if real_id else value


def decode_tool_args(
    tool_name: str,
    args: Any,
    context: TranslationContext,
    collect_into: set[int] | None = None,
) -> Any:
    """
    Translate a tool call's numeric id arguments to platform ids.

    Returns a new dict; ids that do not resolve are passed through as
    supplied so the tool can report them.
    """
    if not isinstance(args, dict) or not isinstance(tool_name, str):
        return args

    id_arguments = _id_arguments_for(tool_name)
    if id_arguments is None:
        return dict(args)

    singles, lists = id_arguments
    processed = dict(args)
    try:
        for key in singles:
            if processed.get(key) not in (None, ""):
                processed[key] = _translate_value(key, processed[key], context, collect_into)

        for key in lists:
            values = processed.get(key)
            if isinstance(values, list):
                processed[key] = [_translate_value(key, v, context, collect_into) for v in values]

        logger.debug(f"ToolArgs: {tool_name} {args} -> {processed}")
        return processed
    except Exception as e:
        logger.error(f"ToolArgs: Error translating arguments for {tool_name}: {e}")
        return args
