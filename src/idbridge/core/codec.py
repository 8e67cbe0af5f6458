"""
idbridge - Text & Object Payload Processors.

Substitutes ids inside the reference shapes that cross the agent boundary:

    field: <id>              bare field (tool results)
    [Kind](<id>)             inline structured reference
    [Kind](<id1>:<id2>)      compound container:item reference

Encode (application -> agent) allocates numeric ids via to_numeric_id().
Decode (agent -> application) resolves them via to_real_id(), after the
repair layer has normalised malformed shorthand.

Both directions are driven by ordered rule tables. A shape whose ids do not
resolve is kept verbatim - the caller decides how to show a dangling
reference.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from idbridge.core.context import TranslationContext
from idbridge.core.kinds import (
    CONTACT,
    EMAIL,
    EVENT,
    ID_FIELD_KEYS,
    ID_FIELDS,
    REFERENCE_KINDS,
)
from idbridge.core.repair import repair_malformed_refs
from idbridge.core.translator import to_numeric_id, to_real_id

logger = logging.getLogger(__name__)

# Placeholder content of assistant turns that only carried tool calls
TOOL_CALL_PLACEHOLDER = "chat_converse"


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: re.Pattern
    # (match, translate) -> replacement, or None to keep the match as-is
    handler: Callable[[re.Match, Callable[[Any], Any]], str | None]


def _apply_rules(text: str, rules: list[PatternRule], translate: Callable[[Any], Any]) -> str:
    processed = text
    for rule in rules:

        def replace(match: re.Match, rule: PatternRule = rule) -> str:
            result = rule.handler(match, translate)
            if result is None:
                logger.debug(f"Codec: '{rule.name}' left unresolved: {match.group(0)}")
                return match.group(0)
            logger.debug(f"Codec: '{rule.name}' {match.group(0)} -> {result}")
            return result

        processed = rule.pattern.sub(replace, processed)
    return processed


def _label_alternation(*kinds) -> str:
    return "|".join(k.text_pattern for k in kinds)


# =============================================================================
# Decode rules (agent -> application)
# =============================================================================


def _single(label: str | None = None) -> Callable[[re.Match, Callable], str | None]:
    """Resolve group 'id' into [<label>](<real>)."""

    def handler(match: re.Match, resolve: Callable) -> str | None:
        real_id = resolve(match.group("id"))
        if not real_id:
            return None
        return f"[{label or match.group('label')}]({real_id})"

    return handler


def _pair(label: str | None = None) -> Callable[[re.Match, Callable], str | None]:
    """Resolve groups 'a' and 'b' into [<label>](<real_a>:<real_b>); both must resolve."""

    def handler(match: re.Match, resolve: Callable) -> str | None:
        real_a = resolve(match.group("a"))
        real_b = resolve(match.group("b"))
        if not (real_a and real_b):
            return None
        return f"[{label or match.group('label')}]({real_a}:{real_b})"

    return handler


def _build_decode_rules() -> list[PatternRule]:
    email = _label_alternation(EMAIL)
    any_kind = _label_alternation(*REFERENCE_KINDS)
    compound_kinds = _label_alternation(*(k for k in REFERENCE_KINDS if k.compound))

    rules = [
        PatternRule("[Email N]", re.compile(rf"\[(?P<label>{email})\s+(?P<id>\d+)\]"), _single()),
        PatternRule("(Email N)", re.compile(rf"\((?P<label>{email})\s+(?P<id>\d+)\)"), _single()),
        PatternRule("Email N", re.compile(rf"\b(?P<label>{email})\s+(?P<id>\d+)\b"), _single()),
        PatternRule(
            "[Kind](N)",
            re.compile(rf"\[(?P<label>{any_kind})\]\((?:unique_id:)?(?P<id>\d+)\)"),
            _single(),
        ),
        PatternRule(
            "[Kind](N:M)",
            re.compile(rf"\[(?P<label>{compound_kinds})\]\((?P<a>\d+):(?P<b>\d+)\)"),
            _pair(),
        ),
    ]

    for field in EMAIL.id_fields:
        rules += [
            PatternRule(f"({field} N)", re.compile(rf"\({field}\s+(?P<id>\d+)\)"), _single(EMAIL.name)),
            PatternRule(f"{field} N", re.compile(rf"\b{field}\s+(?P<id>\d+)\b"), _single(EMAIL.name)),
            PatternRule(f"{field}: N", re.compile(rf"\b{field}:\s*(?P<id>\d+)\b"), _single(EMAIL.name)),
        ]

    for kind in (CONTACT, EVENT):
        container, item = kind.container_field, kind.id_fields[0]
        body = rf"{container}:\s*(?P<a>\d+):{item}:\s*(?P<b>\d+)"
        rules += [
            PatternRule(f"({container}:N:{item}:M)", re.compile(rf"\({body}\)"), _pair(kind.name)),
            PatternRule(f"{container}:N:{item}:M", re.compile(rf"\b{body}\b"), _pair(kind.name)),
        ]

    return rules


DECODE_RULES: list[PatternRule] = _build_decode_rules()


# =============================================================================
# Encode rules (application -> agent)
# =============================================================================


def _encode_field(match: re.Match, allocate: Callable) -> str | None:
    numeric_id = allocate(match.group("value"))
    return f"{match.group('field')}: {numeric_id}" if numeric_id else None


def _encode_single(match: re.Match, allocate: Callable) -> str | None:
    numeric_id = allocate(match.group("value"))
    return f"[{match.group('label')}]({numeric_id})" if numeric_id else None


def _encode_compound(match: re.Match, allocate: Callable) -> str | None:
    container_id, sep, item_id = match.group("value").partition(":")
    if not sep:
        return None
    numeric_container = allocate(container_id)
    numeric_item = allocate(item_id)
    if not (numeric_container and numeric_item):
        return None
    return f"[{match.group('label')}]({numeric_container}:{numeric_item})"


ENCODE_RULES: list[PatternRule] = [
    # Values run to end of line: folder paths may contain spaces
    PatternRule(
        "field: value",
        re.compile(rf"\b(?P<field>{'|'.join(ID_FIELDS)}):\s+(?P<value>[^\n]+?)(?=\n|$)"),
        _encode_field,
    ),
    PatternRule(
        "[Email](real)",
        re.compile(rf"\[(?P<label>{_label_alternation(EMAIL)})\]\((?P<value>[^)]+?)\)"),
        _encode_single,
    ),
    PatternRule(
        "[Kind](container:item)",
        re.compile(rf"\[(?P<label>{_label_alternation(CONTACT, EVENT)})\]\((?P<value>[^)]+?)\)"),
        _encode_compound,
    ),
]

_FIELD_MARKERS = tuple(f"{field}:" for field in ID_FIELDS)


# =============================================================================
# Public processors
# =============================================================================


def decode_text(
    text: str,
    context: TranslationContext,
    collect_into: set[int] | None = None,
) -> str:
    """
    Agent text -> application text. Repair first, then canonical rules.

    With ``collect_into`` every resolved numeric id is recorded (see
    collect_turn_refs). Decoding never allocates.
    """
    if not isinstance(text, str) or not text:
        return text

    def resolve(value: Any) -> str | None:
        return to_real_id(value, context, collect_into)

    processed = repair_malformed_refs(text, context, collect_into)
    return _apply_rules(processed, DECODE_RULES, resolve)


def canonicalize_text(text: str, context: TranslationContext) -> str:
    """
    Rewrite every shape decode_text() understands into [Kind](n) or
    [Kind](a:b), keeping the numbers.

    Only ids that resolve in ``context`` are rewritten. Used before a
    numeric-space remap so that loose shapes follow it too.
    """
    if not isinstance(text, str) or not text:
        return text

    def keep(value: Any) -> str | None:
        return str(int(value)) if to_real_id(value, context) else None

    processed = repair_malformed_refs(text, context)
    return _apply_rules(processed, DECODE_RULES, keep)


def encode_text(text: str, context: TranslationContext) -> str:
    """Application text -> agent text, allocating numeric ids as needed."""
    if not isinstance(text, str) or not text:
        return text

    def allocate(value: Any) -> int | None:
        return to_numeric_id(value, context)

    return _apply_rules(text, ENCODE_RULES, allocate)


def encode_object(obj: Any, context: TranslationContext) -> Any:
    """Recursively translate id fields and id-bearing strings in a payload."""
    if isinstance(obj, list):
        return [encode_object(item, context) for item in obj]
    if not isinstance(obj, dict):
        return obj

    processed = {}
    for key, value in obj.items():
        if key in ID_FIELD_KEYS and isinstance(value, str):
            numeric_id = to_numeric_id(value, context)
            processed[key] = numeric_id if numeric_id is not None else value
        elif isinstance(value, str) and any(marker in value for marker in _FIELD_MARKERS):
            processed[key] = encode_text(value, context)
        else:
            processed[key] = encode_object(value, context)
    return processed


def encode_tool_result(result: Any, context: TranslationContext) -> Any:
    """Tool result (string or structured) -> agent-facing payload."""
    if not result:
        return result
    try:
        if isinstance(result, str):
            return encode_text(result, context)
        if isinstance(result, (dict, list)):
            return encode_object(result, context)
        return result
    except Exception as e:
        logger.error(f"Codec: Error encoding tool result: {e}")
        return result


def decode_response(response: Any, context: TranslationContext) -> Any:
    """Agent response (string, or dict with an 'assistant' string) -> display text."""
    if not response:
        return response
    try:
        if isinstance(response, str):
            return decode_text(response, context)
        if isinstance(response, dict):
            processed = dict(response)
            if isinstance(processed.get("assistant"), str):
                processed["assistant"] = decode_text(processed["assistant"], context)
            return processed
        return response
    except Exception as e:
        logger.error(f"Codec: Error decoding agent response: {e}")
        return response
