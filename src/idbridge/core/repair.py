"""
idbridge - Malformed Reference Repair.

Agents sometimes name several resources in informal shorthand instead of one
structured reference each:

    "I archived the emails (unique_id 4 and 6)"
    "contact_id 14, 15"
    "item_id 4, 6, and 7"

Before canonical decoding, these are rewritten into canonical references
still in the agent's numeric space:

    "I archived the emails ([Email](4) and [Email](6))"

This is a best-effort compatibility shim. A shape is rewritten only when
every id in it resolves; otherwise the text is left untouched and shows up
downstream as a dangling reference. New shapes are added by appending a
RepairRule to REPAIR_RULES - each rule is purely textual and must not match
text that is already canonical.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable

from idbridge.core.context import TranslationContext
from idbridge.core.kinds import REFERENCE_KINDS, ReferenceKind
from idbridge.core.translator import to_real_id

logger = logging.getLogger(__name__)

# Two or more ids joined by commas and/or "and": "4 and 6", "4, 6", "4, 6, and 7"
ID_LIST = r"\d+(?:(?:\s*,\s*(?:and\s+)?|\s+and\s+)\d+)+"

_DIGITS = re.compile(r"\d+")

# Returns the external id for a numeric id, or None
Resolver = Callable[[int], str | None]


@dataclass(frozen=True)
class RepairRule:
    name: str
    pattern: re.Pattern
    handler: Callable[[re.Match, Resolver], str | None]


def _linkify_list(kind: ReferenceKind) -> Callable[[str, Resolver], str | None]:
    def linkify(id_list: str, resolve: Resolver) -> str | None:
        ids = [int(n) for n in _DIGITS.findall(id_list)]
        if not all(resolve(n) for n in ids):
            return None
        return _DIGITS.sub(lambda m: kind.link(m.group(0)), id_list)

    return linkify


def _parenthesized_list_rule(kind: ReferenceKind, field: str) -> RepairRule:
    linkify = _linkify_list(kind)

    def handler(match: re.Match, resolve: Resolver) -> str | None:
        body = linkify(match.group("ids"), resolve)
        return f"({body})" if body is not None else None

    return RepairRule(
        name=f"({field} X and Y)",
        pattern=re.compile(rf"\({field}(?::\s*|\s+)(?P<ids>{ID_LIST})\)"),
        handler=handler,
    )


def _bare_list_rule(kind: ReferenceKind, field: str) -> RepairRule:
    linkify = _linkify_list(kind)

    def handler(match: re.Match, resolve: Resolver) -> str | None:
        return linkify(match.group("ids"), resolve)

    return RepairRule(
        name=f"{field} X and Y",
        pattern=re.compile(rf"\b{field}(?::\s*|\s+)(?P<ids>{ID_LIST})\b"),
        handler=handler,
    )


def _build_rules() -> list[RepairRule]:
    # Parenthesized shapes first so the bare rule never eats the inner text
    rules: list[RepairRule] = []
    for kind in REFERENCE_KINDS:
        for field in kind.id_fields:
            rules.append(_parenthesized_list_rule(kind, field))
            rules.append(_bare_list_rule(kind, field))
    return rules


REPAIR_RULES: list[RepairRule] = _build_rules()


def repair_malformed_refs(
    text: str,
    context: TranslationContext,
    collect_into: set[int] | None = None,
    rules: list[RepairRule] | None = None,
) -> str:
    """Apply every repair rule, in order, to ``text``."""
    if not isinstance(text, str) or not text:
        return text

    def resolve(numeric_id: int) -> str | None:
        return to_real_id(numeric_id, context, collect_into)

    processed = text
    for rule in rules if rules is not None else REPAIR_RULES:

        def replace(match: re.Match, rule: RepairRule = rule) -> str:
            logger.info(f"Repair: Found '{rule.name}' pattern: {match.group(0)}")
            result = rule.handler(match, resolve)
            if result is None:
                return match.group(0)
            logger.info(f"Repair: Converted to: {result}")
            return result

        processed = rule.pattern.sub(replace, processed)

    return processed
