"""
idbridge - Reference Kinds.

The resources an agent can reference, how they appear in text, and which
payload fields carry their ids:

- Email:   [Email](<id>)                       fields: unique_id, item_id
- Contact: [Contact](<addressbook>:<contact>)  fields: contact_id (+ addressbook_id)
- Event:   [Event](<calendar>:<event>)         fields: event_id (+ calendar_id)
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReferenceKind:
    name: str
    id_fields: tuple[str, ...]
    container_field: str | None = None

    @property
    def compound(self) -> bool:
        return self.container_field is not None

    @property
    def text_pattern(self) -> str:
        """Regex alternation matching the kind label as agents write it."""
        return f"{self.name}|{self.name.lower()}"

    def link(self, value: str | int, label: str | None = None) -> str:
        return f"[{label or self.name}]({value})"


EMAIL = ReferenceKind("Email", ("unique_id", "item_id"))
CONTACT = ReferenceKind("Contact", ("contact_id",), container_field="addressbook_id")
EVENT = ReferenceKind("Event", ("event_id",), container_field="calendar_id")

REFERENCE_KINDS: tuple[ReferenceKind, ...] = (EMAIL, CONTACT, EVENT)

KINDS_BY_NAME: dict[str, ReferenceKind] = {k.name.lower(): k for k in REFERENCE_KINDS}


# Every field whose value is an external id on the application side
ID_FIELDS: tuple[str, ...] = (
    "unique_id",
    "item_id",
    "contact_id",
    "event_id",
    "calendar_id",
    "addressbook_id",
)


def field_variants(field: str) -> tuple[str, str, str]:
    """unique_id -> ("unique_id", "UniqueID", "uniqueId")."""
    parts = field.split("_")
    head, last = parts[:-1], parts[-1]
    pascal = "".join(p.capitalize() for p in head) + last.upper()
    camel = head[0] + "".join(p.capitalize() for p in head[1:]) + last.capitalize() if head else field
    return field, pascal, camel


ID_FIELD_KEYS: frozenset[str] = frozenset(
    variant for field in ID_FIELDS for variant in field_variants(field)
)


def kind_for_label(label: str) -> ReferenceKind | None:
    return KINDS_BY_NAME.get(label.lower())
