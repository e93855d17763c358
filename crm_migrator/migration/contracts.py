"""Canonical field definitions for migrated entities.

Each entity (contact, job, invoice) declares an ordered tuple of
:class:`FieldSpec` entries. The coercion kind of every field is resolved once
here so the normalizer dispatches on a table instead of re-inspecting field
names per row.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Mapping, Tuple

MONEY_FIELDS: frozenset[str] = frozenset({"value", "amount", "paid_amount"})


class EntityType(str, enum.Enum):
    """Entities a migration can import, in dependency order."""

    CONTACT = "contact"
    JOB = "job"
    INVOICE = "invoice"

    @property
    def plural(self) -> str:
        return f"{self.value}s"

    @classmethod
    def coerce(cls, value: "EntityType | str") -> "EntityType":
        """Accept enum members, singular names, or plural names (``contacts``)."""

        if isinstance(value, cls):
            return value
        token = str(value or "").strip().lower()
        for member in cls:
            if token in (member.value, member.plural):
                return member
        raise ValueError(f"Unknown entity '{value}'. Expected one of: contacts, jobs, invoices.")


IMPORT_ORDER: Tuple[EntityType, ...] = (EntityType.CONTACT, EntityType.JOB, EntityType.INVOICE)
ROLLBACK_ORDER: Tuple[EntityType, ...] = tuple(reversed(IMPORT_ORDER))


class FieldKind(str, enum.Enum):
    """Coercion applied to a canonical field's raw value."""

    TEXT = "text"
    DATE = "date"
    MONEY = "money"
    PHONE = "phone"
    EMAIL = "email"
    STATUS = "status"
    TAGS = "tags"


def field_kind_for(name: str) -> FieldKind:
    """Resolve the coercion kind for a canonical field name."""

    if name.endswith("_at") or name.endswith("_date"):
        return FieldKind.DATE
    if name in MONEY_FIELDS:
        return FieldKind.MONEY
    if name == "phone":
        return FieldKind.PHONE
    if name == "email":
        return FieldKind.EMAIL
    if name == "status":
        return FieldKind.STATUS
    if name == "tags":
        return FieldKind.TAGS
    return FieldKind.TEXT


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical migration field."""

    name: str
    description: str
    required: bool = False

    @property
    def kind(self) -> FieldKind:
        return _FIELD_KINDS[self.name]


_ADDRESS_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("address_street", "Street address line."),
    FieldSpec("address_city", "City."),
    FieldSpec("address_state", "State or province."),
    FieldSpec("address_zip", "Postal or ZIP code."),
)

CONTACT_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("first_name", "Given name.", required=True),
    FieldSpec("last_name", "Family name.", required=True),
    FieldSpec("email", "Primary email address (natural key when present)."),
    FieldSpec("phone", "Primary phone number."),
    *_ADDRESS_FIELDS,
    FieldSpec("company", "Company or business name."),
    FieldSpec("type", "Record type such as lead, client or contact."),
    FieldSpec("status", "Lifecycle status."),
    FieldSpec("notes", "Free-form notes."),
    FieldSpec("created_at", "Creation timestamp in the source system."),
    FieldSpec("tags", "Comma-delimited labels."),
)

JOB_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("title", "Job or project name.", required=True),
    FieldSpec("contact_email", "Owning contact's email, used to resolve the contact."),
    FieldSpec("contact_name", "Owning contact's full name, used when no email resolves."),
    FieldSpec("status", "Lifecycle status."),
    FieldSpec("type", "Service category."),
    FieldSpec("description", "Scope of work."),
    FieldSpec("start_date", "Scheduled start."),
    FieldSpec("end_date", "Scheduled or actual completion."),
    FieldSpec("value", "Total job value."),
    *_ADDRESS_FIELDS,
    FieldSpec("notes", "Free-form notes."),
    FieldSpec("created_at", "Creation timestamp in the source system."),
)

INVOICE_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("invoice_number", "Invoice number (natural key when present)."),
    FieldSpec("contact_email", "Billed contact's email."),
    FieldSpec("contact_name", "Billed contact's full name, used when no email resolves."),
    FieldSpec("job_title", "Title of the job being billed."),
    FieldSpec("amount", "Invoice total.", required=True),
    FieldSpec("paid_amount", "Amount paid so far."),
    FieldSpec("status", "Lifecycle status."),
    FieldSpec("issue_date", "Date issued."),
    FieldSpec("due_date", "Date due."),
    FieldSpec("paid_date", "Date paid."),
    FieldSpec("notes", "Free-form notes."),
)

CANONICAL_FIELDS: Mapping[EntityType, Tuple[FieldSpec, ...]] = {
    EntityType.CONTACT: CONTACT_FIELDS,
    EntityType.JOB: JOB_FIELDS,
    EntityType.INVOICE: INVOICE_FIELDS,
}

_FIELD_KINDS: dict[str, FieldKind] = {
    spec.name: field_kind_for(spec.name) for specs in CANONICAL_FIELDS.values() for spec in specs
}


def get_field_specs(entity: EntityType | str) -> Tuple[FieldSpec, ...]:
    return CANONICAL_FIELDS[EntityType.coerce(entity)]


def get_field_names(entity: EntityType | str) -> Tuple[str, ...]:
    return tuple(spec.name for spec in get_field_specs(entity))


def get_required_fields(entity: EntityType | str) -> Tuple[str, ...]:
    """Return the required canonical fields for ``entity`` in declaration order."""

    return tuple(spec.name for spec in get_field_specs(entity) if spec.required)


def get_field_kinds(entity: EntityType | str) -> dict[str, FieldKind]:
    return {spec.name: spec.kind for spec in get_field_specs(entity)}
