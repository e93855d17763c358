"""
Per-field coercion of raw CSV cells into canonical values.

Dispatch is table driven: every canonical field has a :class:`FieldKind`
resolved once in :mod:`crm_migrator.migration.contracts`, and each kind maps to
one coercer below. Coercers never raise on bad input; unparsable values become
``None`` except where noted.
"""

from __future__ import annotations

import math
import re
from datetime import timezone
from typing import Any, Callable, Mapping

from dateutil import parser as date_parser

from ..adapters.csv_reader import RawRow
from ..contracts import EntityType, FieldKind, get_field_kinds
from .column_mapper import ColumnMapping

NormalizedRow = dict[str, Any]

_CURRENCY_NOISE = re.compile(r"[\s,$€£¥]")
_NON_DIGITS = re.compile(r"\D")

# Bucket order is significant: substring matching returns the first bucket
# with a matching variant.
STATUS_TAXONOMY: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("lead", ("lead", "prospect", "new lead", "unqualified", "inquiry")),
    ("client", ("client", "customer", "active client", "active customer", "won")),
    ("inactive", ("inactive", "lost", "archived", "closed lost", "disqualified")),
    ("active", ("active", "in progress", "in-progress", "started", "open", "work in progress")),
    ("cancelled", ("cancelled", "canceled", "void", "voided", "closed lost", "lost")),
    ("completed", ("completed", "complete", "done", "closed won", "finished", "closed")),
    ("paid", ("paid", "payment received", "collected")),
    ("sent", ("sent", "open", "unpaid", "outstanding")),
    ("overdue", ("overdue", "past due", "late")),
    ("draft", ("draft", "pending")),
)

ENTITY_STATUS_BUCKETS: Mapping[EntityType, frozenset[str]] = {
    EntityType.CONTACT: frozenset({"lead", "client", "inactive"}),
    EntityType.JOB: frozenset({"active", "completed", "cancelled"}),
    EntityType.INVOICE: frozenset({"cancelled", "paid", "sent", "overdue", "draft"}),
}


def _bucket_order(entity: EntityType | None) -> tuple[tuple[str, tuple[str, ...]], ...]:
    if entity is None:
        return STATUS_TAXONOMY
    own = ENTITY_STATUS_BUCKETS[entity]
    return tuple(bucket for bucket in STATUS_TAXONOMY if bucket[0] in own) + tuple(
        bucket for bucket in STATUS_TAXONOMY if bucket[0] not in own
    )


_STATUS_ORDER: dict[EntityType | None, tuple[tuple[str, tuple[str, ...]], ...]] = {
    key: _bucket_order(key) for key in (None, *EntityType)
}


def _blank_to_none(value: object | None) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def normalize_status(value: object | None, entity: EntityType | str | None = None) -> str | None:
    """
    Map a free-text status onto the canonical taxonomy.

    Buckets that belong to ``entity`` are tried first, then the rest in the
    global order. Unrecognised values are returned unchanged.
    """

    token = _blank_to_none(value)
    if token is None:
        return None
    entity_type = EntityType.coerce(entity) if entity is not None else None
    lowered = token.lower()
    for bucket, variants in _STATUS_ORDER[entity_type]:
        if any(variant in lowered for variant in variants):
            return bucket
    return token


def normalize_date(value: object | None) -> str | None:
    """Parse a calendar date/time into an ISO-8601 UTC timestamp."""

    token = _blank_to_none(value)
    if token is None:
        return None
    try:
        parsed = date_parser.parse(token)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        # Offsets near datetime.min or datetime.max overflow on conversion.
        return parsed.astimezone(timezone.utc).isoformat()
    except (ValueError, OverflowError):
        return None


def normalize_money(value: object | None) -> float | None:
    """Strip currency symbols, separators and whitespace, then parse a decimal."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    token = _blank_to_none(value)
    if token is None:
        return None
    try:
        amount = float(_CURRENCY_NOISE.sub("", token))
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def normalize_phone(value: object | None) -> str | None:
    """
    Format North American numbers as ``(AAA) BBB-CCCC``.

    Anything that is not 10 digits, or 11 digits with a leading ``1``, passes
    through trimmed so no phone number is discarded.
    """

    token = _blank_to_none(value)
    if token is None:
        return None
    digits = _NON_DIGITS.sub("", token)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return token


def normalize_email(value: object | None) -> str | None:
    token = _blank_to_none(value)
    return token.lower() if token is not None else None


def normalize_tags(value: object | None) -> str | None:
    token = _blank_to_none(value)
    if token is None:
        return None
    pieces = [piece.strip() for piece in token.split(",")]
    return ",".join(piece for piece in pieces if piece) or None


Coercer = Callable[[object | None, EntityType], Any]

_COERCERS: dict[FieldKind, Coercer] = {
    FieldKind.TEXT: lambda value, _entity: _blank_to_none(value),
    FieldKind.DATE: lambda value, _entity: normalize_date(value),
    FieldKind.MONEY: lambda value, _entity: normalize_money(value),
    FieldKind.PHONE: lambda value, _entity: normalize_phone(value),
    FieldKind.EMAIL: lambda value, _entity: normalize_email(value),
    FieldKind.STATUS: normalize_status,
    FieldKind.TAGS: lambda value, _entity: normalize_tags(value),
}


def clean_value(kind: FieldKind, value: object | None, entity: EntityType) -> Any:
    return _COERCERS[kind](value, entity)


def normalize_row(
    raw_row: RawRow | Mapping[str, Any],
    mapping: ColumnMapping,
    entity: EntityType | str,
) -> NormalizedRow:
    """
    Build the canonical record for one raw row.

    Only mapped fields appear in the result; a mapped column missing from the
    row, or holding an empty value, yields ``None``.
    """

    entity_type = EntityType.coerce(entity)
    values = raw_row.values if isinstance(raw_row, RawRow) else raw_row
    kinds = get_field_kinds(entity_type)
    normalized: NormalizedRow = {}
    for canonical_field, kind in kinds.items():
        column = mapping.source_for(canonical_field)
        if column is None:
            continue
        normalized[canonical_field] = clean_value(kind, values.get(column), entity_type)
    return normalized


def normalize_rows(
    raw_rows: list[RawRow] | tuple[RawRow, ...],
    mapping: ColumnMapping,
    entity: EntityType | str,
) -> list[NormalizedRow]:
    return [normalize_row(row, mapping, entity) for row in raw_rows]
