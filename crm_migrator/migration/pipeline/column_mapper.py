"""Header auto-detection against the alias catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ..contracts import EntityType, get_field_names
from ..errors import InvalidUpload


def normalize_header(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class ColumnMapping:
    """Canonical field -> source column, plus what matching left over."""

    fields: Mapping[str, str]
    unmapped_fields: tuple[str, ...] = ()
    unclaimed_columns: tuple[str, ...] = ()
    overridden: bool = False

    def source_for(self, canonical_field: str) -> str | None:
        return self.fields.get(canonical_field)

    def as_dict(self) -> dict[str, Any]:
        return {
            "fields": dict(self.fields),
            "unmapped_fields": list(self.unmapped_fields),
            "unclaimed_columns": list(self.unclaimed_columns),
            "overridden": self.overridden,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ColumnMapping":
        return cls(
            fields=dict(payload.get("fields") or {}),
            unmapped_fields=tuple(payload.get("unmapped_fields") or ()),
            unclaimed_columns=tuple(payload.get("unclaimed_columns") or ()),
            overridden=bool(payload.get("overridden", False)),
        )


def map_columns(
    headers: Sequence[str],
    alias_table: Mapping[str, Sequence[str]],
    entity: EntityType | str,
) -> ColumnMapping:
    """
    Match ``headers`` against ``alias_table`` for ``entity``.

    Fields are visited in canonical declaration order; for each one the alias
    candidates are tried in order and the first header (in file order) whose
    trimmed, lower-cased form equals the candidate is claimed. A header may
    serve more than one field.
    """

    normalized_headers = [(header, normalize_header(header)) for header in headers]
    mapping: dict[str, str] = {}
    unmapped: list[str] = []

    for canonical_field in get_field_names(entity):
        match: str | None = None
        for candidate in alias_table.get(canonical_field, ()):
            wanted = normalize_header(candidate)
            match = next((original for original, norm in normalized_headers if norm == wanted), None)
            if match is not None:
                break
        if match is None:
            unmapped.append(canonical_field)
        else:
            mapping[canonical_field] = match

    claimed = set(mapping.values())
    unclaimed: list[str] = []
    for header in headers:
        if header not in claimed and header not in unclaimed:
            unclaimed.append(header)

    return ColumnMapping(
        fields=mapping,
        unmapped_fields=tuple(unmapped),
        unclaimed_columns=tuple(unclaimed),
    )


def mapping_from_override(override: Mapping[str, Any], entity: EntityType | str) -> ColumnMapping:
    """
    Build a caller-supplied mapping, skipping auto-detection entirely.

    Residual lists are reported empty because an override is trusted as-is.
    """

    if not isinstance(override, Mapping):
        raise InvalidUpload("Column mapping override must be an object of canonical field -> column name.")

    allowed = get_field_names(entity)
    unknown = sorted(str(key) for key in override if key not in allowed)
    if unknown:
        raise InvalidUpload(f"Column mapping override has unknown fields: {', '.join(unknown)}.")

    fields: dict[str, str] = {}
    for canonical_field in allowed:
        column = override.get(canonical_field)
        if column is None:
            continue
        if not isinstance(column, str):
            raise InvalidUpload(f"Column mapping for '{canonical_field}' must be a string.")
        if column.strip():
            fields[canonical_field] = column.strip()
    return ColumnMapping(fields=fields, overridden=True)
