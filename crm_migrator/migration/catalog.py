"""Loading and querying the per-source-system alias catalog."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Tuple

import yaml
from flask import Flask, current_app

from .contracts import EntityType, get_field_names
from .errors import CatalogLoadError, UnknownSourceSystem

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[2] / "config" / "mappings" / "source_systems.yaml"

AliasTable = Mapping[str, Tuple[str, ...]]


@dataclass(frozen=True)
class SourceSystem:
    key: str
    display_name: str
    has_direct_api: bool
    export_instructions: str
    logo: str | None
    entities: Mapping[EntityType, AliasTable]

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "has_direct_api": self.has_direct_api,
            "export_instructions": self.export_instructions,
            "logo": self.logo,
        }


@dataclass(frozen=True)
class AliasCatalog:
    version: int
    systems: Mapping[str, SourceSystem]
    checksum: str
    path: Path

    def lookup(self, source_system: str, entity: EntityType | str) -> AliasTable:
        """
        Return canonical field -> ordered candidate column names.

        Raises :class:`UnknownSourceSystem` when the pair is not catalogued.
        """

        key = (source_system or "").strip().lower()
        entity_label = getattr(entity, "value", entity)
        system = self.systems.get(key)
        if system is None:
            raise UnknownSourceSystem(source_system, entity_label)
        try:
            entity_type = EntityType.coerce(entity)
        except ValueError as exc:
            raise UnknownSourceSystem(source_system, entity_label) from exc
        table = system.entities.get(entity_type)
        if table is None:
            raise UnknownSourceSystem(source_system, entity_type.value)
        return table

    def list_source_systems(self) -> list[dict[str, Any]]:
        return [system.as_dict() for system in self.systems.values()]


def _compute_checksum(raw: Mapping[str, Any]) -> str:
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_entity_table(system_key: str, entity: EntityType, payload: Any) -> AliasTable:
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise CatalogLoadError(f"Entity '{entity.plural}' of '{system_key}' must be a mapping.")

    allowed = get_field_names(entity)
    table: dict[str, Tuple[str, ...]] = {}
    for field_name, candidates in payload.items():
        field_name = str(field_name).strip()
        if field_name not in allowed:
            raise CatalogLoadError(
                f"Field '{field_name}' is not a canonical {entity.value} field (source system '{system_key}')."
            )
        if isinstance(candidates, str):
            candidates = [candidates]
        if not isinstance(candidates, (list, tuple)) or not candidates:
            raise CatalogLoadError(f"Field '{field_name}' of '{system_key}' needs a non-empty list of column names.")
        table[field_name] = tuple(str(candidate) for candidate in candidates)

    # Declaration order of the canonical field set, independent of YAML order.
    ordered = {name: table[name] for name in allowed if name in table}
    return MappingProxyType(ordered)


def load_alias_catalog(path: str | Path) -> AliasCatalog:
    """
    Load and validate the alias catalog YAML.
    """

    path = Path(path)
    if not path.exists():
        raise CatalogLoadError(f"Alias catalog not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - YAML parser errors
        raise CatalogLoadError(f"Failed to parse alias catalog YAML at {path}: {exc}") from exc

    try:
        version = int(raw.get("version", 1))
        systems_payload = raw["source_systems"]
    except KeyError as exc:
        raise CatalogLoadError(f"Missing required catalog attribute: {exc}") from exc
    except (TypeError, ValueError, AttributeError) as exc:
        raise CatalogLoadError(f"Invalid catalog attribute: {exc}") from exc

    if not isinstance(systems_payload, Mapping) or not systems_payload:
        raise CatalogLoadError("Alias catalog must define at least one source system.")

    systems: dict[str, SourceSystem] = {}
    for raw_key, details in systems_payload.items():
        key = str(raw_key).strip().lower()
        if not isinstance(details, Mapping):
            raise CatalogLoadError(f"Source system '{key}' must be a mapping.")
        entities_payload = details.get("entities") or {}
        entities: dict[EntityType, AliasTable] = {}
        for raw_entity, table_payload in entities_payload.items():
            try:
                entity = EntityType.coerce(raw_entity)
            except ValueError as exc:
                raise CatalogLoadError(f"Source system '{key}': {exc}") from exc
            entities[entity] = _parse_entity_table(key, entity, table_payload)
        systems[key] = SourceSystem(
            key=key,
            display_name=str(details.get("name") or key),
            has_direct_api=bool(details.get("has_direct_api", False)),
            export_instructions=str(details.get("export_instructions") or ""),
            logo=details.get("logo"),
            entities=MappingProxyType(entities),
        )

    return AliasCatalog(
        version=version,
        systems=MappingProxyType(systems),
        checksum=_compute_checksum(raw),
        path=path,
    )


def resolve_catalog_path(app: Flask) -> Path:
    configured = app.config.get("MIGRATION_ALIAS_CATALOG_PATH")
    return Path(configured) if configured else DEFAULT_CATALOG_PATH


def get_alias_catalog(app: Flask | None = None) -> AliasCatalog:
    """
    Return the alias catalog loaded at ``init_migration`` time, loading it on
    first use when the extension has not been initialised.
    """

    app = app or current_app._get_current_object()
    state = app.extensions.setdefault("migration", {})
    catalog: AliasCatalog | None = state.get("catalog")
    if catalog is None:
        catalog = load_alias_catalog(resolve_catalog_path(app))
        state["catalog"] = catalog
    return catalog
