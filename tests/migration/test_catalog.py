from __future__ import annotations

import pytest

from crm_migrator.migration.catalog import DEFAULT_CATALOG_PATH, get_alias_catalog, load_alias_catalog
from crm_migrator.migration.contracts import EntityType
from crm_migrator.migration.errors import CatalogLoadError, UnknownSourceSystem


def test_default_catalog_lists_supported_crms():
    catalog = load_alias_catalog(DEFAULT_CATALOG_PATH)

    keys = [system["key"] for system in catalog.list_source_systems()]
    assert keys == ["jobber", "buildertrend", "jobnimbus", "acculynx", "generic"]
    jobber = catalog.list_source_systems()[0]
    assert jobber["display_name"] == "Jobber"
    assert jobber["has_direct_api"] is True
    assert jobber["export_instructions"]


def test_lookup_returns_candidates_in_declared_order():
    catalog = load_alias_catalog(DEFAULT_CATALOG_PATH)

    table = catalog.lookup("jobber", "contacts")

    assert table["first_name"] == ("First Name", "first_name", "Client First Name")
    assert list(table)[:3] == ["first_name", "last_name", "email"]


def test_lookup_is_case_insensitive_on_source_key():
    catalog = load_alias_catalog(DEFAULT_CATALOG_PATH)
    assert catalog.lookup(" JobNimbus ", EntityType.INVOICE) is catalog.lookup("jobnimbus", "invoice")


def test_lookup_unknown_source_system_raises():
    catalog = load_alias_catalog(DEFAULT_CATALOG_PATH)

    with pytest.raises(UnknownSourceSystem) as excinfo:
        catalog.lookup("salesforce", "contacts")
    assert excinfo.value.source_system == "salesforce"


def test_lookup_unknown_entity_raises_unknown_source_system():
    catalog = load_alias_catalog(DEFAULT_CATALOG_PATH)
    with pytest.raises(UnknownSourceSystem):
        catalog.lookup("jobber", "estimates")


def test_generic_source_has_empty_tables():
    catalog = load_alias_catalog(DEFAULT_CATALOG_PATH)
    for entity in EntityType:
        assert dict(catalog.lookup("generic", entity)) == {}


def test_catalog_rejects_unknown_canonical_field(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "version: 1\n"
        "source_systems:\n"
        "  acme:\n"
        "    name: Acme\n"
        "    entities:\n"
        "      contacts:\n"
        "        favourite_colour: [Colour]\n",
        encoding="utf-8",
    )

    with pytest.raises(CatalogLoadError, match="favourite_colour"):
        load_alias_catalog(path)


def test_catalog_requires_source_systems(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text("version: 1\n", encoding="utf-8")
    with pytest.raises(CatalogLoadError):
        load_alias_catalog(path)


def test_missing_catalog_file_raises(tmp_path):
    with pytest.raises(CatalogLoadError):
        load_alias_catalog(tmp_path / "absent.yaml")


def test_adding_a_crm_is_a_data_change(tmp_path, app):
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "version: 2\n"
        "source_systems:\n"
        "  acme:\n"
        "    name: Acme CRM\n"
        "    entities:\n"
        "      contacts:\n"
        "        first_name: [Given]\n"
        "        last_name: [Family]\n",
        encoding="utf-8",
    )
    catalog = load_alias_catalog(path)

    assert catalog.version == 2
    assert catalog.lookup("acme", "contacts")["first_name"] == ("Given",)
    with pytest.raises(UnknownSourceSystem):
        catalog.lookup("acme", "jobs")


def test_get_alias_catalog_is_cached_on_extension(migration_app):
    first = get_alias_catalog(migration_app)
    assert get_alias_catalog(migration_app) is first
    assert migration_app.extensions["migration"]["catalog"] is first
