"""Unit tests for the EdgeX release catalog."""

import pytest
from edgex.common.catalog import Catalog
from conftest import CATALOG


@pytest.fixture
def packaged():
    return Catalog.from_directory()


def test_packaged_catalog_has_both_variants(packaged):
    assert "levski" in packaged.versions(security=False)
    assert "minnesota" in packaged.versions(security=False)
    assert "levski" in packaged.versions(security=True)
    assert "levski" in packaged


def test_variants_use_distinct_config_maps(packaged):
    assert packaged.config_map_names("levski") == ["common-variables-levski"]
    assert packaged.config_map_names("levski", security=True) == [
        "common-variables-levski-security"
    ]


def test_security_variant_adds_security_services(packaged):
    plain = [c.name for c in packaged.lookup("levski")]
    secure = [c.name for c in packaged.lookup("levski", security=True)]
    assert "edgex-vault" in secure
    assert "edgex-vault" not in plain


def test_lookup_keeps_catalog_order(catalog):
    assert [c.name for c in catalog.lookup("levski")] == [
        "edgex-redis",
        "edgex-core-common-config-bootstrapper",
    ]


def test_unknown_version_is_empty(catalog):
    assert catalog.lookup("nope") == []
    assert catalog.config_maps("nope") == []
    assert "nope" not in catalog


def test_missing_variant_is_empty(catalog):
    assert catalog.versions(security=True) == []
    assert catalog.lookup("levski", security=True) == []


def test_lookup_hands_out_copies(catalog):
    first = catalog.lookup("levski")[0]
    first.service["ports"].append({"port": 1})
    first.name = "changed"
    catalog.config_maps("levski")[0]["data"]["EXTRA"] = "1"

    again = catalog.lookup("levski")[0]
    assert again.name == "edgex-redis"
    assert len(again.service["ports"]) == 1
    assert "EXTRA" not in catalog.config_maps("levski")[0]["data"]


def test_components_are_typed(catalog):
    redis, bootstrapper = catalog.lookup("levski")
    assert redis.exposes_ports and redis.has_workload
    assert not bootstrapper.exposes_ports and bootstrapper.has_workload


def test_missing_files_leave_variants_empty(tmp_path):
    (tmp_path / Catalog.NO_SECURITY_FILE).write_text(
        "versions:\n- versionName: jakarta\n  components:\n  - name: edgex-redis\n"
    )

    catalog = Catalog.from_directory(str(tmp_path))

    assert catalog.versions() == ["jakarta"]
    assert catalog.versions(security=True) == []
    assert [c.name for c in catalog.lookup("jakarta")] == ["edgex-redis"]


def test_from_dicts_matches_file_shape():
    catalog = Catalog.from_dicts(security=CATALOG, no_security=CATALOG)
    assert catalog.versions(security=True) == catalog.versions(security=False)
