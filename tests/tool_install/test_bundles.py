"""
Tests for bundle expansion.
"""

import pytest

from gearbox.core.errors import CyclicDependencyError, UnknownToolError
from gearbox.core.models.catalog import Catalog
from gearbox.core.services.tool_install.resolver.bundles import (
    bundle_system_packages,
    expand_bundle,
    expand_selection,
)


class TestExpandBundle:
    def test_flat(self, catalog: Catalog):
        assert expand_bundle(catalog, "essential") == ["fd", "ripgrep"]

    def test_nested_includes_first(self, catalog: Catalog):
        assert expand_bundle(catalog, "developer") == ["fd", "ripgrep", "delta"]

    def test_diamond_allowed(self, catalog_data: dict):
        catalog_data["bundles"].append(
            {"name": "everything", "includes_bundles": ["essential", "developer"]}
        )
        catalog = Catalog.model_validate(catalog_data)
        assert expand_bundle(catalog, "everything") == ["fd", "ripgrep", "delta"]

    def test_cycle(self, catalog_data: dict):
        catalog_data["bundles"][0]["includes_bundles"] = ["developer"]
        catalog = Catalog.model_validate(catalog_data)
        with pytest.raises(CyclicDependencyError) as exc:
            expand_bundle(catalog, "developer")
        assert exc.value.cycle == ["developer", "essential", "developer"]
        assert "bundle reference" in str(exc.value)

    def test_unknown(self, catalog: Catalog):
        with pytest.raises(UnknownToolError, match="Unknown bundle: nope"):
            expand_bundle(catalog, "nope")


class TestExpandSelection:
    def test_mixed(self, catalog: Catalog):
        tools, origin = expand_selection(catalog, ["essential", "zoxide"])
        assert tools == ["fd", "ripgrep", "zoxide"]
        assert origin == {"fd": "essential", "ripgrep": "essential"}

    def test_direct_name_beats_bundle_origin(self, catalog: Catalog):
        tools, origin = expand_selection(catalog, ["fd", "essential"])
        assert tools == ["fd", "ripgrep"]
        assert "fd" not in origin

    def test_unknown_name(self, catalog: Catalog):
        with pytest.raises(UnknownToolError, match="Unknown tool: ghost"):
            expand_selection(catalog, ["ghost"])


def test_bundle_system_packages(catalog: Catalog):
    assert bundle_system_packages(catalog, "developer") == ["pkg-config"]
