"""
Tests for the YAML catalog loader and its pydantic validation.

Tests:
- Packaged catalog loads and converts to frozen definitions
- Path resolution (argument, MODULE_CATALOG_PATH)
- Load-time validation failures raise CatalogConfigError
- Process-wide singleton and reset
"""

import pytest

from bhv360.catalog.loader import (
    CatalogConfigError,
    get_module_catalog,
    load_catalog_file,
    load_module_catalog,
    reset_module_catalog,
)
from bhv360.catalog.models import PricingModel


def _module(module_id, **overrides):
    module = {
        "id": module_id,
        "name": module_id.title(),
        "category": "premium",
        "tier": "professional",
        "pricing": {"model": "fixed", "base_price": 1000},
    }
    module.update(overrides)
    return module


class TestPackagedCatalog:
    """Tests against the catalog shipped with the package."""

    def test_loads_all_modules_and_codes(self):
        document = load_catalog_file()

        assert len(document.modules) == 10
        assert {c.code for c in document.discount_codes} == {
            "WELCOME10", "BHV50", "ENTERPRISE20", "LAUNCH2024",
        }

    def test_single_rate_models_use_base_price_as_unit_rate(self):
        """per_user / per_building modules may give their rate as base_price."""
        catalog = load_module_catalog()

        incidenten = catalog.get_module("incidenten").pricing
        assert incidenten.model == PricingModel.PER_USER
        assert incidenten.price_per_user == 150

        visitors = catalog.get_module("bezoeker-registratie").pricing
        assert visitors.price_per_building == 2500

    def test_tier_bands_loaded_in_order(self):
        bands = load_module_catalog().get_module("noodprocedures").pricing.tier_bands

        assert [b.min_users for b in bands] == [1, 26, 101]
        assert bands[-1].max_users is None

    def test_features_and_dependencies_are_tuples(self):
        module = load_module_catalog().get_module("mobile-app")

        assert module.dependencies == ("incidenten",)
        assert isinstance(module.features, tuple)


class TestPathResolution:
    """Tests for explicit and environment-provided paths."""

    def test_explicit_path(self, make_yaml_config):
        path = make_yaml_config("module_catalog.yml", {"modules": [_module("alpha")]})

        catalog = load_module_catalog(str(path))

        assert [m.id for m in catalog] == ["alpha"]

    def test_env_var_path(self, make_yaml_config, monkeypatch):
        path = make_yaml_config("custom.yml", {"modules": [_module("beta")]})
        monkeypatch.setenv("MODULE_CATALOG_PATH", str(path))

        catalog = load_module_catalog()

        assert [m.id for m in catalog] == ["beta"]

    def test_missing_file(self, temp_config_dir):
        with pytest.raises(CatalogConfigError, match="not found"):
            load_module_catalog(str(temp_config_dir / "missing.yml"))

    def test_invalid_yaml(self, temp_config_dir):
        path = temp_config_dir / "broken.yml"
        path.write_text("modules: [unclosed\n")

        with pytest.raises(CatalogConfigError, match="not valid YAML"):
            load_module_catalog(str(path))


class TestValidation:
    """Configuration mistakes fail at load time."""

    def test_duplicate_module_ids(self, make_yaml_config):
        path = make_yaml_config("c.yml", {"modules": [_module("a"), _module("a")]})

        with pytest.raises(CatalogConfigError, match="duplicate module id"):
            load_module_catalog(str(path))

    def test_unknown_dependency(self, make_yaml_config):
        path = make_yaml_config("c.yml", {"modules": [_module("a", dependencies=["ghost"])]})

        with pytest.raises(CatalogConfigError, match="unknown modules"):
            load_module_catalog(str(path))

    def test_self_dependency(self, make_yaml_config):
        path = make_yaml_config("c.yml", {"modules": [_module("a", dependencies=["a"])]})

        with pytest.raises(CatalogConfigError, match="depends on itself"):
            load_module_catalog(str(path))

    def test_negative_price(self, make_yaml_config):
        module = _module("a", pricing={"model": "fixed", "base_price": -100})
        path = make_yaml_config("c.yml", {"modules": [module]})

        with pytest.raises(CatalogConfigError, match="failed validation"):
            load_module_catalog(str(path))

    def test_overlapping_tier_bands(self, make_yaml_config):
        module = _module(
            "a",
            pricing={
                "model": "per_user",
                "price_per_user": 100,
                "tier_bands": [
                    {"min_users": 1, "max_users": 20, "price_per_user": 100},
                    {"min_users": 10, "max_users": 50, "price_per_user": 80},
                ],
            },
        )
        path = make_yaml_config("c.yml", {"modules": [module]})

        with pytest.raises(CatalogConfigError, match="tier bands overlap"):
            load_module_catalog(str(path))

    def test_unknown_field_rejected(self, make_yaml_config):
        path = make_yaml_config("c.yml", {"modules": [_module("a", colour="red")]})

        with pytest.raises(CatalogConfigError):
            load_module_catalog(str(path))

    def test_percentage_code_above_100(self, make_yaml_config):
        path = make_yaml_config("c.yml", {
            "modules": [_module("a")],
            "discount_codes": [{"code": "TOO-MUCH", "type": "percentage", "value": 150}],
        })

        with pytest.raises(CatalogConfigError, match="exceeds 100"):
            load_catalog_file(str(path))

    def test_duplicate_codes_case_insensitive(self, make_yaml_config):
        path = make_yaml_config("c.yml", {
            "modules": [_module("a")],
            "discount_codes": [
                {"code": "SAVE", "type": "fixed", "value": 100},
                {"code": "save", "type": "fixed", "value": 200},
            ],
        })

        with pytest.raises(CatalogConfigError, match="duplicate discount code"):
            load_catalog_file(str(path))


class TestCatalogSingleton:
    """Tests for get_module_catalog / reset_module_catalog."""

    def test_returns_same_instance(self):
        assert get_module_catalog() is get_module_catalog()

    def test_reset_reloads(self):
        first = get_module_catalog()
        reset_module_catalog()
        second = get_module_catalog()

        assert first is not second
        assert len(first) == len(second)
