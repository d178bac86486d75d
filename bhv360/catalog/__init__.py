"""
Module Catalog: immutable registry of purchasable feature modules.

This module provides:
- ModuleDefinition / PricingPolicy / TierBand: frozen catalog models
- ModuleCatalog: read-only lookups, filters, search and dependency checks
- load_module_catalog / get_module_catalog: YAML-backed construction
"""

from bhv360.catalog.models import (
    ModuleCategory,
    ModuleDefinition,
    ModuleStatus,
    ModuleTier,
    PricingModel,
    PricingPolicy,
    TierBand,
)
from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.loader import (
    CatalogConfigError,
    get_module_catalog,
    load_catalog_file,
    load_module_catalog,
    reset_module_catalog,
)

__all__ = [
    "ModuleCategory",
    "ModuleDefinition",
    "ModuleStatus",
    "ModuleTier",
    "PricingModel",
    "PricingPolicy",
    "TierBand",
    "ModuleCatalog",
    "CatalogConfigError",
    "get_module_catalog",
    "load_catalog_file",
    "load_module_catalog",
    "reset_module_catalog",
]
