"""
Catalog Loader - load module definitions from config/module_catalog.yml.

Provides:
- load_catalog_file(): parse and validate the YAML document
- load_module_catalog(): build an immutable ModuleCatalog from a file
- get_module_catalog(): process-wide catalog, loaded once
- reset_module_catalog(): drop the cached catalog (tests only)

Path resolution order:
    1. explicit path argument
    2. MODULE_CATALOG_PATH environment variable
    3. the catalog packaged with bhv360 (bhv360/config/module_catalog.yml)
    4. ./config/module_catalog.yml relative to the working directory
"""

import logging
import os
from pathlib import Path
from threading import Lock
from typing import Optional

import yaml
from pydantic import ValidationError

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.schema import CatalogFileSchema

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "module_catalog.yml"

_catalog: Optional[ModuleCatalog] = None
_catalog_lock = Lock()


class CatalogConfigError(Exception):
    """Raised when the catalog file is missing or invalid."""
    pass


def resolve_catalog_path(config_path: Optional[str] = None) -> Path:
    if config_path:
        return Path(config_path)

    env_path = os.getenv("MODULE_CATALOG_PATH")
    if env_path:
        return Path(env_path)

    candidates = [
        Path(__file__).resolve().parent.parent / "config" / CATALOG_FILENAME,
        Path(os.getcwd()) / "config" / CATALOG_FILENAME,
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate

    raise CatalogConfigError(
        f"{CATALOG_FILENAME} not found in: {[str(p) for p in candidates]}"
    )


def load_catalog_file(config_path: Optional[str] = None) -> CatalogFileSchema:
    """
    Read and validate the catalog YAML.

    Raises:
        CatalogConfigError: If the file is missing, not YAML, or fails validation
    """
    path = resolve_catalog_path(config_path)
    if not path.exists():
        raise CatalogConfigError(f"Catalog not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise CatalogConfigError(f"Catalog {path} is not valid YAML: {e}") from e

    try:
        document = CatalogFileSchema.model_validate(raw)
    except ValidationError as e:
        raise CatalogConfigError(f"Catalog {path} failed validation: {e}") from e

    logger.info(
        "Loaded module catalog from %s",
        path,
        extra={
            "module_count": len(document.modules),
            "discount_code_count": len(document.discount_codes),
        },
    )
    return document


def load_module_catalog(config_path: Optional[str] = None) -> ModuleCatalog:
    document = load_catalog_file(config_path)
    return ModuleCatalog(module.to_definition() for module in document.modules)


def get_module_catalog(config_path: Optional[str] = None) -> ModuleCatalog:
    """Return the process-wide catalog, loading it on first use."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = load_module_catalog(config_path)
    return _catalog


def reset_module_catalog() -> None:
    """Reset the cached catalog (for tests only)."""
    global _catalog
    with _catalog_lock:
        _catalog = None
