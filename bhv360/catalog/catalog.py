"""
Module Catalog - read-only accessors over the module definitions.

The catalog is an immutable value built once at startup and injected into
every component that needs it. Nothing here mutates; the only failure mode
is "not found", which lookups report as None rather than raising.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from bhv360.catalog.models import (
    ModuleCategory,
    ModuleDefinition,
    ModuleStatus,
    ModuleTier,
)

logger = logging.getLogger(__name__)

DEFAULT_HIGH_RATING_THRESHOLD = 4.5


class ModuleCatalog:
    """Immutable registry of module definitions, in declaration order."""

    def __init__(self, modules: Iterable[ModuleDefinition]):
        self._modules: tuple = tuple(modules)
        self._by_id: Dict[str, ModuleDefinition] = {}
        for module in self._modules:
            if module.id in self._by_id:
                raise ValueError(f"Duplicate module id in catalog: {module.id}")
            self._by_id[module.id] = module

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self):
        return iter(self._modules)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._by_id

    # ------------------------------------------------------------------
    # Lookups and filters
    # ------------------------------------------------------------------

    def all_modules(self) -> List[ModuleDefinition]:
        return list(self._modules)

    def get_module(self, module_id: str) -> Optional[ModuleDefinition]:
        """Get a module by id, or None if it does not exist."""
        return self._by_id.get(module_id)

    def get_modules_by_category(self, category: ModuleCategory | str) -> List[ModuleDefinition]:
        wanted = ModuleCategory(category)
        return [m for m in self._modules if m.category == wanted]

    def get_modules_by_tier(self, tier: ModuleTier | str) -> List[ModuleDefinition]:
        wanted = ModuleTier(tier)
        return [m for m in self._modules if m.tier == wanted]

    def get_modules_by_status(self, status: ModuleStatus | str) -> List[ModuleDefinition]:
        wanted = ModuleStatus(status)
        return [m for m in self._modules if m.status == wanted]

    def get_core_modules(self) -> List[ModuleDefinition]:
        return [m for m in self._modules if m.core]

    def get_visible_modules(self) -> List[ModuleDefinition]:
        return [m for m in self._modules if m.visible]

    def get_enabled_modules(self) -> List[ModuleDefinition]:
        return [m for m in self._modules if m.enabled]

    def get_implemented_modules(self) -> List[ModuleDefinition]:
        return [m for m in self._modules if m.implemented]

    def search_modules(self, query: str) -> List[ModuleDefinition]:
        """
        Case-insensitive substring search over name, description and features.

        An empty (or whitespace-only) query returns the full catalog.
        """
        needle = (query or "").strip()
        if not needle:
            return list(self._modules)
        return [m for m in self._modules if m.matches(needle)]

    def get_popular_modules(self, limit: Optional[int] = None) -> List[ModuleDefinition]:
        """Modules by popularity, highest first."""
        ranked = sorted(self._modules, key=lambda m: m.popularity, reverse=True)
        return ranked[:limit] if limit is not None else ranked

    def get_high_rated_modules(
        self, threshold: float = DEFAULT_HIGH_RATING_THRESHOLD
    ) -> List[ModuleDefinition]:
        """Modules rated at or above threshold, best first."""
        rated = [m for m in self._modules if m.rating >= threshold]
        return sorted(rated, key=lambda m: m.rating, reverse=True)

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def get_module_dependencies(self, module_id: str) -> List[ModuleDefinition]:
        module = self.get_module(module_id)
        if not module:
            return []
        return [self._by_id[dep] for dep in module.dependencies if dep in self._by_id]

    def missing_dependencies(self, module_id: str, active_ids: Sequence[str]) -> List[str]:
        module = self.get_module(module_id)
        if not module:
            return []
        active = set(active_ids)
        return [dep for dep in module.dependencies if dep not in active]

    def can_activate_module(self, module_id: str, active_ids: Sequence[str]) -> bool:
        """
        True iff every dependency of the module is in active_ids.

        A module without dependencies is always activatable; an unknown
        module never is.
        """
        if module_id not in self._by_id:
            return False
        return not self.missing_dependencies(module_id, active_ids)

    # ------------------------------------------------------------------
    # Trial and setup metadata
    # ------------------------------------------------------------------

    def has_free_trial(self, module_id: str) -> bool:
        module = self.get_module(module_id)
        return bool(module and module.pricing.has_free_trial)

    def get_trial_days(self, module_id: str) -> int:
        module = self.get_module(module_id)
        return module.pricing.free_trial_days if module else 0

    def get_setup_cost(self, module_id: str) -> int:
        module = self.get_module(module_id)
        return module.pricing.setup_fee if module else 0

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_module_stats(self) -> Dict[str, object]:
        """Aggregate counts and rating figures for dashboards."""
        total = len(self._modules)
        ratings = [m.rating for m in self._modules if m.review_count > 0]
        return {
            "total": total,
            "core": sum(1 for m in self._modules if m.core),
            "implemented": sum(1 for m in self._modules if m.implemented),
            "visible": sum(1 for m in self._modules if m.visible),
            "by_category": dict(Counter(m.category.value for m in self._modules)),
            "by_tier": dict(Counter(m.tier.value for m in self._modules)),
            "by_status": dict(Counter(m.status.value for m in self._modules)),
            "with_free_trial": sum(1 for m in self._modules if m.pricing.has_free_trial),
            "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else 0.0,
            "total_reviews": sum(m.review_count for m in self._modules),
        }
