"""
Catalog models - immutable module definitions and pricing policies.

Provides:
- ModuleCategory / ModuleTier / ModuleStatus / PricingModel enums
- TierBand: per-user rate for a [min_users, max_users] band
- PricingPolicy: tagged pricing variant (fixed, per_user, per_building, hybrid)
- ModuleDefinition: one purchasable module

All monetary values are integer minor-currency units (cents).
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Tuple


class ModuleCategory(str, Enum):
    CORE = "core"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"
    ADDON = "addon"


class ModuleTier(str, Enum):
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"
    CUSTOM = "custom"


class ModuleStatus(str, Enum):
    ACTIVE = "active"
    BETA = "beta"
    DEPRECATED = "deprecated"


class PricingModel(str, Enum):
    FIXED = "fixed"
    PER_USER = "per_user"
    PER_BUILDING = "per_building"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class TierBand:
    """Per-user rate applying when min_users <= users <= max_users (open-ended if None)."""

    min_users: int
    price_per_user: int
    max_users: Optional[int] = None

    def contains(self, user_count: int) -> bool:
        if user_count < self.min_users:
            return False
        return self.max_users is None or user_count <= self.max_users


@dataclass(frozen=True)
class PricingPolicy:
    """
    How a module is priced per month.

    - fixed: base_price regardless of usage
    - per_user: per-user rate x users; the rate comes from the first tier band
      containing the user count, else price_per_user
    - per_building: price_per_building x buildings
    - hybrid: base_price + per-user part + per-building part
    """

    model: PricingModel
    base_price: int = 0
    price_per_user: int = 0
    price_per_building: int = 0
    tier_bands: Tuple[TierBand, ...] = ()
    setup_fee: int = 0
    free_trial_days: int = 0
    currency: str = "EUR"

    def user_rate(self, user_count: int) -> int:
        """Resolve the per-user rate; bands are checked in list order."""
        for band in self.tier_bands:
            if band.contains(user_count):
                return band.price_per_user
        return self.price_per_user

    @property
    def has_free_trial(self) -> bool:
        return self.free_trial_days > 0


@dataclass(frozen=True)
class ModuleDefinition:
    """A purchasable feature module. Ids are globally unique and stable."""

    id: str
    name: str
    description: str
    category: ModuleCategory
    tier: ModuleTier
    pricing: PricingPolicy
    core: bool = False
    enabled: bool = True
    visible: bool = True
    implemented: bool = True
    status: ModuleStatus = ModuleStatus.ACTIVE
    features: Tuple[str, ...] = field(default_factory=tuple)
    rating: float = 0.0
    review_count: int = 0
    popularity: int = 0
    dependencies: Tuple[str, ...] = field(default_factory=tuple)
    customer_count: Optional[int] = None
    last_updated: Optional[date] = None

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match over name, description and features."""
        needle = query.lower()
        if needle in self.name.lower() or needle in self.description.lower():
            return True
        return any(needle in feature.lower() for feature in self.features)
