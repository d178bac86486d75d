"""
Pydantic schema for the module catalog file.

Validates the YAML document before it becomes an immutable ModuleCatalog.
Configuration mistakes (duplicate ids, dangling dependencies, overlapping
tier bands, negative prices) fail here, at load time, never while pricing.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bhv360.catalog.models import (
    ModuleCategory,
    ModuleDefinition,
    ModuleStatus,
    ModuleTier,
    PricingModel,
    PricingPolicy,
    TierBand,
)


class TierBandSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_users: int = Field(..., ge=0)
    max_users: Optional[int] = Field(None, ge=0)
    price_per_user: int = Field(..., ge=0, description="Cents per user per month")

    @model_validator(mode="after")
    def _check_bounds(self) -> "TierBandSchema":
        if self.max_users is not None and self.max_users < self.min_users:
            raise ValueError(
                f"max_users ({self.max_users}) is below min_users ({self.min_users})"
            )
        return self


class PricingSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: PricingModel
    base_price: int = Field(0, ge=0, description="Cents per month")
    price_per_user: Optional[int] = Field(None, ge=0)
    price_per_building: Optional[int] = Field(None, ge=0)
    tier_bands: List[TierBandSchema] = Field(default_factory=list)
    setup_fee: int = Field(0, ge=0)
    free_trial_days: int = Field(0, ge=0)
    currency: str = "EUR"

    @field_validator("tier_bands")
    @classmethod
    def _bands_do_not_overlap(cls, bands: List[TierBandSchema]) -> List[TierBandSchema]:
        ordered = sorted(bands, key=lambda b: b.min_users)
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.max_users is None or lower.max_users >= upper.min_users:
                raise ValueError(
                    f"tier bands overlap: [{lower.min_users}, {lower.max_users}] "
                    f"and [{upper.min_users}, {upper.max_users}]"
                )
        return bands

    def to_policy(self) -> PricingPolicy:
        # Single-rate models may give their unit price as base_price
        per_user = self.price_per_user
        if per_user is None:
            per_user = self.base_price if self.model == PricingModel.PER_USER else 0
        per_building = self.price_per_building
        if per_building is None:
            per_building = self.base_price if self.model == PricingModel.PER_BUILDING else 0

        return PricingPolicy(
            model=self.model,
            base_price=self.base_price,
            price_per_user=per_user,
            price_per_building=per_building,
            tier_bands=tuple(
                TierBand(
                    min_users=band.min_users,
                    max_users=band.max_users,
                    price_per_user=band.price_per_user,
                )
                for band in self.tier_bands
            ),
            setup_fee=self.setup_fee,
            free_trial_days=self.free_trial_days,
            currency=self.currency,
        )


class ModuleSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    category: ModuleCategory
    tier: ModuleTier
    core: bool = False
    enabled: bool = True
    visible: bool = True
    implemented: bool = True
    status: ModuleStatus = ModuleStatus.ACTIVE
    features: List[str] = Field(default_factory=list)
    pricing: PricingSchema
    rating: float = Field(0.0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    popularity: int = Field(0, ge=0)
    dependencies: List[str] = Field(default_factory=list)
    customer_count: Optional[int] = Field(None, ge=0)
    last_updated: Optional[date] = None

    def to_definition(self) -> ModuleDefinition:
        return ModuleDefinition(
            id=self.id,
            name=self.name,
            description=self.description,
            category=self.category,
            tier=self.tier,
            pricing=self.pricing.to_policy(),
            core=self.core,
            enabled=self.enabled,
            visible=self.visible,
            implemented=self.implemented,
            status=self.status,
            features=tuple(self.features),
            rating=self.rating,
            review_count=self.review_count,
            popularity=self.popularity,
            dependencies=tuple(self.dependencies),
            customer_count=self.customer_count,
            last_updated=self.last_updated,
        )


class DiscountCodeSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., min_length=1)
    type: str = Field(..., pattern="^(percentage|fixed)$")
    value: int = Field(..., ge=0, description="Percent for percentage codes, cents for fixed")
    expires_at: Optional[date] = None
    applicable_modules: Optional[List[str]] = None
    min_spend: Optional[int] = Field(None, ge=0)
    max_discount: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def _percentage_in_range(self) -> "DiscountCodeSchema":
        if self.type == "percentage" and self.value > 100:
            raise ValueError(f"percentage discount {self.code} exceeds 100")
        return self


class CatalogFileSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int = 1
    modules: List[ModuleSchema]
    discount_codes: List[DiscountCodeSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "CatalogFileSchema":
        seen = set()
        for module in self.modules:
            if module.id in seen:
                raise ValueError(f"duplicate module id: {module.id}")
            seen.add(module.id)

        for module in self.modules:
            unknown = [dep for dep in module.dependencies if dep not in seen]
            if unknown:
                raise ValueError(f"module {module.id} depends on unknown modules: {unknown}")
            if module.id in module.dependencies:
                raise ValueError(f"module {module.id} depends on itself")

        codes = set()
        for discount in self.discount_codes:
            key = discount.code.upper()
            if key in codes:
                raise ValueError(f"duplicate discount code: {discount.code}")
            codes.add(key)
        return self
