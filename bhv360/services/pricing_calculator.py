"""
Pricing Calculator - prices modules from usage, discounts and billing cycle.

Pure and side-effect free: it reads the immutable catalog and the discount
code store passed in at construction, and never touches entitlement state.

All amounts are integer cents. Percentages are applied with Decimal and
rounded half up to whole cents.

calculate_pricing order of operations:
    subtotal (monthly module prices)
    + one-time setup fees
    - discount code (percentage or fixed, clipped to max_discount)
    = total
    - yearly prepayment discount (yearly cycle only, on total)
    = final_total

Negative usage counts are not rejected; they flow through the arithmetic.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.models import ModuleDefinition, PricingModel
from bhv360.config.settings import EngineSettings
from bhv360.entitlements.errors import ModuleDefinitionNotFoundError
from bhv360.entitlements.models import utcnow
from bhv360.services.discount_codes import DiscountCodeStore, percent_of

logger = logging.getLogger(__name__)

# (minimum users, discount percent), highest threshold first
VOLUME_DISCOUNT_LADDER: Tuple[Tuple[int, int], ...] = (
    (100, 15),
    (50, 10),
    (25, 5),
)

QUOTE_TERMS: Tuple[str, ...] = (
    "Prices are in {currency} and exclude VAT.",
    "This quote is valid for {validity_days} days from the date of issue.",
    "Setup fees are charged once, on activation.",
    "Monthly subscriptions can be cancelled per calendar month.",
    "Yearly subscriptions are invoiced in advance and include the prepayment discount.",
)


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PricingConfig(BaseModel):
    """Input for calculate_pricing and generate_quote."""

    model_config = ConfigDict(frozen=True)

    module_ids: List[str] = Field(default_factory=list)
    user_count: int = 0
    building_count: int = 1
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    discount_code: Optional[str] = None
    customer_id: Optional[str] = None

    @field_validator("module_ids")
    @classmethod
    def _unique_ids(cls, module_ids: List[str]) -> List[str]:
        seen = set()
        unique = []
        for module_id in module_ids:
            if module_id not in seen:
                seen.add(module_id)
                unique.append(module_id)
        return unique

    @field_validator("discount_code")
    @classmethod
    def _blank_code_is_none(cls, code: Optional[str]) -> Optional[str]:
        if code is None or not code.strip():
            return None
        return code.strip()


# =============================================================================
# Result types
# =============================================================================

@dataclass(frozen=True)
class ModuleLineItem:
    """Monthly price of one module within a calculation."""

    module_id: str
    module_name: str
    pricing_model: str
    quantity: int
    unit_price: int
    monthly_price: int
    setup_fee: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "module_name": self.module_name,
            "pricing_model": self.pricing_model,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "monthly_price": self.monthly_price,
            "setup_fee": self.setup_fee,
        }


@dataclass(frozen=True)
class PricingBreakdown:
    line_items: Tuple[ModuleLineItem, ...]
    user_count: int
    building_count: int
    billing_cycle: BillingCycle
    subtotal: int
    setup_fees: int
    discount: int
    total: int
    yearly_discount: int
    final_total: int
    currency: str
    discount_code: Optional[str] = None
    discount_rejected_reason: Optional[str] = None
    calculated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_items": [item.to_dict() for item in self.line_items],
            "user_count": self.user_count,
            "building_count": self.building_count,
            "billing_cycle": self.billing_cycle.value,
            "subtotal": self.subtotal,
            "setup_fees": self.setup_fees,
            "discount": self.discount,
            "discount_code": self.discount_code,
            "discount_rejected_reason": self.discount_rejected_reason,
            "total": self.total,
            "yearly_discount": self.yearly_discount,
            "final_total": self.final_total,
            "currency": self.currency,
            "calculated_at": self.calculated_at.isoformat(),
        }


@dataclass(frozen=True)
class Quote:
    """A snapshot of a pricing breakdown; never recalculated."""

    id: str
    created_at: datetime
    valid_until: datetime
    breakdown: PricingBreakdown
    terms: Tuple[str, ...]
    customer_id: Optional[str] = None

    def is_valid(self, at: Optional[datetime] = None) -> bool:
        return (at or utcnow()) <= self.valid_until

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "created_at": self.created_at.isoformat(),
            "valid_until": self.valid_until.isoformat(),
            "breakdown": self.breakdown.to_dict(),
            "terms": list(self.terms),
        }


@dataclass(frozen=True)
class ActivationCost:
    module_id: str
    monthly_cost: int
    yearly_cost: int
    setup_fee: int
    free_trial_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "monthly_cost": self.monthly_cost,
            "yearly_cost": self.yearly_cost,
            "setup_fee": self.setup_fee,
            "free_trial_days": self.free_trial_days,
        }


@dataclass(frozen=True)
class RoiProjection:
    """
    Return on investment of one module over a year.

    months_to_break_even is None when expected savings are not positive;
    roi_percent is None when the module costs nothing.
    """

    module_id: str
    monthly_cost: int
    yearly_cost: int
    expected_monthly_savings: int
    yearly_savings: int
    net_yearly_benefit: int
    months_to_break_even: Optional[float]
    roi_percent: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "monthly_cost": self.monthly_cost,
            "yearly_cost": self.yearly_cost,
            "expected_monthly_savings": self.expected_monthly_savings,
            "yearly_savings": self.yearly_savings,
            "net_yearly_benefit": self.net_yearly_benefit,
            "months_to_break_even": self.months_to_break_even,
            "roi_percent": self.roi_percent,
        }


@dataclass(frozen=True)
class CustomerPricing:
    """
    Cost of a customer's enabled modules for one billing period.

    For a yearly period the subtotal covers twelve months and the discount
    is the yearly prepayment discount on that amount.
    """

    customer_id: str
    period: BillingCycle
    line_items: Tuple[ModuleLineItem, ...]
    user_count: int
    building_count: int
    subtotal: int
    discount: int
    total: int
    calculated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "period": self.period.value,
            "line_items": [item.to_dict() for item in self.line_items],
            "user_count": self.user_count,
            "building_count": self.building_count,
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
            "calculated_at": self.calculated_at.isoformat(),
        }


ModuleRef = Union[ModuleDefinition, str]


# =============================================================================
# Calculator
# =============================================================================

class PricingCalculator:
    """Prices single modules, module sets, quotes and ROI projections."""

    def __init__(
        self,
        catalog: ModuleCatalog,
        discount_codes: Optional[DiscountCodeStore] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable = utcnow,
    ):
        self.catalog = catalog
        self.discount_codes = discount_codes if discount_codes is not None else DiscountCodeStore()
        self.settings = settings or EngineSettings()
        self._clock = clock

    # ------------------------------------------------------------------
    # Single module
    # ------------------------------------------------------------------

    def calculate_module_price(
        self, module: ModuleRef, user_count: int, building_count: int
    ) -> int:
        """Monthly price of one module in cents."""
        return self._line_item(self._resolve(module), user_count, building_count).monthly_price

    def get_module_activation_cost(
        self, module_id: str, user_count: int, building_count: int
    ) -> ActivationCost:
        module = self._resolve(module_id)
        monthly = self.calculate_module_price(module, user_count, building_count)
        return ActivationCost(
            module_id=module.id,
            monthly_cost=monthly,
            yearly_cost=self.get_yearly_cost(monthly),
            setup_fee=module.pricing.setup_fee,
            free_trial_days=module.pricing.free_trial_days,
        )

    def get_total_module_cost(
        self, module_ids: Iterable[str], user_count: int, building_count: int
    ) -> int:
        return sum(
            self.calculate_module_price(module_id, user_count, building_count)
            for module_id in module_ids
        )

    def get_total_setup_cost(self, module_ids: Iterable[str]) -> int:
        return sum(self._resolve(module_id).pricing.setup_fee for module_id in module_ids)

    def get_yearly_cost(self, monthly_cost: int) -> int:
        """Twelve months minus the yearly prepayment discount."""
        annual = monthly_cost * 12
        return annual - percent_of(annual, self.settings.yearly_discount_percent)

    @staticmethod
    def get_volume_discounts(user_count: int) -> int:
        """Volume discount percent for display and quoting; not applied automatically."""
        for threshold, percent in VOLUME_DISCOUNT_LADDER:
            if user_count >= threshold:
                return percent
        return 0

    # ------------------------------------------------------------------
    # Module sets
    # ------------------------------------------------------------------

    def calculate_pricing(self, config: PricingConfig) -> PricingBreakdown:
        """
        Price a set of modules for the given usage and billing cycle.

        At most one discount code is applied. A code that is unknown,
        expired, below its minimum spend or not applicable to any selected
        module is ignored and the reason is reported on the breakdown.

        Raises:
            ModuleDefinitionNotFoundError: If any module id is not in the catalog
        """
        modules = [self._resolve(module_id) for module_id in config.module_ids]
        line_items = tuple(
            self._line_item(module, config.user_count, config.building_count)
            for module in modules
        )

        subtotal = sum(item.monthly_price for item in line_items)
        setup_fees = sum(item.setup_fee for item in line_items)
        running = subtotal + setup_fees

        discount = 0
        applied_code = None
        rejected_reason = None
        if config.discount_code:
            code = self.discount_codes.get(config.discount_code)
            if code is None:
                rejected_reason = "unknown_code"
            else:
                rejected_reason = code.rejection_reason(
                    subtotal, (m.id for m in modules), self._clock().date()
                )
                if rejected_reason is None:
                    discount = code.discount_for(running)
                    applied_code = code.key
            if rejected_reason:
                logger.info(
                    "Discount code not applied",
                    extra={"code": config.discount_code, "reason": rejected_reason},
                )

        total = running - discount

        yearly_discount = 0
        if config.billing_cycle == BillingCycle.YEARLY:
            yearly_discount = percent_of(total, self.settings.yearly_discount_percent)
        final_total = total - yearly_discount

        return PricingBreakdown(
            line_items=line_items,
            user_count=config.user_count,
            building_count=config.building_count,
            billing_cycle=config.billing_cycle,
            subtotal=subtotal,
            setup_fees=setup_fees,
            discount=discount,
            discount_code=applied_code,
            discount_rejected_reason=rejected_reason,
            total=total,
            yearly_discount=yearly_discount,
            final_total=final_total,
            currency=self.settings.currency,
            calculated_at=self._clock(),
        )

    def generate_quote(self, config: PricingConfig) -> Quote:
        breakdown = self.calculate_pricing(config)
        created_at = breakdown.calculated_at
        validity_days = self.settings.quote_validity_days
        terms = tuple(
            term.format(currency=self.settings.currency, validity_days=validity_days)
            for term in QUOTE_TERMS
        )
        quote = Quote(
            id=f"Q-{created_at:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}",
            created_at=created_at,
            valid_until=created_at + timedelta(days=validity_days),
            breakdown=breakdown,
            terms=terms,
            customer_id=config.customer_id,
        )
        logger.info(
            "Quote generated",
            extra={
                "quote_id": quote.id,
                "customer_id": config.customer_id,
                "final_total": breakdown.final_total,
            },
        )
        return quote

    def calculate_customer_pricing(
        self,
        customer_id: str,
        modules: Iterable[ModuleRef],
        user_count: int,
        building_count: int = 1,
        period: BillingCycle = BillingCycle.MONTHLY,
    ) -> CustomerPricing:
        """Price the given (enabled) modules of a customer for one period."""
        period = BillingCycle(period)
        line_items = tuple(
            self._line_item(self._resolve(module), user_count, building_count)
            for module in modules
        )
        monthly = sum(item.monthly_price for item in line_items)

        if period == BillingCycle.YEARLY:
            subtotal = monthly * 12
            discount = percent_of(subtotal, self.settings.yearly_discount_percent)
        else:
            subtotal = monthly
            discount = 0

        return CustomerPricing(
            customer_id=customer_id,
            period=period,
            line_items=line_items,
            user_count=user_count,
            building_count=building_count,
            subtotal=subtotal,
            discount=discount,
            total=subtotal - discount,
            calculated_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # ROI
    # ------------------------------------------------------------------

    def calculate_roi(
        self,
        module_id: str,
        user_count: int,
        building_count: int,
        expected_monthly_savings: int,
    ) -> RoiProjection:
        """
        Project break-even and yearly ROI against the yearly (discounted) cost.

        months_to_break_even = yearly_cost / expected_monthly_savings
        roi_percent = (yearly_savings - yearly_cost) / yearly_cost * 100
        """
        cost = self.get_module_activation_cost(module_id, user_count, building_count)
        yearly_savings = expected_monthly_savings * 12

        months_to_break_even = None
        if expected_monthly_savings > 0:
            months_to_break_even = _ratio(cost.yearly_cost, expected_monthly_savings)

        roi_percent = None
        if cost.yearly_cost != 0:
            roi_percent = _ratio((yearly_savings - cost.yearly_cost) * 100, cost.yearly_cost)

        return RoiProjection(
            module_id=cost.module_id,
            monthly_cost=cost.monthly_cost,
            yearly_cost=cost.yearly_cost,
            expected_monthly_savings=expected_monthly_savings,
            yearly_savings=yearly_savings,
            net_yearly_benefit=yearly_savings - cost.yearly_cost,
            months_to_break_even=months_to_break_even,
            roi_percent=roi_percent,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, module: ModuleRef) -> ModuleDefinition:
        if isinstance(module, ModuleDefinition):
            return module
        definition = self.catalog.get_module(module)
        if definition is None:
            raise ModuleDefinitionNotFoundError(module)
        return definition

    @staticmethod
    def _line_item(module: ModuleDefinition, user_count: int, building_count: int) -> ModuleLineItem:
        pricing = module.pricing

        if pricing.model == PricingModel.FIXED:
            quantity, unit_price = 1, pricing.base_price
            monthly = pricing.base_price
        elif pricing.model == PricingModel.PER_USER:
            quantity, unit_price = user_count, pricing.user_rate(user_count)
            monthly = unit_price * user_count
        elif pricing.model == PricingModel.PER_BUILDING:
            quantity, unit_price = building_count, pricing.price_per_building
            monthly = unit_price * building_count
        elif pricing.model == PricingModel.HYBRID:
            quantity, unit_price = 1, pricing.base_price
            monthly = (
                pricing.base_price
                + pricing.user_rate(user_count) * user_count
                + pricing.price_per_building * building_count
            )
        else:
            raise ValueError(f"Unsupported pricing model: {pricing.model}")

        return ModuleLineItem(
            module_id=module.id,
            module_name=module.name,
            pricing_model=pricing.model.value,
            quantity=quantity,
            unit_price=unit_price,
            monthly_price=monthly,
            setup_fee=pricing.setup_fee,
        )


def _ratio(numerator: int, denominator: int) -> float:
    value = Decimal(numerator) / Decimal(denominator)
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
