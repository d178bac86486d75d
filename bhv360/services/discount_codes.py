"""
Discount code store.

Codes are keyed case-insensitively. The store is an explicit object passed
into the PricingCalculator; registering a code is the only mutation in the
pricing path.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from bhv360.catalog.loader import load_catalog_file
from bhv360.entitlements.errors import EntitlementValidationError
from bhv360.entitlements.models import utcnow

logger = logging.getLogger(__name__)


def percent_of(amount: int, percent: int) -> int:
    """percent% of amount in whole cents, rounded half up."""
    exact = Decimal(amount) * Decimal(percent) / Decimal(100)
    return int(exact.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class DiscountCode:
    """
    A discount applicable to a pricing calculation.

    value is a whole percent for percentage codes and cents for fixed codes.
    expires_at is inclusive: a code is valid through the end of that day.
    """

    code: str
    type: DiscountType
    value: int
    expires_at: Optional[date] = None
    applicable_modules: Optional[Tuple[str, ...]] = None
    min_spend: Optional[int] = None
    max_discount: Optional[int] = None

    @property
    def key(self) -> str:
        return self.code.strip().upper()

    def is_expired(self, on: date) -> bool:
        return self.expires_at is not None and on > self.expires_at

    def applies_to(self, module_ids: Iterable[str]) -> bool:
        if not self.applicable_modules:
            return True
        allowed = set(self.applicable_modules)
        return any(module_id in allowed for module_id in module_ids)

    def rejection_reason(
        self, subtotal: int, module_ids: Iterable[str], on: date
    ) -> Optional[str]:
        """Why this code cannot be applied, or None if it can."""
        if self.is_expired(on):
            return "expired"
        if self.min_spend is not None and subtotal < self.min_spend:
            return "minimum_spend_not_met"
        if not self.applies_to(module_ids):
            return "not_applicable_to_modules"
        return None

    def discount_for(self, amount: int) -> int:
        """
        Discount in cents for a running total.

        Percentage discounts round half up to whole cents. The result is
        clipped to max_discount and never exceeds the amount itself.
        """
        if self.type == DiscountType.PERCENTAGE:
            discount = percent_of(amount, self.value)
        else:
            discount = self.value
        if self.max_discount is not None:
            discount = min(discount, self.max_discount)
        return max(0, min(discount, amount))

    @classmethod
    def from_schema(cls, schema) -> "DiscountCode":
        """Build from a validated DiscountCodeSchema."""
        return cls(
            code=schema.code,
            type=DiscountType(schema.type),
            value=schema.value,
            expires_at=schema.expires_at,
            applicable_modules=tuple(schema.applicable_modules)
            if schema.applicable_modules
            else None,
            min_spend=schema.min_spend,
            max_discount=schema.max_discount,
        )


class DiscountCodeStore:
    """In-memory, case-insensitive table of discount codes."""

    def __init__(self, codes: Optional[Iterable[DiscountCode]] = None):
        self._codes: Dict[str, DiscountCode] = {}
        self._lock = Lock()
        for code in codes or ():
            self.register(code)

    def register(self, code: DiscountCode) -> DiscountCode:
        """Add or replace a code."""
        if not code.code or not code.code.strip():
            raise EntitlementValidationError("code", "Discount code is required")
        if code.type == DiscountType.PERCENTAGE and not 0 <= code.value <= 100:
            raise EntitlementValidationError(
                "value", f"Percentage discount must be between 0 and 100, got {code.value}"
            )
        if code.value < 0:
            raise EntitlementValidationError("value", "Discount value cannot be negative")

        with self._lock:
            self._codes[code.key] = code
        logger.info(
            "Discount code registered",
            extra={"code": code.key, "type": code.type.value, "value": code.value},
        )
        return code

    def get(self, code: str) -> Optional[DiscountCode]:
        if not code:
            return None
        return self._codes.get(code.strip().upper())

    def remove(self, code: str) -> bool:
        with self._lock:
            return self._codes.pop(code.strip().upper(), None) is not None

    def list_codes(self) -> List[DiscountCode]:
        return sorted(self._codes.values(), key=lambda c: c.key)

    def list_active(self, on: Optional[date] = None) -> List[DiscountCode]:
        today = on or utcnow().date()
        return [c for c in self.list_codes() if not c.is_expired(today)]

    def __len__(self) -> int:
        return len(self._codes)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and self.get(code) is not None


def load_discount_codes(config_path: Optional[str] = None) -> DiscountCodeStore:
    """Build a store from the discount codes seeded in the catalog file."""
    document = load_catalog_file(config_path)
    return DiscountCodeStore(DiscountCode.from_schema(s) for s in document.discount_codes)
