"""
ModuleEngine - the call boundary of the entitlement & pricing engine.

Wires the catalog, entitlement store, approval workflow, pricing calculator
and audit log over one blob store, and converts typed ModuleEngineError
exceptions into OperationResult values for presentation code, for reads
and mutations alike. Anything that is not a ModuleEngineError propagates.

Usage:
    engine = build_module_engine()

    result = engine.request_module_activation(
        "cust-1", "Acme BV", "rapportages", "jan", "jan@acme.nl"
    )
    if result.success and not result.value.enabled:
        engine.approve_request(result.value.request_id, "admin")
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.loader import get_module_catalog
from bhv360.catalog.models import ModuleDefinition
from bhv360.config.settings import EngineSettings, load_engine_settings
from bhv360.database.session import create_engine_for_url, get_session_factory, init_db
from bhv360.entitlements.audit import ModuleAuditLogger
from bhv360.entitlements.errors import ModuleEngineError
from bhv360.entitlements.models import (
    ActorLike,
    CustomerModule,
    JsonMap,
    ModuleActivationRequest,
    ModuleAuditLog,
    utcnow,
)
from bhv360.entitlements.results import ActivationOutcome, OperationResult
from bhv360.entitlements.service import EntitlementService
from bhv360.repositories.blob_store import BlobStore, InMemoryBlobStore, SqlAlchemyBlobStore
from bhv360.repositories.module_state_repo import (
    ActivationRequestRepository,
    AuditLogRepository,
    CustomerModuleRepository,
)
from bhv360.services.discount_codes import DiscountCode, DiscountCodeStore, load_discount_codes
from bhv360.services.module_approval_service import ModuleApprovalService
from bhv360.services.module_notifications import (
    EmailNotificationDispatcher,
    InMemoryNotificationDispatcher,
    NotificationDispatcher,
)
from bhv360.services.pricing_calculator import (
    BillingCycle,
    CustomerPricing,
    PricingBreakdown,
    PricingCalculator,
    PricingConfig,
    Quote,
    RoiProjection,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YearlyOverview:
    """
    Twelve monthly calculations plus the entitlement changes of the year.

    Every month is priced from the customer's current entitlement state.
    """

    customer_id: str
    year: int
    monthly_calculations: Tuple[CustomerPricing, ...]
    module_changes: Tuple[ModuleAuditLog, ...]
    total_cost: int
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "year": self.year,
            "monthly_calculations": [c.to_dict() for c in self.monthly_calculations],
            "module_changes": [e.to_dict() for e in self.module_changes],
            "total_cost": self.total_cost,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class ModuleStatistics:
    """How many customers run a module and what it brings in per period."""

    module_id: str
    active_customers: int
    monthly_revenue: int
    yearly_revenue: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_id": self.module_id,
            "active_customers": self.active_customers,
            "monthly_revenue": self.monthly_revenue,
            "yearly_revenue": self.yearly_revenue,
        }


class ModuleEngine:
    """Facade over the engine components; every operation returns OperationResult."""

    def __init__(
        self,
        catalog: ModuleCatalog,
        entitlements: EntitlementService,
        approvals: ModuleApprovalService,
        pricing: PricingCalculator,
        audit: ModuleAuditLogger,
        settings: EngineSettings,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.catalog = catalog
        self.entitlements = entitlements
        self.approvals = approvals
        self.pricing = pricing
        self.audit = audit
        self.settings = settings
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Entitlements
    # ------------------------------------------------------------------

    def get_customer_modules(self, customer_id: str) -> OperationResult[List[CustomerModule]]:
        return self._run(
            "get_customer_modules",
            lambda: self.entitlements.get_customer_modules(customer_id),
        )

    def get_enabled_modules(self, customer_id: str) -> OperationResult[List[ModuleDefinition]]:
        return self._run(
            "get_enabled_modules",
            lambda: self.entitlements.get_enabled_modules(customer_id),
        )

    def has_module(self, customer_id: str, module_id: str) -> OperationResult[bool]:
        return self._run(
            "has_module",
            lambda: self.entitlements.has_module(customer_id, module_id),
        )

    def get_module_customers(self, module_id: str) -> OperationResult[List[str]]:
        return self._run(
            "get_module_customers",
            lambda: self.entitlements.get_module_customers(module_id),
        )

    def enable_module(
        self,
        customer_id: str,
        module_id: str,
        enabled_by: ActorLike,
        bypass_approval: bool = False,
        customer_name: Optional[str] = None,
        requested_by_email: str = "",
    ) -> OperationResult[ActivationOutcome]:
        return self._run(
            "enable_module",
            lambda: self.entitlements.enable_module(
                customer_id,
                module_id,
                enabled_by,
                bypass_approval=bypass_approval,
                customer_name=customer_name,
                requested_by_email=requested_by_email,
            ),
        )

    def disable_module(
        self, customer_id: str, module_id: str, disabled_by: ActorLike
    ) -> OperationResult[Optional[CustomerModule]]:
        return self._run(
            "disable_module",
            lambda: self.entitlements.disable_module(customer_id, module_id, disabled_by),
        )

    def update_module_settings(
        self,
        customer_id: str,
        module_id: str,
        settings: JsonMap,
        updated_by: ActorLike,
    ) -> OperationResult[CustomerModule]:
        return self._run(
            "update_module_settings",
            lambda: self.entitlements.update_module_settings(
                customer_id, module_id, settings, updated_by
            ),
        )

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    def request_module_activation(
        self,
        customer_id: str,
        customer_name: str,
        module_id: str,
        requested_by: ActorLike,
        requested_by_email: str = "",
    ) -> OperationResult[ActivationOutcome]:
        return self._run(
            "request_module_activation",
            lambda: self.approvals.request_module_activation(
                customer_id, customer_name, module_id, requested_by, requested_by_email
            ),
        )

    def approve_request(
        self, request_id: str, approved_by: str
    ) -> OperationResult[ModuleActivationRequest]:
        return self._run(
            "approve_request",
            lambda: self.approvals.approve_request(request_id, approved_by),
        )

    def reject_request(
        self, request_id: str, rejected_by: str, reason: str
    ) -> OperationResult[ModuleActivationRequest]:
        return self._run(
            "reject_request",
            lambda: self.approvals.reject_request(request_id, rejected_by, reason),
        )

    def reconcile_approved_requests(
        self, customer_id: Optional[str] = None
    ) -> OperationResult[List[ModuleActivationRequest]]:
        return self._run(
            "reconcile_approved_requests",
            lambda: self.approvals.reconcile_approved_requests(customer_id),
        )

    def get_activation_requests(
        self, customer_id: Optional[str] = None
    ) -> OperationResult[List[ModuleActivationRequest]]:
        return self._run(
            "get_activation_requests",
            lambda: self.approvals.get_activation_requests(customer_id),
        )

    def get_pending_requests(
        self, customer_id: Optional[str] = None
    ) -> OperationResult[List[ModuleActivationRequest]]:
        return self._run(
            "get_pending_requests",
            lambda: self.approvals.get_pending_requests(customer_id),
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def get_audit_logs(
        self, customer_id: Optional[str] = None
    ) -> OperationResult[List[ModuleAuditLog]]:
        return self._run("get_audit_logs", lambda: self.audit.get_audit_logs(customer_id))

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def register_discount_code(self, code: DiscountCode) -> OperationResult[DiscountCode]:
        return self._run(
            "register_discount_code",
            lambda: self.pricing.discount_codes.register(code),
        )

    def calculate_pricing(self, config: PricingConfig) -> OperationResult[PricingBreakdown]:
        return self._run("calculate_pricing", lambda: self.pricing.calculate_pricing(config))

    def generate_quote(self, config: PricingConfig) -> OperationResult[Quote]:
        return self._run("generate_quote", lambda: self.pricing.generate_quote(config))

    def calculate_roi(
        self,
        module_id: str,
        user_count: int,
        building_count: int,
        expected_monthly_savings: int,
    ) -> OperationResult[RoiProjection]:
        return self._run(
            "calculate_roi",
            lambda: self.pricing.calculate_roi(
                module_id, user_count, building_count, expected_monthly_savings
            ),
        )

    def calculate_customer_pricing(
        self,
        customer_id: str,
        user_count: int,
        building_count: int = 1,
        period: BillingCycle = BillingCycle.MONTHLY,
    ) -> OperationResult[CustomerPricing]:
        """Price the modules currently enabled for a customer."""
        return self._run(
            "calculate_customer_pricing",
            lambda: self._customer_pricing(customer_id, user_count, building_count, period),
        )

    def generate_yearly_overview(
        self,
        customer_id: str,
        year: int,
        user_count: Optional[int] = None,
        building_count: Optional[int] = None,
    ) -> OperationResult[YearlyOverview]:
        return self._run(
            "generate_yearly_overview",
            lambda: self._yearly_overview(customer_id, year, user_count, building_count),
        )

    def get_module_statistics(self, module_id: str) -> OperationResult[ModuleStatistics]:
        """Adoption and recurring revenue of one module at reference usage."""
        return self._run("get_module_statistics", lambda: self._module_statistics(module_id))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, wait: bool = True) -> None:
        """Stop the notification dispatcher, draining queued deliveries when wait is set."""
        if self.dispatcher is not None:
            self.dispatcher.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _customer_pricing(
        self,
        customer_id: str,
        user_count: int,
        building_count: int,
        period: BillingCycle,
    ) -> CustomerPricing:
        return self.pricing.calculate_customer_pricing(
            customer_id,
            self.entitlements.get_enabled_modules(customer_id),
            user_count,
            building_count,
            period,
        )

    def _yearly_overview(
        self,
        customer_id: str,
        year: int,
        user_count: Optional[int],
        building_count: Optional[int],
    ) -> YearlyOverview:
        users = self.settings.reference_user_count if user_count is None else user_count
        buildings = (
            self.settings.reference_building_count if building_count is None else building_count
        )
        monthly = self._customer_pricing(customer_id, users, buildings, BillingCycle.MONTHLY)
        calculations = tuple(monthly for _ in range(12))

        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        changes = tuple(
            entry
            for entry in self.audit.get_audit_logs(customer_id)
            if start <= entry.timestamp < end
        )

        return YearlyOverview(
            customer_id=customer_id,
            year=year,
            monthly_calculations=calculations,
            module_changes=changes,
            total_cost=sum(c.total for c in calculations),
        )

    def _module_statistics(self, module_id: str) -> ModuleStatistics:
        customers = self.entitlements.get_module_customers(module_id)
        cost = self.pricing.get_module_activation_cost(
            module_id,
            self.settings.reference_user_count,
            self.settings.reference_building_count,
        )
        monthly_revenue = cost.monthly_cost * len(customers)
        return ModuleStatistics(
            module_id=cost.module_id,
            active_customers=len(customers),
            monthly_revenue=monthly_revenue,
            yearly_revenue=monthly_revenue * 12,
        )

    @staticmethod
    def _run(operation: str, action: Callable[[], Any]) -> OperationResult:
        try:
            return OperationResult.ok(action())
        except ModuleEngineError as e:
            logger.warning(
                "Module engine operation failed",
                extra={"operation": operation, "error_code": e.code, "details": e.details},
            )
            return OperationResult.fail(e)


def default_notification_dispatcher() -> NotificationDispatcher:
    """
    Email delivery when NOTIFICATION_EMAIL_PROVIDER is set, otherwise an
    in-memory dispatcher that only records messages.
    """
    if os.getenv("NOTIFICATION_EMAIL_PROVIDER"):
        return EmailNotificationDispatcher()
    logger.warning("NOTIFICATION_EMAIL_PROVIDER not set; notifications are recorded, not sent")
    return InMemoryNotificationDispatcher()


def build_sqlalchemy_store(database_url: Optional[str] = None) -> SqlAlchemyBlobStore:
    """SQLAlchemy-backed store; creates the table if it does not exist."""
    engine = create_engine_for_url(database_url) if database_url else None
    init_db(engine)
    return SqlAlchemyBlobStore(get_session_factory(engine))


def build_module_engine(
    store: Optional[BlobStore] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    catalog: Optional[ModuleCatalog] = None,
    settings: Optional[EngineSettings] = None,
    discount_codes: Optional[DiscountCodeStore] = None,
    clock: Callable = utcnow,
) -> ModuleEngine:
    """
    Wire a ModuleEngine.

    Args:
        store: Blob store (defaults to an in-memory store)
        dispatcher: Notification channel (see default_notification_dispatcher)
        catalog: Module catalog (defaults to the process-wide YAML catalog)
        settings: Numeric policy (defaults to load_engine_settings())
        discount_codes: Code table (defaults to the codes seeded in the
            catalog file when the default catalog is used, else empty)
        clock: Source of timezone-aware "now"
    """
    settings = settings or load_engine_settings()
    if discount_codes is None:
        discount_codes = load_discount_codes() if catalog is None else DiscountCodeStore()
    catalog = catalog if catalog is not None else get_module_catalog()
    store = store if store is not None else InMemoryBlobStore()
    dispatcher = dispatcher if dispatcher is not None else default_notification_dispatcher()

    audit = ModuleAuditLogger(
        AuditLogRepository(store),
        capacity=settings.audit_log_capacity,
        clock=clock,
    )
    entitlements = EntitlementService(
        catalog,
        CustomerModuleRepository(store),
        audit,
        clock=clock,
    )
    pricing = PricingCalculator(catalog, discount_codes, settings, clock=clock)
    approvals = ModuleApprovalService(
        catalog,
        ActivationRequestRepository(store, capacity=settings.activation_request_capacity),
        entitlements,
        pricing,
        dispatcher=dispatcher,
        settings=settings,
        clock=clock,
    )

    logger.info(
        "Module engine initialised",
        extra={"module_count": len(catalog), "store": type(store).__name__},
    )
    return ModuleEngine(
        catalog, entitlements, approvals, pricing, audit, settings, dispatcher=dispatcher
    )
