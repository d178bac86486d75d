"""
Module Approval Service.

Handles the approval workflow for module activation requests.

State machine over ModuleActivationRequest:
    pending -> approved   (human action)
    pending -> rejected   (human action, reason required)
    auto_approved         (created directly, never via pending)

Auto-approval: the module is core, or its monthly cost at the reference
usage (25 users / 1 building by default) is strictly below the threshold
(5000 cents by default). Cost is computed once, when the request is
created, and never recomputed.

Sequencing:
- auto-approval persists the request first, then enables the module
- approval stamps and persists the request first, then enables the module
If the entitlement call fails after the request was stamped, the request
stays approved with the entitlement not applied; reconcile_approved_requests()
re-applies those.
"""

import logging
from typing import Callable, List, Optional

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.config.settings import EngineSettings
from bhv360.entitlements.errors import (
    ActivationRequestNotFoundError,
    DependencyNotSatisfiedError,
    EntitlementValidationError,
    ModuleDefinitionNotFoundError,
    ModuleEngineError,
    RequestAlreadyDecidedError,
)
from bhv360.entitlements.models import (
    Actor,
    ActorLike,
    ActivationStatus,
    ModuleActivationRequest,
    SYSTEM_ACTOR_ID,
    as_actor,
    utcnow,
)
from bhv360.entitlements.results import ALREADY_ENABLED_STATUS, ActivationOutcome
from bhv360.entitlements.service import EntitlementService
from bhv360.repositories.module_state_repo import ActivationRequestRepository
from bhv360.services.module_notifications import (
    NotificationDispatcher,
    NotificationMessage,
    build_approval_confirmation_message,
    build_approval_request_message,
    build_rejection_message,
)
from bhv360.services.pricing_calculator import PricingCalculator

logger = logging.getLogger(__name__)


class ModuleApprovalService:
    """
    Service for the module activation approval workflow.

    Registers itself as the entitlement service's approval workflow, so
    user activations routed through EntitlementService.enable_module land
    here.
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        repository: ActivationRequestRepository,
        entitlements: EntitlementService,
        pricing: PricingCalculator,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable = utcnow,
    ):
        self.catalog = catalog
        self.repository = repository
        self.entitlements = entitlements
        self.pricing = pricing
        self.dispatcher = dispatcher
        self.settings = settings or EngineSettings()
        self._clock = clock

        entitlements.approval_workflow = self

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> Optional[ModuleActivationRequest]:
        return self.repository.get(request_id)

    def get_activation_requests(
        self, customer_id: Optional[str] = None
    ) -> List[ModuleActivationRequest]:
        """All requests (optionally for one customer), newest first."""
        if customer_id is None:
            requests = self.repository.list_all()
        else:
            requests = self.repository.list_for_customer(customer_id)
        return sorted(reversed(requests), key=lambda r: r.requested_at, reverse=True)

    def get_pending_requests(
        self, customer_id: Optional[str] = None
    ) -> List[ModuleActivationRequest]:
        return [r for r in self.get_activation_requests(customer_id) if r.is_pending]

    def is_auto_approvable(self, module_id: str, monthly_cost: int) -> bool:
        module = self.catalog.get_module(module_id)
        if module is None:
            return False
        return module.core or monthly_cost < self.settings.auto_approval_threshold_cents

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_module_activation(
        self,
        customer_id: str,
        customer_name: str,
        module_id: str,
        requested_by: ActorLike,
        requested_by_email: str = "",
    ) -> ActivationOutcome:
        """
        Create an activation request, auto-approving it when the policy allows.

        Returns:
            ActivationOutcome with the request id; enabled=True when
            auto-approved, or with status "already_enabled" and no request
            when the customer already has the module

        Raises:
            EntitlementValidationError: If customer_id or requested_by is missing
            ModuleDefinitionNotFoundError: If the module is not in the catalog
            DependencyNotSatisfiedError: If a dependency is not enabled yet
        """
        _require("customer_id", customer_id)
        requester = as_actor(requested_by, "requested_by")

        module = self.catalog.get_module(module_id)
        if module is None:
            raise ModuleDefinitionNotFoundError(module_id)

        active_ids = self.entitlements.get_enabled_module_ids(customer_id)
        if module.id in active_ids:
            logger.info(
                "Module already enabled, no request created",
                extra={"customer_id": customer_id, "module_id": module.id},
            )
            return ActivationOutcome(enabled=True, status=ALREADY_ENABLED_STATUS)

        missing = self.catalog.missing_dependencies(module.id, active_ids)
        if missing:
            raise DependencyNotSatisfiedError(module.id, missing)

        cost = self.pricing.get_module_activation_cost(
            module.id,
            self.settings.reference_user_count,
            self.settings.reference_building_count,
        )
        now = self._clock()
        request = ModuleActivationRequest(
            module_id=module.id,
            customer_id=customer_id,
            customer_name=customer_name or customer_id,
            requested_by=requester.audit_name,
            requested_by_email=requested_by_email or "",
            monthly_cost=cost.monthly_cost,
            yearly_cost=cost.yearly_cost,
            requested_at=now,
        )

        if self.is_auto_approvable(module.id, cost.monthly_cost):
            request.status = ActivationStatus.AUTO_APPROVED
            request.approved_by = SYSTEM_ACTOR_ID
            request.approved_at = now
            self.repository.save(request)

            logger.info(
                "Module activation auto-approved",
                extra={
                    "request_id": request.id,
                    "customer_id": customer_id,
                    "module_id": module.id,
                    "monthly_cost": cost.monthly_cost,
                    "core": module.core,
                },
            )
            self._apply_entitlement(request, Actor.system())
            return ActivationOutcome(
                enabled=True,
                status=request.status.value,
                request_id=request.id,
                auto_approved=True,
            )

        self.repository.save(request)
        logger.info(
            "Module activation pending approval",
            extra={
                "request_id": request.id,
                "customer_id": customer_id,
                "module_id": module.id,
                "monthly_cost": cost.monthly_cost,
            },
        )
        self._notify(
            build_approval_request_message(
                request,
                module,
                recipient=self.settings.approval_notify_email,
                currency=self.settings.currency,
            )
        )
        return ActivationOutcome(enabled=False, status=request.status.value, request_id=request.id)

    def approve_request(self, request_id: str, approved_by: str) -> ModuleActivationRequest:
        """
        Approve a pending request and enable the module.

        The entitlement is attributed to "approved_by_<approver>".

        Raises:
            EntitlementValidationError: If approved_by is missing
            ActivationRequestNotFoundError: If the request does not exist
            RequestAlreadyDecidedError: If the request is not pending
        """
        _require("approved_by", approved_by)
        request = self._get_pending(request_id)

        request.approve(approved_by, self._clock())
        self.repository.save(request)

        logger.info(
            "Module activation approved",
            extra={
                "request_id": request.id,
                "customer_id": request.customer_id,
                "module_id": request.module_id,
                "approved_by": approved_by,
            },
        )

        self._apply_entitlement(request, Actor.approval(approved_by))

        module = self.catalog.get_module(request.module_id)
        if module is not None and request.requested_by_email:
            self._notify(build_approval_confirmation_message(request, module))
        return request

    def reject_request(
        self, request_id: str, rejected_by: str, reason: str
    ) -> ModuleActivationRequest:
        """
        Reject a pending request. Entitlement is not touched.

        Raises:
            EntitlementValidationError: If rejected_by or reason is missing
            ActivationRequestNotFoundError: If the request does not exist
            RequestAlreadyDecidedError: If the request is not pending
        """
        _require("rejected_by", rejected_by)
        _require("reason", reason)
        request = self._get_pending(request_id)

        request.reject(rejected_by, reason.strip(), self._clock())
        self.repository.save(request)

        logger.info(
            "Module activation rejected",
            extra={
                "request_id": request.id,
                "customer_id": request.customer_id,
                "module_id": request.module_id,
                "rejected_by": rejected_by,
            },
        )

        module = self.catalog.get_module(request.module_id)
        if module is not None and request.requested_by_email:
            self._notify(build_rejection_message(request, module))
        return request

    def reconcile_approved_requests(
        self, customer_id: Optional[str] = None
    ) -> List[ModuleActivationRequest]:
        """
        Re-apply entitlement for approved requests whose enable never landed.

        A request is re-applied when the customer has no enabled record for
        the module and the module was not deliberately disabled after the
        approval.

        Returns:
            The requests that were re-applied
        """
        reapplied = []
        for request in self.get_activation_requests(customer_id):
            if request.status not in (ActivationStatus.APPROVED, ActivationStatus.AUTO_APPROVED):
                continue
            if not self._entitlement_missing(request):
                continue

            if request.status == ActivationStatus.APPROVED:
                actor = Actor.approval(request.approved_by or SYSTEM_ACTOR_ID)
            else:
                actor = Actor.system()

            logger.warning(
                "Re-applying entitlement for approved request",
                extra={
                    "request_id": request.id,
                    "customer_id": request.customer_id,
                    "module_id": request.module_id,
                },
            )
            self._apply_entitlement(request, actor)
            reapplied.append(request)
        return reapplied

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_pending(self, request_id: str) -> ModuleActivationRequest:
        request = self.repository.get(request_id)
        if request is None:
            raise ActivationRequestNotFoundError(request_id)
        if request.is_terminal:
            raise RequestAlreadyDecidedError(request.id, request.status.value)
        return request

    def _entitlement_missing(self, request: ModuleActivationRequest) -> bool:
        record = self.entitlements.get_customer_module(request.customer_id, request.module_id)
        if record is None:
            return True
        if record.is_enabled:
            return False
        decided_at = request.approved_at or request.requested_at
        return record.disabled_at is None or record.disabled_at < decided_at

    def _apply_entitlement(self, request: ModuleActivationRequest, actor: Actor) -> None:
        try:
            self.entitlements.enable_module(
                request.customer_id,
                request.module_id,
                actor,
                bypass_approval=True,
            )
        except ModuleEngineError:
            logger.error(
                "Request approved but entitlement not applied",
                extra={
                    "request_id": request.id,
                    "customer_id": request.customer_id,
                    "module_id": request.module_id,
                    "status": request.status.value,
                },
                exc_info=True,
            )
            raise

    def _notify(self, message: NotificationMessage) -> None:
        if self.dispatcher is None:
            logger.debug(
                "No notification dispatcher configured",
                extra={"subject": message.subject},
            )
            return
        try:
            self.dispatcher.dispatch(message)
        except Exception:
            logger.warning(
                "Failed to dispatch module notification",
                extra={"recipient": message.recipient, "subject": message.subject},
                exc_info=True,
            )


def _require(field: str, value: Optional[str]) -> None:
    if not value or not value.strip():
        raise EntitlementValidationError(field, f"{field} is required")
