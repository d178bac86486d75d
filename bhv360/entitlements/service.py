"""
Entitlement Service - per-customer module entitlement store.

The authority answering "is module X active for customer Y".

Policy:
- A customer seen for the first time is seeded with one enabled record per
  core module, attributed to the system actor.
- Ordinary (user) activations never mutate entitlement synchronously; they
  are redirected into the approval workflow.
- System and approval actors, or an explicit bypass, enable directly.
- Core modules can never be disabled.
- Every successful mutation appends exactly one audit entry, written only
  after the entitlement record has been persisted.

Concurrent writers for the same customer resolve last-write-wins on the
customer document; there is no locking at this layer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.models import ModuleDefinition
from bhv360.entitlements.audit import ModuleAuditLogger
from bhv360.entitlements.errors import (
    ApprovalWorkflowUnavailableError,
    CoreModuleProtectedError,
    EntitlementValidationError,
    ModuleDefinitionNotFoundError,
    NotFoundError,
)
from bhv360.entitlements.models import (
    Actor,
    ActorLike,
    AuditAction,
    CustomerModule,
    JsonMap,
    as_actor,
    utcnow,
)
from bhv360.entitlements.results import ActivationOutcome
from bhv360.repositories.module_state_repo import CustomerModuleRepository

if TYPE_CHECKING:
    from bhv360.services.module_approval_service import ModuleApprovalService


logger = logging.getLogger(__name__)


class EntitlementService:
    """
    Reads and mutates customer module entitlements.

    The approval workflow is attached after construction because the two
    services call each other: the workflow enables modules through this
    service, and this service redirects user activations to the workflow.
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        repository: CustomerModuleRepository,
        audit: ModuleAuditLogger,
        approval_workflow: Optional["ModuleApprovalService"] = None,
        clock: Callable = utcnow,
    ):
        self.catalog = catalog
        self.repository = repository
        self.audit = audit
        self.approval_workflow = approval_workflow
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_customer_modules(self, customer_id: str) -> List[CustomerModule]:
        """
        All entitlement records for a customer.

        On first use the default core-module set is synthesized and
        persisted, so repeated calls return the same records.
        """
        self._require("customer_id", customer_id)

        records = self.repository.list_for_customer(customer_id)
        if records:
            return records

        seeded_at = self._clock()
        system = Actor.system()
        records = []
        for module in self.catalog.get_core_modules():
            record = CustomerModule(customer_id=customer_id, module_id=module.id, is_enabled=False)
            record.enable(system, seeded_at)
            records.append(record)

        self.repository.save_all(customer_id, records)
        logger.info(
            "Seeded core modules for customer",
            extra={
                "customer_id": customer_id,
                "module_ids": [r.module_id for r in records],
            },
        )
        return records

    def get_customer_module(self, customer_id: str, module_id: str) -> Optional[CustomerModule]:
        for record in self.get_customer_modules(customer_id):
            if record.module_id == module_id:
                return record
        return None

    def get_enabled_module_ids(self, customer_id: str) -> List[str]:
        return [r.module_id for r in self.get_customer_modules(customer_id) if r.is_enabled]

    def get_enabled_modules(self, customer_id: str) -> List[ModuleDefinition]:
        """Catalog entries enabled for the customer, in catalog order."""
        enabled = set(self.get_enabled_module_ids(customer_id))
        return [m for m in self.catalog.all_modules() if m.id in enabled]

    def has_module(self, customer_id: str, module_id: str) -> bool:
        record = self.get_customer_module(customer_id, module_id)
        return bool(record and record.is_enabled)

    def get_module_customers(self, module_id: str) -> List[str]:
        """
        Customers with the module enabled, in first-seen order.

        Only customers with stored records count; a customer whose core
        modules were never seeded is not listed.
        """
        module = self._get_module(module_id)
        return [
            customer_id
            for customer_id in self.repository.list_customers()
            if any(
                r.module_id == module.id and r.is_enabled
                for r in self.repository.list_for_customer(customer_id)
            )
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enable_module(
        self,
        customer_id: str,
        module_id: str,
        enabled_by: ActorLike,
        bypass_approval: bool = False,
        customer_name: Optional[str] = None,
        requested_by_email: str = "",
    ) -> ActivationOutcome:
        """
        Enable a module, or route the activation into the approval workflow.

        Args:
            customer_id: Customer to entitle
            module_id: Catalog module id
            enabled_by: Acting party; system and approval actors bypass approval
            bypass_approval: Force a direct enable regardless of actor
            customer_name: Display name for a redirected request
            requested_by_email: Requester email for a redirected request

        Returns:
            ActivationOutcome; enabled=False means a pending request was created

        Raises:
            EntitlementValidationError: If customer_id or enabled_by is missing
            ModuleDefinitionNotFoundError: If the module is not in the catalog
            ApprovalWorkflowUnavailableError: If a redirect is needed but no
                workflow is attached
        """
        self._require("customer_id", customer_id)
        actor = as_actor(enabled_by, "enabled_by")
        module = self._get_module(module_id)

        if not (bypass_approval or actor.bypasses_approval):
            if self.approval_workflow is None:
                raise ApprovalWorkflowUnavailableError(
                    f"Activation of '{module_id}' requires approval but no approval workflow is configured",
                    details={"customer_id": customer_id, "module_id": module_id},
                )
            logger.info(
                "Redirecting module activation to approval workflow",
                extra={
                    "customer_id": customer_id,
                    "module_id": module_id,
                    "requested_by": actor.audit_name,
                },
            )
            return self.approval_workflow.request_module_activation(
                customer_id=customer_id,
                customer_name=customer_name or customer_id,
                module_id=module_id,
                requested_by=actor.audit_name,
                requested_by_email=requested_by_email,
            )

        record = self.get_customer_module(customer_id, module.id)
        if record is None:
            record = CustomerModule(customer_id=customer_id, module_id=module.id, is_enabled=False)
        record.enable(actor, self._clock())
        self.repository.upsert(record)

        self._append_audit(customer_id, module.id, AuditAction.ENABLED, actor)

        logger.info(
            "Module enabled",
            extra={
                "customer_id": customer_id,
                "module_id": module.id,
                "enabled_by": actor.audit_name,
            },
        )
        return ActivationOutcome(enabled=True, status="enabled")

    def disable_module(
        self,
        customer_id: str,
        module_id: str,
        disabled_by: ActorLike,
    ) -> Optional[CustomerModule]:
        """
        Disable a module for a customer.

        Returns:
            The updated record, or None when there was nothing enabled to disable

        Raises:
            EntitlementValidationError: If customer_id or disabled_by is missing
            ModuleDefinitionNotFoundError: If the module is not in the catalog
            CoreModuleProtectedError: If the module is a core module
        """
        self._require("customer_id", customer_id)
        actor = as_actor(disabled_by, "disabled_by")
        module = self._get_module(module_id)
        if module.core:
            raise CoreModuleProtectedError(module.id)

        record = self.get_customer_module(customer_id, module.id)
        if record is None or not record.is_enabled:
            logger.info(
                "Module already disabled, nothing to do",
                extra={"customer_id": customer_id, "module_id": module.id},
            )
            return None

        record.disable(actor, self._clock())
        self.repository.upsert(record)

        self._append_audit(customer_id, module.id, AuditAction.DISABLED, actor)

        logger.info(
            "Module disabled",
            extra={
                "customer_id": customer_id,
                "module_id": module.id,
                "disabled_by": actor.audit_name,
            },
        )
        return record

    def update_module_settings(
        self,
        customer_id: str,
        module_id: str,
        settings: JsonMap,
        updated_by: ActorLike,
    ) -> CustomerModule:
        """
        Replace the settings map of an existing entitlement record.

        Raises:
            EntitlementValidationError: If customer_id or updated_by is missing
            ModuleDefinitionNotFoundError: If the module is not in the catalog
            NotFoundError: If the customer has no record for the module
        """
        self._require("customer_id", customer_id)
        actor = as_actor(updated_by, "updated_by")
        module = self._get_module(module_id)

        record = self.get_customer_module(customer_id, module.id)
        if record is None:
            raise NotFoundError(
                f"Module '{module.id}' has never been enabled for customer {customer_id}",
                details={"customer_id": customer_id, "module_id": module.id},
            )

        record.settings = dict(settings)
        self.repository.upsert(record)

        self._append_audit(
            customer_id,
            module.id,
            AuditAction.CONFIGURED,
            actor,
            details={"settings_keys": sorted(record.settings)},
        )
        return record

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_module(self, module_id: str) -> ModuleDefinition:
        module = self.catalog.get_module(module_id)
        if module is None:
            raise ModuleDefinitionNotFoundError(module_id)
        return module

    @staticmethod
    def _require(field: str, value: Optional[str]) -> None:
        if not value or not str(value).strip():
            raise EntitlementValidationError(field, f"{field} is required")

    def _append_audit(
        self,
        customer_id: str,
        module_id: str,
        action: AuditAction,
        actor: Actor,
        details: Optional[JsonMap] = None,
    ) -> None:
        # Entitlement is already persisted at this point
        try:
            self.audit.log_module_change(customer_id, module_id, action, actor, details)
        except Exception:
            logger.warning(
                "Failed to append module audit entry",
                extra={
                    "customer_id": customer_id,
                    "module_id": module_id,
                    "action": action.value,
                },
                exc_info=True,
            )
