"""
Entitlement records, actor identities, errors and results.

The stateful components live in submodules and are imported by path:
- bhv360.entitlements.service: EntitlementService (the entitlement store)
- bhv360.entitlements.audit: ModuleAuditLogger (bounded audit trail)
"""

from bhv360.entitlements.models import (
    Actor,
    ActorKind,
    ActivationStatus,
    AuditAction,
    CustomerModule,
    ModuleActivationRequest,
    ModuleAuditLog,
)
from bhv360.entitlements.errors import (
    ModuleEngineError,
    NotFoundError,
    ModuleDefinitionNotFoundError,
    ActivationRequestNotFoundError,
    PolicyViolationError,
    CoreModuleProtectedError,
    RequestAlreadyDecidedError,
    DependencyNotSatisfiedError,
    ApprovalWorkflowUnavailableError,
    EntitlementValidationError,
    PersistenceError,
)
from bhv360.entitlements.results import ActivationOutcome, OperationResult

__all__ = [
    "Actor",
    "ActorKind",
    "ActivationStatus",
    "AuditAction",
    "CustomerModule",
    "ModuleActivationRequest",
    "ModuleAuditLog",
    "ModuleEngineError",
    "NotFoundError",
    "ModuleDefinitionNotFoundError",
    "ActivationRequestNotFoundError",
    "PolicyViolationError",
    "CoreModuleProtectedError",
    "RequestAlreadyDecidedError",
    "DependencyNotSatisfiedError",
    "ApprovalWorkflowUnavailableError",
    "EntitlementValidationError",
    "PersistenceError",
    "ActivationOutcome",
    "OperationResult",
]
