"""
Structured error classes for the module engine.

Taxonomy:
- NotFoundError: module, activation request or record absent
- PolicyViolationError: operation forbidden by entitlement policy
- EntitlementValidationError: missing or malformed input
- PersistenceError: the durable store rejected a read or write

Each error carries a machine-readable code so the call boundary can
surface it without string matching.
"""

from typing import Any, Dict, List, Optional


class ModuleEngineError(Exception):
    """Base exception for module engine errors."""

    code = "module_engine_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured results."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(ModuleEngineError):
    """A referenced entity does not exist."""

    code = "not_found"


class ModuleDefinitionNotFoundError(NotFoundError):
    """Raised when a module id is not in the catalog."""

    code = "module_not_found"

    def __init__(self, module_id: str):
        self.module_id = module_id
        super().__init__(
            f"Module not found: {module_id}",
            details={"module_id": module_id},
        )


class ActivationRequestNotFoundError(NotFoundError):
    """Raised when an activation request id is unknown."""

    code = "request_not_found"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Activation request not found: {request_id}",
            details={"request_id": request_id},
        )


class PolicyViolationError(ModuleEngineError):
    """The operation is forbidden by entitlement policy."""

    code = "policy_violation"


class CoreModuleProtectedError(PolicyViolationError):
    """Raised when attempting to disable a core module."""

    code = "core_module_protected"

    def __init__(self, module_id: str):
        self.module_id = module_id
        super().__init__(
            f"Core module '{module_id}' cannot be disabled",
            details={"module_id": module_id},
        )


class RequestAlreadyDecidedError(PolicyViolationError):
    """Raised when approving or rejecting a request that is already terminal."""

    code = "request_already_decided"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Activation request {request_id} is already {status}",
            details={"request_id": request_id, "status": status},
        )


class DependencyNotSatisfiedError(PolicyViolationError):
    """Raised when a module's dependencies are not entitled yet."""

    code = "dependency_not_satisfied"

    def __init__(self, module_id: str, missing: List[str]):
        self.module_id = module_id
        self.missing = list(missing)
        super().__init__(
            f"Module '{module_id}' requires enabled modules: {', '.join(missing)}",
            details={"module_id": module_id, "missing": list(missing)},
        )


class ApprovalWorkflowUnavailableError(PolicyViolationError):
    """Raised when a non-bypass activation has no approval workflow to go to."""

    code = "approval_workflow_unavailable"


class EntitlementValidationError(ModuleEngineError):
    """A required field is missing or invalid."""

    code = "validation_failure"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message, details={"field": field})


class PersistenceError(ModuleEngineError):
    """The durable store rejected a read or write."""

    code = "persistence_failure"

    def __init__(self, operation: str, kind: str, key: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.kind = kind
        self.key = key
        super().__init__(
            f"Store {operation} failed for {kind}/{key}",
            details={
                "operation": operation,
                "kind": kind,
                "key": key,
                "cause": str(cause) if cause else None,
            },
        )
