"""
Structured operation results returned at the engine's call boundary.

Mutating operations never let a ModuleEngineError escape to presentation
code; they return an OperationResult with a success flag and an optional
human-readable error instead.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

from bhv360.entitlements.errors import ModuleEngineError

T = TypeVar("T")

ALREADY_ENABLED_STATUS = "already_enabled"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of a mutating engine operation."""

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, exc: ModuleEngineError) -> "OperationResult[T]":
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.code,
            details=dict(exc.details),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
            result["error_code"] = self.error_code
        return result


@dataclass(frozen=True)
class ActivationOutcome:
    """
    What happened to an activation attempt.

    Exactly one of three shapes:
    - enabled=True, request_id set when it went through the approval workflow
      as an auto-approval
    - enabled=True, status "already_enabled" and no request_id when the
      module was active before the attempt
    - enabled=False, request_id of the pending request awaiting sign-off
    """

    enabled: bool
    status: str
    request_id: Optional[str] = None
    auto_approved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "status": self.status,
            "request_id": self.request_id,
            "auto_approved": self.auto_approved,
        }
