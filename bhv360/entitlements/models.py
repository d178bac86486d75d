"""
Entitlement models - canonical records for customer module state.

Provides:
- Actor: tagged identity of whoever performs a mutation (system, approval, user)
- CustomerModule: one record per (customer, module) pair ever touched
- ModuleActivationRequest: approval workflow record with write-once-terminal status
- ModuleAuditLog: append-only audit entry for entitlement changes

All records serialise to plain JSON dicts so they can live in any
key-value blob store. Timestamps are timezone-aware UTC and stored as
ISO-8601 strings.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bhv360.entitlements.errors import EntitlementValidationError

JsonValue = Union[None, bool, int, float, str, List["JsonValue"], Dict[str, "JsonValue"]]
JsonMap = Dict[str, JsonValue]

SYSTEM_ACTOR_ID = "system"
APPROVAL_ACTOR_PREFIX = "approved_by_"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ActorKind(str, Enum):
    """Who performed an entitlement mutation."""
    SYSTEM = "system"
    APPROVAL = "approval"
    USER = "user"


class ActivationStatus(str, Enum):
    """Lifecycle status of a module activation request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"

    @property
    def is_terminal(self) -> bool:
        return self != ActivationStatus.PENDING


class AuditAction(str, Enum):
    """Entitlement change recorded in the audit log."""
    ENABLED = "enabled"
    DISABLED = "disabled"
    CONFIGURED = "configured"


# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Actor:
    """
    Tagged identity of the party performing a mutation.

    Bypass eligibility is a property of the kind, not of a string prefix:
    system and approval actors mutate entitlements directly, user actors
    are routed through the approval workflow.
    """

    kind: ActorKind
    identifier: str = ""

    @classmethod
    def system(cls, identifier: str = SYSTEM_ACTOR_ID) -> "Actor":
        return cls(ActorKind.SYSTEM, identifier)

    @classmethod
    def approval(cls, approver: str) -> "Actor":
        if not approver:
            raise ValueError("approver is required")
        return cls(ActorKind.APPROVAL, approver)

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        if not user_id:
            raise ValueError("user_id is required")
        return cls(ActorKind.USER, user_id)

    @classmethod
    def from_identifier(cls, identifier: str) -> "Actor":
        """
        Parse a legacy actor string.

        Identifiers starting with "approved_by_" are approval actors, those
        starting with "system" are system actors, everything else is a user.
        """
        if identifier.startswith(APPROVAL_ACTOR_PREFIX):
            return cls.approval(identifier[len(APPROVAL_ACTOR_PREFIX):] or SYSTEM_ACTOR_ID)
        if identifier.startswith(SYSTEM_ACTOR_ID):
            return cls.system(identifier)
        return cls.user(identifier)

    @property
    def bypasses_approval(self) -> bool:
        return self.kind in (ActorKind.SYSTEM, ActorKind.APPROVAL)

    @property
    def audit_name(self) -> str:
        """Name written to enabledBy/disabledBy and the audit trail."""
        if self.kind == ActorKind.APPROVAL:
            return f"{APPROVAL_ACTOR_PREFIX}{self.identifier}"
        return self.identifier

    def __str__(self) -> str:
        return self.audit_name


ActorLike = Union[Actor, str]


def as_actor(value: ActorLike, field_name: str = "actor") -> Actor:
    """
    Coerce an Actor or a legacy identifier string into an Actor.

    Raises:
        EntitlementValidationError: If value is blank or not a string
    """
    if isinstance(value, Actor):
        return value
    if not isinstance(value, str) or not value.strip():
        raise EntitlementValidationError(field_name, f"{field_name} is required")
    return Actor.from_identifier(value)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class CustomerModule:
    """
    Entitlement record for one (customer, module) pair.

    Never physically deleted: disabling flips is_enabled and stamps
    disabled_at/disabled_by so history is preserved.
    """

    customer_id: str
    module_id: str
    is_enabled: bool
    enabled_at: Optional[datetime] = None
    enabled_by: Optional[str] = None
    disabled_at: Optional[datetime] = None
    disabled_by: Optional[str] = None
    settings: JsonMap = field(default_factory=dict)

    def enable(self, actor: Actor, at: datetime) -> None:
        self.is_enabled = True
        self.enabled_at = at
        self.enabled_by = actor.audit_name
        self.disabled_at = None
        self.disabled_by = None

    def disable(self, actor: Actor, at: datetime) -> None:
        self.is_enabled = False
        self.disabled_at = at
        self.disabled_by = actor.audit_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "module_id": self.module_id,
            "is_enabled": self.is_enabled,
            "enabled_at": _iso(self.enabled_at),
            "enabled_by": self.enabled_by,
            "disabled_at": _iso(self.disabled_at),
            "disabled_by": self.disabled_by,
            "settings": dict(self.settings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomerModule":
        return cls(
            customer_id=data["customer_id"],
            module_id=data["module_id"],
            is_enabled=bool(data.get("is_enabled", False)),
            enabled_at=_parse(data.get("enabled_at")),
            enabled_by=data.get("enabled_by"),
            disabled_at=_parse(data.get("disabled_at")),
            disabled_by=data.get("disabled_by"),
            settings=dict(data.get("settings") or {}),
        )


@dataclass
class ModuleActivationRequest:
    """
    A customer's request to activate a module.

    status: PENDING -> APPROVED | REJECTED, or created directly in
    AUTO_APPROVED. Costs are computed once at creation and never
    recomputed.
    """

    module_id: str
    customer_id: str
    customer_name: str
    requested_by: str
    requested_by_email: str
    monthly_cost: int
    yearly_cost: int
    status: ActivationStatus = ActivationStatus.PENDING
    requested_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ActivationStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def approve(self, approved_by: str, at: datetime) -> None:
        self.status = ActivationStatus.APPROVED
        self.approved_by = approved_by
        self.approved_at = at

    def reject(self, rejected_by: str, reason: str, at: datetime) -> None:
        self.status = ActivationStatus.REJECTED
        self.rejected_by = rejected_by
        self.rejected_at = at
        self.rejection_reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "module_id": self.module_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "requested_by": self.requested_by,
            "requested_by_email": self.requested_by_email,
            "requested_at": _iso(self.requested_at),
            "status": self.status.value,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "monthly_cost": self.monthly_cost,
            "yearly_cost": self.yearly_cost,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleActivationRequest":
        return cls(
            id=data["id"],
            module_id=data["module_id"],
            customer_id=data["customer_id"],
            customer_name=data.get("customer_name", ""),
            requested_by=data.get("requested_by", ""),
            requested_by_email=data.get("requested_by_email", ""),
            requested_at=_parse(data.get("requested_at")) or utcnow(),
            status=ActivationStatus(data.get("status", ActivationStatus.PENDING.value)),
            approved_by=data.get("approved_by"),
            approved_at=_parse(data.get("approved_at")),
            rejected_by=data.get("rejected_by"),
            rejected_at=_parse(data.get("rejected_at")),
            rejection_reason=data.get("rejection_reason"),
            monthly_cost=int(data.get("monthly_cost", 0)),
            yearly_cost=int(data.get("yearly_cost", 0)),
        )


@dataclass(frozen=True)
class ModuleAuditLog:
    """Immutable audit entry for one entitlement change."""

    customer_id: str
    module_id: str
    action: AuditAction
    performed_by: str
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    details: JsonMap = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "module_id": self.module_id,
            "action": self.action.value,
            "performed_by": self.performed_by,
            "timestamp": _iso(self.timestamp),
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleAuditLog":
        return cls(
            id=data["id"],
            customer_id=data["customer_id"],
            module_id=data["module_id"],
            action=AuditAction(data["action"]),
            performed_by=data.get("performed_by", ""),
            timestamp=_parse(data.get("timestamp")) or utcnow(),
            details=dict(data.get("details") or {}),
        )
