"""
Module audit log - bounded, append-only trail of entitlement changes.

Every successful entitlement mutation appends exactly one entry. The
backing document is trimmed to the most recent `capacity` entries on each
write (oldest evicted first), so the trail behaves as a ring buffer.

The trim is a read-modify-write over the whole document. With concurrent
writers entries can be lost; the trail is best-effort, not a durability
guarantee.

Entries are mirrored to the "bhv360.audit" logger so they also reach the
process log pipeline.
"""

import logging
from typing import Callable, List, Optional

from bhv360.entitlements.models import (
    ActorLike,
    AuditAction,
    JsonMap,
    ModuleAuditLog,
    as_actor,
    utcnow,
)
from bhv360.repositories.module_state_repo import AuditLogRepository

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("bhv360.audit")

DEFAULT_AUDIT_LOG_CAPACITY = 1000


class ModuleAuditLogger:
    """Appends and queries module audit entries."""

    def __init__(
        self,
        repository: AuditLogRepository,
        capacity: int = DEFAULT_AUDIT_LOG_CAPACITY,
        clock: Callable = utcnow,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.repository = repository
        self.capacity = capacity
        self._clock = clock

    def log_module_change(
        self,
        customer_id: str,
        module_id: str,
        action: AuditAction | str,
        performed_by: ActorLike,
        details: Optional[JsonMap] = None,
    ) -> ModuleAuditLog:
        """
        Append one audit entry and trim the log to capacity.

        Args:
            customer_id: Customer whose entitlement changed
            module_id: Module that changed
            action: enabled, disabled or configured
            performed_by: Actor (or legacy actor string) responsible
            details: Optional JSON detail map

        Returns:
            The stored entry, with generated id and timestamp
        """
        entry = ModuleAuditLog(
            customer_id=customer_id,
            module_id=module_id,
            action=AuditAction(action),
            performed_by=as_actor(performed_by, "performed_by").audit_name,
            timestamp=self._clock(),
            details=dict(details or {}),
        )

        entries = self.repository.load()
        entries.append(entry)
        evicted = len(entries) - self.capacity
        if evicted > 0:
            entries = entries[evicted:]
        self.repository.save(entries)

        audit_logger.info(
            "module.%s",
            entry.action.value,
            extra={
                "audit_id": entry.id,
                "customer_id": customer_id,
                "module_id": module_id,
                "performed_by": entry.performed_by,
            },
        )
        if evicted > 0:
            logger.debug(
                "Audit log trimmed to capacity",
                extra={"capacity": self.capacity, "evicted": evicted},
            )
        return entry

    def get_audit_logs(self, customer_id: Optional[str] = None) -> List[ModuleAuditLog]:
        """Entries for one customer (or all), newest first."""
        entries = self.repository.load()
        if customer_id is not None:
            entries = [e for e in entries if e.customer_id == customer_id]
        # Stored oldest-first; reversing before the stable sort keeps
        # same-timestamp entries newest-first too.
        return sorted(reversed(entries), key=lambda e: e.timestamp, reverse=True)
