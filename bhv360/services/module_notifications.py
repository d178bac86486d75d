"""
Module notifications - messages about activation requests and their dispatch.

The approval workflow only needs a fire-and-forget dispatch(message)
contract. Delivery happens elsewhere: EmailNotificationDispatcher hands
messages to an EmailSender on a background thread pool, so callers never
block on delivery confirmation.

Messages:
- approval request   -> approver mailbox (customer, module, requester, cost)
- approval confirmed -> requester
- request rejected   -> requester, with the reason
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from threading import Lock
from typing import Any, Dict, List, Optional

from bhv360.catalog.models import ModuleDefinition
from bhv360.entitlements.models import ModuleActivationRequest
from bhv360.services.email_sender import EmailMessage, EmailSender, get_email_sender

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}


@dataclass(frozen=True)
class NotificationMessage:
    """A fully-formed message; metadata carries the structured request facts."""

    recipient: str
    subject: str
    body: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(ABC):
    """Fire-and-forget notification channel."""

    @abstractmethod
    def dispatch(self, message: NotificationMessage) -> None:
        """Queue a message for delivery. Must not block on delivery."""
        pass

    def shutdown(self, wait: bool = True) -> None:
        """Release delivery resources; nothing to release by default."""


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """Records dispatched messages (tests and local development)."""

    def __init__(self):
        self.messages: List[NotificationMessage] = []
        self._lock = Lock()

    def dispatch(self, message: NotificationMessage) -> None:
        with self._lock:
            self.messages.append(message)

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()


class EmailNotificationDispatcher(NotificationDispatcher):
    """Delivers messages through an EmailSender on a worker thread."""

    def __init__(self, sender: Optional[EmailSender] = None, max_workers: int = 2):
        self.sender = sender or get_email_sender()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="module-notify"
        )

    def dispatch(self, message: NotificationMessage) -> None:
        self._executor.submit(self._deliver, message)

    def _deliver(self, message: NotificationMessage) -> bool:
        email = EmailMessage(
            to_email=message.recipient,
            subject=message.subject,
            text_body=message.body,
            tags=["module-activation", str(message.metadata.get("event", "notification"))],
        )
        try:
            delivered = self.sender.send(email)
        except Exception:
            logger.warning(
                "Notification delivery raised",
                extra={"recipient": message.recipient, "subject": message.subject},
                exc_info=True,
            )
            return False

        if not delivered:
            logger.warning(
                "Notification not delivered",
                extra={"recipient": message.recipient, "subject": message.subject},
            )
        return delivered

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


# =============================================================================
# Message builders
# =============================================================================

def format_amount(cents: int, currency: str = "EUR") -> str:
    """Render integer cents in major units, e.g. 7900 -> "€79.00"."""
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{Decimal(abs(cents)) / 100:.2f}"


def _request_metadata(request: ModuleActivationRequest, event: str) -> Dict[str, Any]:
    return {
        "event": event,
        "request_id": request.id,
        "customer_id": request.customer_id,
        "customer_name": request.customer_name,
        "module_id": request.module_id,
        "requested_by": request.requested_by,
        "requested_by_email": request.requested_by_email,
        "monthly_cost": request.monthly_cost,
        "yearly_cost": request.yearly_cost,
        "status": request.status.value,
    }


def build_approval_request_message(
    request: ModuleActivationRequest,
    module: ModuleDefinition,
    recipient: str,
    currency: str = "EUR",
) -> NotificationMessage:
    body = "\n".join([
        f"Customer: {request.customer_name} ({request.customer_id})",
        f"Module: {module.name} ({module.id})",
        f"Requested by: {request.requested_by} ({request.requested_by_email or 'no email'})",
        f"Requested at: {request.requested_at:%Y-%m-%d %H:%M} UTC",
        "",
        f"Monthly cost: {format_amount(request.monthly_cost, currency)}",
        f"Yearly cost: {format_amount(request.yearly_cost, currency)}",
        "",
        f"Description: {module.description}",
        "",
        f"Request id: {request.id}",
    ])
    return NotificationMessage(
        recipient=recipient,
        subject=f"Module activation request - {module.name}",
        body=body,
        metadata=_request_metadata(request, "approval_requested"),
    )


def build_approval_confirmation_message(
    request: ModuleActivationRequest,
    module: ModuleDefinition,
) -> NotificationMessage:
    body = "\n".join([
        f"Dear {request.requested_by},",
        "",
        "Your module activation request has been approved.",
        f"Module: {module.name}",
        f"Approved by: {request.approved_by}",
        "",
        "The module is now active in your account.",
    ])
    return NotificationMessage(
        recipient=request.requested_by_email,
        subject="Module activation approved",
        body=body,
        metadata=_request_metadata(request, "approval_confirmed"),
    )


def build_rejection_message(
    request: ModuleActivationRequest,
    module: ModuleDefinition,
) -> NotificationMessage:
    body = "\n".join([
        f"Dear {request.requested_by},",
        "",
        "Your module activation request has been rejected.",
        f"Module: {module.name}",
        f"Rejected by: {request.rejected_by}",
        f"Reason: {request.rejection_reason}",
        "",
        "Please contact support if you have any questions.",
    ])
    return NotificationMessage(
        recipient=request.requested_by_email,
        subject="Module activation rejected",
        body=body,
        metadata=_request_metadata(request, "request_rejected"),
    )
