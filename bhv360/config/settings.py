"""
Engine settings loaded from environment variables.

Numeric policy (auto-approval threshold, reference usage, audit and
request log capacity, yearly discount, quote validity) is configuration,
not code. Every value has a default so the engine runs with an empty
environment.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSettings:
    """Immutable numeric policy for the module engine."""

    # Strictly below this monthly cost (cents) a request is auto-approved
    auto_approval_threshold_cents: int = 5000
    reference_user_count: int = 25
    reference_building_count: int = 1
    audit_log_capacity: int = 1000
    activation_request_capacity: int = 500
    yearly_discount_percent: int = 10
    quote_validity_days: int = 30
    approval_notify_email: str = "modules@bhv360.nl"
    currency: str = "EUR"


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_engine_settings(env: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """
    Build EngineSettings from the environment.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Raises:
        ValueError: If a numeric variable is not an integer
    """
    env = os.environ if env is None else env
    defaults = EngineSettings()

    settings = EngineSettings(
        auto_approval_threshold_cents=_int_env(
            env, "MODULE_AUTO_APPROVAL_THRESHOLD_CENTS", defaults.auto_approval_threshold_cents
        ),
        reference_user_count=_int_env(
            env, "MODULE_REFERENCE_USER_COUNT", defaults.reference_user_count
        ),
        reference_building_count=_int_env(
            env, "MODULE_REFERENCE_BUILDING_COUNT", defaults.reference_building_count
        ),
        audit_log_capacity=_int_env(
            env, "MODULE_AUDIT_LOG_CAPACITY", defaults.audit_log_capacity
        ),
        activation_request_capacity=_int_env(
            env,
            "MODULE_ACTIVATION_REQUEST_CAPACITY",
            defaults.activation_request_capacity,
        ),
        yearly_discount_percent=_int_env(
            env, "MODULE_YEARLY_DISCOUNT_PERCENT", defaults.yearly_discount_percent
        ),
        quote_validity_days=_int_env(
            env, "MODULE_QUOTE_VALIDITY_DAYS", defaults.quote_validity_days
        ),
        approval_notify_email=env.get("MODULE_APPROVAL_NOTIFY_EMAIL")
        or defaults.approval_notify_email,
        currency=env.get("MODULE_CURRENCY") or defaults.currency,
    )

    if settings.audit_log_capacity <= 0:
        raise ValueError("MODULE_AUDIT_LOG_CAPACITY must be positive")
    if settings.activation_request_capacity <= 0:
        raise ValueError("MODULE_ACTIVATION_REQUEST_CAPACITY must be positive")

    logger.debug("Engine settings loaded", extra={"settings": settings.__dict__})
    return settings
