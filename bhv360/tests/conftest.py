"""
Root test configuration and fixtures.

Provides:
- catalog / settings: the packaged module catalog and default engine settings
- clock: deterministic, ticking UTC clock
- store: fresh in-memory blob store per test
- dispatcher: in-memory notification dispatcher
- entitlements / approvals / pricing / audit: wired services over the store
- engine: a full ModuleEngine
- db_engine / session_factory: SQLite in-memory database for the SQL store
- temp_config_dir / make_yaml_config: YAML catalog files for loader tests
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

import pytest
import yaml

from bhv360.catalog.catalog import ModuleCatalog
from bhv360.catalog.loader import load_module_catalog, reset_module_catalog
from bhv360.catalog.models import (
    ModuleCategory,
    ModuleDefinition,
    ModuleTier,
    PricingModel,
    PricingPolicy,
)
from bhv360.config.settings import EngineSettings
from bhv360.database.session import create_engine_for_url, get_session_factory, init_db
from bhv360.db_base import Base
from bhv360.engine import build_module_engine
from bhv360.entitlements.audit import ModuleAuditLogger
from bhv360.entitlements.service import EntitlementService
from bhv360.repositories.blob_store import InMemoryBlobStore
from bhv360.repositories.module_state_repo import (
    ActivationRequestRepository,
    AuditLogRepository,
    CustomerModuleRepository,
)
from bhv360.services.discount_codes import load_discount_codes
from bhv360.services.module_approval_service import ModuleApprovalService
from bhv360.services.module_notifications import InMemoryNotificationDispatcher
from bhv360.services.pricing_calculator import PricingCalculator

# Set test environment
os.environ.setdefault("ENV", "test")

CLOCK_START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TickingClock:
    """UTC clock that advances by `step` on every call."""

    def __init__(self, start: datetime = CLOCK_START, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_module(
    module_id: str,
    model: PricingModel = PricingModel.FIXED,
    base_price: int = 0,
    price_per_user: int = 0,
    price_per_building: int = 0,
    core: bool = False,
    dependencies: Iterable[str] = (),
    setup_fee: int = 0,
    tier_bands: tuple = (),
    category: ModuleCategory = ModuleCategory.PREMIUM,
    name: Optional[str] = None,
) -> ModuleDefinition:
    """Build a ModuleDefinition with only the pricing that matters for a test."""
    return ModuleDefinition(
        id=module_id,
        name=name or module_id.replace("-", " ").title(),
        description=f"{module_id} test module",
        category=ModuleCategory.CORE if core else category,
        tier=ModuleTier.STARTER,
        pricing=PricingPolicy(
            model=model,
            base_price=base_price,
            price_per_user=price_per_user,
            price_per_building=price_per_building,
            tier_bands=tier_bands,
            setup_fee=setup_fee,
        ),
        core=core,
        dependencies=tuple(dependencies),
    )


@pytest.fixture(autouse=True)
def _reset_catalog_singleton():
    """Every test starts without a cached process-wide catalog."""
    reset_module_catalog()
    yield
    reset_module_catalog()


# =============================================================================
# Engine components
# =============================================================================


@pytest.fixture(scope="session")
def catalog() -> ModuleCatalog:
    """The packaged module catalog."""
    return load_module_catalog()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def dispatcher() -> InMemoryNotificationDispatcher:
    return InMemoryNotificationDispatcher()


@pytest.fixture
def discount_codes():
    """Discount codes seeded in the packaged catalog file."""
    return load_discount_codes()


@pytest.fixture
def audit(store, settings, clock) -> ModuleAuditLogger:
    return ModuleAuditLogger(
        AuditLogRepository(store), capacity=settings.audit_log_capacity, clock=clock
    )


@pytest.fixture
def pricing(catalog, discount_codes, settings, clock) -> PricingCalculator:
    return PricingCalculator(catalog, discount_codes, settings, clock=clock)


@pytest.fixture
def entitlements(catalog, store, audit, clock) -> EntitlementService:
    """Entitlement service without an approval workflow attached."""
    return EntitlementService(catalog, CustomerModuleRepository(store), audit, clock=clock)


@pytest.fixture
def approvals(catalog, store, entitlements, pricing, dispatcher, settings, clock) -> ModuleApprovalService:
    """Approval workflow wired to (and registered on) the entitlement service."""
    return ModuleApprovalService(
        catalog,
        ActivationRequestRepository(store),
        entitlements,
        pricing,
        dispatcher=dispatcher,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def engine(catalog, store, dispatcher, settings, discount_codes, clock):
    return build_module_engine(
        store=store,
        dispatcher=dispatcher,
        catalog=catalog,
        settings=settings,
        discount_codes=discount_codes,
        clock=clock,
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """SQLite in-memory engine with the module engine tables created."""
    engine = create_engine_for_url("sqlite:///:memory:")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory(db_engine)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow-running")


# =============================================================================
# Shared Config Fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for YAML config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_yaml_config(temp_config_dir):
    """
    Factory fixture that writes a YAML config file and returns its path.

    Usage:
        config_path = make_yaml_config("module_catalog.yml", {"modules": [...]})
    """
    def _make(filename: str, config: dict) -> Path:
        config_path = temp_config_dir / filename
        with open(config_path, "w") as f:
            yaml.dump(config, f)
        return config_path
    return _make
