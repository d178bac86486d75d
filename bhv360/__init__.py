"""
BHV360 module entitlement & pricing engine.

Components:
- bhv360.catalog: immutable registry of purchasable modules
- bhv360.entitlements: per-customer entitlements and the audit trail
- bhv360.services: approval workflow, pricing calculator, notifications
- bhv360.engine: call boundary returning structured OperationResult values

Usage:
    from bhv360.engine import build_module_engine

    engine = build_module_engine()
    result = engine.request_module_activation(
        "cust-1", "Acme BV", "rapportages", "jan", "jan@acme.nl"
    )
"""

__version__ = "0.1.0"
