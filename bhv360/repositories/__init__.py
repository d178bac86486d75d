"""Persistence layer: blob store contract and typed repositories."""

from bhv360.repositories.blob_store import (
    BlobStore,
    InMemoryBlobStore,
    SqlAlchemyBlobStore,
)
from bhv360.repositories.module_state_repo import (
    ActivationRequestRepository,
    AuditLogRepository,
    CustomerModuleRepository,
)

__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "SqlAlchemyBlobStore",
    "ActivationRequestRepository",
    "AuditLogRepository",
    "CustomerModuleRepository",
]
