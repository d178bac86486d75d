"""
StoredBlob model - durable key-value storage for engine state.

Every piece of engine state (customer entitlements, activation requests,
the audit ring buffer) is a JSON document addressed by (kind, key).
The table carries no transactional semantics beyond a single row write.
"""

import uuid

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint, func

from bhv360.db_base import Base


def generate_blob_id() -> str:
    return str(uuid.uuid4())


class StoredBlob(Base):
    """One JSON document addressed by (kind, key)."""

    __tablename__ = "module_engine_blobs"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_blob_id
    )

    kind = Column(
        String(64),
        nullable=False,
        index=True,
        comment="Document family (customer_modules, activation_requests, ...)"
    )
    key = Column(
        String(255),
        nullable=False,
        comment="Document key within the kind, usually a customer id"
    )
    payload = Column(
        Text,
        nullable=False,
        comment="JSON-serialized document"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="When the document was first written"
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="When the document was last replaced"
    )

    __table_args__ = (
        UniqueConstraint("kind", "key", name="uq_module_engine_blob_kind_key"),
    )

    def __repr__(self) -> str:
        return f"<StoredBlob(kind={self.kind}, key={self.key})>"
