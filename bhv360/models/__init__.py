"""SQLAlchemy models for the module engine's durable store."""

from bhv360.models.stored_blob import StoredBlob, generate_blob_id

__all__ = [
    "StoredBlob",
    "generate_blob_id",
]
