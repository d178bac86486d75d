"""
Durable key-value blob store.

Engine state is a set of JSON documents addressed by (kind, key). The
contract is deliberately small (get/put/delete) and offers no
transactional guarantees: a missing document is returned as None and
callers treat that as an empty default.

Implementations:
- InMemoryBlobStore: process-local, for tests and single-process demos
- SqlAlchemyBlobStore: one row per document in module_engine_blobs
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from bhv360.database.session import session_scope
from bhv360.entitlements.errors import PersistenceError
from bhv360.models.stored_blob import StoredBlob

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Abstract (kind, key) -> JSON document store."""

    @abstractmethod
    def get(self, kind: str, key: str) -> Optional[Any]:
        """
        Read a document.

        Returns:
            The decoded JSON value, or None if no document exists

        Raises:
            PersistenceError: If the backend rejected the read
        """
        pass

    @abstractmethod
    def put(self, kind: str, key: str, value: Any) -> None:
        """
        Write (insert or replace) a document.

        Raises:
            PersistenceError: If the backend rejected the write
        """
        pass

    @abstractmethod
    def delete(self, kind: str, key: str) -> None:
        """
        Delete a document. Deleting a missing document is a no-op.

        Raises:
            PersistenceError: If the backend rejected the delete
        """
        pass


class InMemoryBlobStore(BlobStore):
    """
    Dict-backed store.

    Values are deep-copied on the way in and out so callers can never
    mutate stored state by reference.
    """

    def __init__(self):
        self._documents: Dict[Tuple[str, str], Any] = {}
        self._lock = Lock()

    def get(self, kind: str, key: str) -> Optional[Any]:
        with self._lock:
            value = self._documents.get((kind, key))
        return copy.deepcopy(value)

    def put(self, kind: str, key: str, value: Any) -> None:
        # Reject anything the SQL backend could not store either
        json.dumps(value)
        with self._lock:
            self._documents[(kind, key)] = copy.deepcopy(value)

    def delete(self, kind: str, key: str) -> None:
        with self._lock:
            self._documents.pop((kind, key), None)

    def clear(self) -> None:
        """Drop every document (for tests only)."""
        with self._lock:
            self._documents.clear()


class SqlAlchemyBlobStore(BlobStore):
    """
    StoredBlob-backed store.

    Opens one session per call and commits immediately; any SQLAlchemy
    failure is rolled back and surfaced as PersistenceError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, kind: str, key: str) -> Optional[Any]:
        try:
            with session_scope(self._session_factory) as session:
                row = (
                    session.query(StoredBlob)
                    .filter(StoredBlob.kind == kind, StoredBlob.key == key)
                    .first()
                )
                payload = row.payload if row else None
        except SQLAlchemyError as e:
            logger.error(
                "Blob store read failed",
                extra={"kind": kind, "key": key, "error": str(e)},
            )
            raise PersistenceError("get", kind, key, e) from e

        if payload is None:
            return None
        return json.loads(payload)

    def put(self, kind: str, key: str, value: Any) -> None:
        payload = json.dumps(value)
        try:
            with session_scope(self._session_factory) as session:
                row = (
                    session.query(StoredBlob)
                    .filter(StoredBlob.kind == kind, StoredBlob.key == key)
                    .first()
                )
                if row:
                    row.payload = payload
                else:
                    session.add(StoredBlob(kind=kind, key=key, payload=payload))
        except SQLAlchemyError as e:
            logger.error(
                "Blob store write failed",
                extra={"kind": kind, "key": key, "error": str(e)},
            )
            raise PersistenceError("put", kind, key, e) from e

    def delete(self, kind: str, key: str) -> None:
        try:
            with session_scope(self._session_factory) as session:
                (
                    session.query(StoredBlob)
                    .filter(StoredBlob.kind == kind, StoredBlob.key == key)
                    .delete(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            logger.error(
                "Blob store delete failed",
                extra={"kind": kind, "key": key, "error": str(e)},
            )
            raise PersistenceError("delete", kind, key, e) from e
