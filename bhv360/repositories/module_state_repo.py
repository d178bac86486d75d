"""
Typed repositories over the blob store.

- CustomerModuleRepository: one document per customer, a list of CustomerModule,
  plus a roster of every customer that has entitlement records
- ActivationRequestRepository: requests per customer, plus an id index and a
  customer roster so requests can be found by id and listed globally; an
  optional capacity evicts the oldest decided requests
- AuditLogRepository: one global document holding the audit ring buffer

Every read treats a missing document as the empty default.
"""

import logging
from typing import Dict, List, Optional

from bhv360.entitlements.models import (
    CustomerModule,
    ModuleActivationRequest,
    ModuleAuditLog,
)
from bhv360.repositories.blob_store import BlobStore

logger = logging.getLogger(__name__)

CUSTOMER_MODULES_KIND = "customer_modules"
CUSTOMER_MODULE_CUSTOMERS_KIND = "customer_module_customers"
ACTIVATION_REQUESTS_KIND = "activation_requests"
ACTIVATION_REQUEST_INDEX_KIND = "activation_request_index"
ACTIVATION_REQUEST_CUSTOMERS_KIND = "activation_request_customers"
AUDIT_LOG_KIND = "module_audit_log"

GLOBAL_KEY = "_all"


def _add_to_roster(store: BlobStore, kind: str, customer_id: str) -> None:
    customers = list(store.get(kind, GLOBAL_KEY) or [])
    if customer_id not in customers:
        customers.append(customer_id)
        store.put(kind, GLOBAL_KEY, customers)


class CustomerModuleRepository:
    """Entitlement records keyed by customer id."""

    def __init__(self, store: BlobStore):
        self.store = store

    def exists(self, customer_id: str) -> bool:
        return self.store.get(CUSTOMER_MODULES_KIND, customer_id) is not None

    def list_customers(self) -> List[str]:
        """Customer ids with stored records, in first-seen order."""
        return list(self.store.get(CUSTOMER_MODULE_CUSTOMERS_KIND, GLOBAL_KEY) or [])

    def list_for_customer(self, customer_id: str) -> List[CustomerModule]:
        raw = self.store.get(CUSTOMER_MODULES_KIND, customer_id) or []
        return [CustomerModule.from_dict(item) for item in raw]

    def save_all(self, customer_id: str, records: List[CustomerModule]) -> None:
        self.store.put(
            CUSTOMER_MODULES_KIND,
            customer_id,
            [record.to_dict() for record in records],
        )
        _add_to_roster(self.store, CUSTOMER_MODULE_CUSTOMERS_KIND, customer_id)

    def upsert(self, record: CustomerModule) -> CustomerModule:
        """
        Replace the record for (customer, module) in place, or append it.

        At most one record per pair ever exists in the document.
        """
        records = self.list_for_customer(record.customer_id)
        for index, existing in enumerate(records):
            if existing.module_id == record.module_id:
                records[index] = record
                break
        else:
            records.append(record)
        self.save_all(record.customer_id, records)
        return record


class ActivationRequestRepository:
    """
    Activation requests keyed by customer id, indexed by request id.

    With a capacity set, inserting past it evicts the oldest approved,
    auto-approved or rejected requests across all customers. Pending
    requests are never evicted, so a backlog of pending requests can
    exceed the capacity.
    """

    def __init__(self, store: BlobStore, capacity: Optional[int] = None):
        self.store = store
        self.capacity = capacity

    def list_for_customer(self, customer_id: str) -> List[ModuleActivationRequest]:
        raw = self.store.get(ACTIVATION_REQUESTS_KIND, customer_id) or []
        return [ModuleActivationRequest.from_dict(item) for item in raw]

    def list_all(self) -> List[ModuleActivationRequest]:
        requests: List[ModuleActivationRequest] = []
        for customer_id in self._customers():
            requests.extend(self.list_for_customer(customer_id))
        return requests

    def get(self, request_id: str) -> Optional[ModuleActivationRequest]:
        index = self.store.get(ACTIVATION_REQUEST_INDEX_KIND, request_id)
        if not index:
            return None
        for request in self.list_for_customer(index["customer_id"]):
            if request.id == request_id:
                return request
        logger.warning(
            "Activation request index points at missing request",
            extra={"request_id": request_id, "customer_id": index["customer_id"]},
        )
        return None

    def save(self, request: ModuleActivationRequest) -> ModuleActivationRequest:
        """Insert or replace a request, keeping the index and roster current."""
        requests = self.list_for_customer(request.customer_id)
        for position, existing in enumerate(requests):
            if existing.id == request.id:
                requests[position] = request
                inserted = False
                break
        else:
            requests.append(request)
            inserted = True

        self._put_requests(request.customer_id, requests)
        self.store.put(
            ACTIVATION_REQUEST_INDEX_KIND,
            request.id,
            {"customer_id": request.customer_id},
        )
        _add_to_roster(self.store, ACTIVATION_REQUEST_CUSTOMERS_KIND, request.customer_id)

        if inserted and self.capacity is not None:
            self._evict_over_capacity(self.capacity)
        return request

    def _evict_over_capacity(self, capacity: int) -> None:
        customers = self._customers()
        total = sum(
            len(self.store.get(ACTIVATION_REQUESTS_KIND, customer_id) or [])
            for customer_id in customers
        )
        excess = total - capacity
        if excess <= 0:
            return

        by_customer: Dict[str, List[ModuleActivationRequest]] = {
            customer_id: self.list_for_customer(customer_id) for customer_id in customers
        }

        decided = sorted(
            (r for requests in by_customer.values() for r in requests if r.is_terminal),
            key=lambda r: r.requested_at,
        )
        evicted = {r.id for r in decided[:excess]}
        if len(evicted) < excess:
            logger.warning(
                "Pending activation requests exceed capacity",
                extra={"capacity": capacity, "over_by": excess - len(evicted)},
            )
        if not evicted:
            return

        for customer_id, requests in by_customer.items():
            kept = [r for r in requests if r.id not in evicted]
            if len(kept) != len(requests):
                self._put_requests(customer_id, kept)
        for request_id in evicted:
            self.store.delete(ACTIVATION_REQUEST_INDEX_KIND, request_id)

        logger.info(
            "Evicted activation requests over capacity",
            extra={"capacity": capacity, "evicted": len(evicted)},
        )

    def _put_requests(self, customer_id: str, requests: List[ModuleActivationRequest]) -> None:
        self.store.put(
            ACTIVATION_REQUESTS_KIND,
            customer_id,
            [item.to_dict() for item in requests],
        )

    def _customers(self) -> List[str]:
        return list(self.store.get(ACTIVATION_REQUEST_CUSTOMERS_KIND, GLOBAL_KEY) or [])


class AuditLogRepository:
    """The global audit ring buffer, oldest entry first."""

    def __init__(self, store: BlobStore):
        self.store = store

    def load(self) -> List[ModuleAuditLog]:
        raw = self.store.get(AUDIT_LOG_KIND, GLOBAL_KEY) or []
        return [ModuleAuditLog.from_dict(item) for item in raw]

    def save(self, entries: List[ModuleAuditLog]) -> None:
        self.store.put(AUDIT_LOG_KIND, GLOBAL_KEY, [entry.to_dict() for entry in entries])
