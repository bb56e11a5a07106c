"""Storage abstractions for entitlement aggregates."""
from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .audit import sequence_entry
from .exceptions import DuplicateTenantError
from .models import AuditEntry, Entitlement, EntitlementQuery, TenantType, UsageOutcome
from .reports import exceeds_any_quota, is_expiring_within

Mutation = Callable[[Entitlement], Entitlement]


class EntitlementStore(Protocol):
    """Transactional document store holding one record per entitlement.

    Every mutating method acts on a single aggregate and is atomic with
    respect to other writers of that aggregate.
    """

    def insert(self, entitlement: Entitlement) -> Entitlement:
        ...

    def get(self, entitlement_id: str) -> Optional[Entitlement]:
        ...

    def find_by_tenant(self, tenant_id: str, tenant_type: TenantType) -> Optional[Entitlement]:
        ...

    def list(self, query: EntitlementQuery) -> Sequence[Entitlement]:
        ...

    def update(
        self,
        entitlement_id: str,
        mutate: Mutation,
        *,
        actor_id: str,
        updated_at: datetime,
    ) -> Optional[Entitlement]:
        ...

    def append_audit(self, entitlement_id: str, entry: AuditEntry) -> Optional[AuditEntry]:
        ...

    def increment_usage(
        self,
        entitlement_id: str,
        resource: str,
        amount: int,
        *,
        updated_at: datetime,
    ) -> Optional[UsageOutcome]:
        ...

    def find_expiring(self, start: datetime, end: datetime) -> Sequence[Entitlement]:
        ...

    def find_quota_exceeded(self) -> Sequence[Entitlement]:
        ...

    def ping(self) -> bool:
        ...

    def close(self) -> None:
        ...


def _newest_first(entitlements: List[Entitlement]) -> List[Entitlement]:
    return sorted(entitlements, key=lambda entitlement: entitlement.created_at, reverse=True)


class InMemoryEntitlementStore:
    """Thread-safe in-memory store suitable for tests and local development."""

    def __init__(self) -> None:
        self._records: Dict[str, Entitlement] = {}
        self._tenant_index: Dict[Tuple[str, TenantType], str] = {}
        self._locks: Dict[str, Lock] = {}
        self._index_lock = Lock()

    def _lock_for(self, entitlement_id: str) -> Optional[Lock]:
        with self._index_lock:
            return self._locks.get(entitlement_id)

    def insert(self, entitlement: Entitlement) -> Entitlement:
        key = (entitlement.tenant_id, entitlement.tenant_type)
        with self._index_lock:
            if key in self._tenant_index:
                raise DuplicateTenantError(entitlement.tenant_id, entitlement.tenant_type.value)
            self._tenant_index[key] = entitlement.id
            self._locks[entitlement.id] = Lock()
            self._records[entitlement.id] = entitlement
        return entitlement

    def get(self, entitlement_id: str) -> Optional[Entitlement]:
        return self._records.get(entitlement_id)

    def find_by_tenant(self, tenant_id: str, tenant_type: TenantType) -> Optional[Entitlement]:
        with self._index_lock:
            entitlement_id = self._tenant_index.get((tenant_id, tenant_type))
        if entitlement_id is None:
            return None
        entitlement = self._records.get(entitlement_id)
        if entitlement is None or not entitlement.is_active:
            return None
        return entitlement

    def list(self, query: EntitlementQuery) -> Sequence[Entitlement]:
        return _newest_first([e for e in list(self._records.values()) if query.matches(e)])

    def update(
        self,
        entitlement_id: str,
        mutate: Mutation,
        *,
        actor_id: str,
        updated_at: datetime,
    ) -> Optional[Entitlement]:
        lock = self._lock_for(entitlement_id)
        if lock is None:
            return None
        with lock:
            current = self._records.get(entitlement_id)
            if current is None:
                return None
            revised = mutate(current).touched(actor_id, updated_at)
            self._records[entitlement_id] = revised
            return revised

    def append_audit(self, entitlement_id: str, entry: AuditEntry) -> Optional[AuditEntry]:
        lock = self._lock_for(entitlement_id)
        if lock is None:
            return None
        with lock:
            current = self._records.get(entitlement_id)
            if current is None:
                return None
            stored = sequence_entry(entry, current.audit)
            self._records[entitlement_id] = current.model_copy(
                update={
                    "audit": tuple(current.audit) + (stored,),
                    "updated_at": max(current.updated_at, stored.performed_at),
                }
            )
            return stored

    def increment_usage(
        self,
        entitlement_id: str,
        resource: str,
        amount: int,
        *,
        updated_at: datetime,
    ) -> Optional[UsageOutcome]:
        lock = self._lock_for(entitlement_id)
        if lock is None:
            return None
        with lock:
            current = self._records.get(entitlement_id)
            if current is None:
                return None
            used = current.usage_for(resource)
            quota = current.quota_for(resource)
            if used + amount > quota:
                return UsageOutcome(accepted=False, usage=used, quota=quota)
            usage = dict(current.usage)
            usage[resource] = used + amount
            self._records[entitlement_id] = current.model_copy(
                update={"usage": usage, "updated_at": updated_at}
            )
            return UsageOutcome(accepted=True, usage=used + amount, quota=quota)

    def find_expiring(self, start: datetime, end: datetime) -> Sequence[Entitlement]:
        return _newest_first(
            [e for e in list(self._records.values()) if is_expiring_within(e, start, end)]
        )

    def find_quota_exceeded(self) -> Sequence[Entitlement]:
        return _newest_first([e for e in list(self._records.values()) if exceeds_any_quota(e)])

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        with self._index_lock:
            self._locks.clear()
            self._tenant_index.clear()
            self._records.clear()
