from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.entitlements import (
    AuditAction,
    AuditAppendError,
    AuditLedger,
    EntitlementNotFoundError,
    EntitlementService,
    InMemoryEntitlementStore,
    StoreUnavailableError,
)


class FailingAuditStore(InMemoryEntitlementStore):
    """Store whose audit writes fail after the state change succeeded."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_audit = False

    def append_audit(self, entitlement_id, entry):
        if self.fail_audit:
            raise StoreUnavailableError("audit column unavailable")
        return super().append_audit(entitlement_id, entry)


def test_mutations_append_entries_in_call_order(service, business_spec, clock) -> None:
    created = service.create_entitlement(business_spec, "admin")
    clock.advance(minutes=1)
    service.update_entitlement(created.id, {"planId": "enterprise"}, "admin")
    clock.advance(minutes=1)
    service.set_module(created.id, "forms", {"enabled": False}, "admin")
    clock.advance(minutes=1)
    service.deactivate(created.id, "admin", reason="paused")
    clock.advance(minutes=1)
    service.activate(created.id, "admin")

    audit = service.get_entitlement(created.id).audit

    assert [entry.action for entry in audit] == [
        AuditAction.CREATED,
        AuditAction.UPDATED,
        AuditAction.UPDATED,
        AuditAction.DEACTIVATED,
        AuditAction.ACTIVATED,
    ]
    assert audit[3].reason == "paused"
    assert audit[3].changes == {"isActive": False}
    assert all(entry.performed_by == "admin" for entry in audit)
    timestamps = [entry.performed_at for entry in audit]
    assert timestamps == sorted(timestamps)


def test_earlier_entries_are_never_rewritten(service, business_spec, clock) -> None:
    created = service.create_entitlement(business_spec, "admin")
    first = service.get_entitlement(created.id).audit[0]

    clock.advance(minutes=1)
    service.set_quotas(created.id, {"forms": 50}, "admin-2")
    clock.advance(minutes=1)
    service.set_feature(created.id, "forms", "templates", {"enabled": True}, "admin-3")

    audit = service.get_entitlement(created.id).audit
    assert len(audit) == 3
    assert audit[0] == first
    assert audit[1].changes == {"quotas": {"forms": 50}}
    assert audit[2].changes == {
        "module": "forms",
        "feature": "templates",
        "changes": {"enabled": True},
    }


def test_backwards_clock_keeps_trail_non_decreasing(service, business_spec, clock) -> None:
    created = service.create_entitlement(business_spec, "admin")
    clock.now = datetime(2020, 1, 1, tzinfo=timezone.utc)

    service.update_entitlement(created.id, {"planId": "basic"}, "admin")

    audit = service.get_entitlement(created.id).audit
    assert audit[1].performed_at == audit[0].performed_at


def test_audit_failure_keeps_state_change_and_raises(business_spec, clock) -> None:
    store = FailingAuditStore()
    service = EntitlementService(store=store, clock=clock)
    created = service.create_entitlement(business_spec, "admin")
    store.fail_audit = True

    with pytest.raises(AuditAppendError) as exc:
        service.update_entitlement(created.id, {"planId": "enterprise"}, "admin")

    assert exc.value.code == "audit_append_failed"
    assert exc.value.status_code == 503
    stored = store.get(created.id)
    assert stored.plan_id == "enterprise"
    assert len(stored.audit) == 1


def test_ledger_reports_missing_entitlement(store, clock) -> None:
    ledger = AuditLedger(store, clock=clock)

    with pytest.raises(EntitlementNotFoundError):
        ledger.append("missing", AuditAction.UPDATED, "admin")
