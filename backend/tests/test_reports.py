from __future__ import annotations

from datetime import timedelta

import pytest

from backend.app.entitlements import EntitlementValidationError


def _spec(tenant_id: str, **overrides):
    data = {"tenantId": tenant_id, "tenantType": "organization", "planId": "pro"}
    data.update(overrides)
    return data


def test_expiring_report_respects_window(service, clock) -> None:
    expiring = service.create_entitlement(
        _spec("t1", effectiveUntil=(clock.now + timedelta(days=3)).isoformat()),
        "admin",
    )
    service.create_entitlement(
        _spec("t2", effectiveUntil=(clock.now + timedelta(days=30)).isoformat()),
        "admin",
    )
    service.create_entitlement(_spec("t3"), "admin")

    assert [entitlement.id for entitlement in service.report_expiring(7)] == [expiring.id]
    assert service.report_expiring(2) == []
    assert [entitlement.id for entitlement in service.report_expiring()] == [expiring.id]


def test_expiring_report_skips_inactive_and_already_expired(service, clock) -> None:
    created = service.create_entitlement(
        _spec("t1", effectiveUntil=(clock.now + timedelta(days=1)).isoformat()),
        "admin",
    )
    service.deactivate(created.id, "admin")
    service.create_entitlement(
        _spec(
            "t2",
            effectiveFrom=(clock.now - timedelta(days=10)).isoformat(),
            effectiveUntil=(clock.now - timedelta(days=1)).isoformat(),
        ),
        "admin",
    )

    assert service.report_expiring(7) == []


def test_expiring_report_rejects_negative_days(service) -> None:
    with pytest.raises(EntitlementValidationError):
        service.report_expiring(-1)


def test_quota_exceeded_report_flags_usage_above_quota(service) -> None:
    over = service.create_entitlement(_spec("t1", quotas={"forms": 3}), "admin")
    at_limit = service.create_entitlement(_spec("t2", quotas={"forms": 3}), "admin")
    service.record_usage(over.id, "forms", 3, actor_id="user-1")
    service.record_usage(at_limit.id, "forms", 3, actor_id="user-1")

    service.set_quotas(over.id, {"forms": 1}, "admin")

    assert [entitlement.id for entitlement in service.report_quota_exceeded()] == [over.id]
