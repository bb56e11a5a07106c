from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from backend.app.entitlements import (
    AuditAction,
    EntitlementNotFoundError,
    EntitlementValidationError,
    QuotaExceededError,
    check_quota,
)


def test_record_usage_increments_and_reports_remaining(service, business_spec) -> None:
    created = service.create_entitlement(business_spec, "admin")

    record = service.record_usage(created.id, "submissions", 3, actor_id="user-1")

    assert record.usage == 3
    assert record.quota == 5
    assert record.remaining == 2
    assert service.get_entitlement(created.id).usage["submissions"] == 3


def test_scenario_exhausted_quota_is_rejected_and_audited(service, business_spec) -> None:
    created = service.create_entitlement(business_spec, "admin")
    for _ in range(5):
        service.record_usage(created.id, "submissions", actor_id="user-1")

    with pytest.raises(QuotaExceededError) as exc:
        service.record_usage(created.id, "submissions", 1, actor_id="user-1")

    assert exc.value.status_code == 429
    assert exc.value.payload == {
        "error": "quota_exceeded",
        "message": "Quota exceeded",
        "resource": "submissions",
        "quota": 5,
        "usage": 5,
    }
    stored = service.get_entitlement(created.id)
    assert stored.usage["submissions"] == 5
    assert stored.audit[-1].action == AuditAction.QUOTA_EXCEEDED
    assert stored.audit[-1].changes == {"resource": "submissions", "amount": 1}
    assert check_quota(stored, "submissions") is False


def test_amount_overshooting_quota_is_rejected_whole(service, business_spec) -> None:
    created = service.create_entitlement(business_spec, "admin")
    service.record_usage(created.id, "submissions", 4, actor_id="user-1")

    with pytest.raises(QuotaExceededError):
        service.record_usage(created.id, "submissions", 2, actor_id="user-1")

    assert service.get_entitlement(created.id).usage["submissions"] == 4


def test_resource_without_quota_is_always_exceeded(service, business_spec) -> None:
    created = service.create_entitlement(business_spec, "admin")

    with pytest.raises(QuotaExceededError) as exc:
        service.record_usage(created.id, "sms", 1, actor_id="user-1")

    assert exc.value.quota == 0


@pytest.mark.parametrize("amount", [0, -1, True, 1.5])
def test_record_usage_rejects_non_positive_amounts(service, business_spec, amount) -> None:
    created = service.create_entitlement(business_spec, "admin")

    with pytest.raises(EntitlementValidationError):
        service.record_usage(created.id, "submissions", amount, actor_id="user-1")


def test_record_usage_unknown_entitlement(service) -> None:
    with pytest.raises(EntitlementNotFoundError):
        service.record_usage("missing", "submissions", actor_id="user-1")


def test_concurrent_increments_never_exceed_quota(service, business_spec) -> None:
    spec = dict(business_spec, quotas={"submissions": 10})
    created = service.create_entitlement(spec, "admin")
    service.record_usage(created.id, "submissions", 9, actor_id="user-1")
    barrier = Barrier(2)

    def consume() -> str:
        barrier.wait()
        try:
            service.record_usage(created.id, "submissions", 1, actor_id="user-1")
        except QuotaExceededError:
            return "rejected"
        return "accepted"

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = sorted(pool.map(lambda _: consume(), range(2)))

    assert outcomes == ["accepted", "rejected"]
    assert service.get_entitlement(created.id).usage["submissions"] == 10


def test_many_concurrent_increments_stop_exactly_at_quota(service, business_spec) -> None:
    spec = dict(business_spec, quotas={"submissions": 25})
    created = service.create_entitlement(spec, "admin")

    def consume(_: int) -> bool:
        try:
            service.record_usage(created.id, "submissions", 1, actor_id="user-1")
        except QuotaExceededError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        accepted = sum(pool.map(consume, range(40)))

    assert accepted == 25
    assert service.get_entitlement(created.id).usage["submissions"] == 25
