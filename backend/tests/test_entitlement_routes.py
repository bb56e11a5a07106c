from __future__ import annotations

import pytest

from backend.app.entitlements import (
    EntitlementPatch,
    EntitlementSpec,
    FeaturePatch,
    ModulePatch,
    QuotaExceededError,
)
from backend.app.routes import entitlements as routes
from backend.app.routes.auth import SUPER_ADMIN_ROLE, Actor
from backend.app.schemas.entitlements import LifecycleRequest, PermissionCheckRequest, UsageRequest

ADMIN = Actor(actor_id="admin-1", role=SUPER_ADMIN_ROLE)
STAFF = Actor(actor_id="staff-1", role="staff")


@pytest.fixture
def created(service, business_spec):
    return routes.create_entitlement(
        EntitlementSpec.model_validate(business_spec),
        actor=ADMIN,
        service=service,
    )


def test_create_and_read_routes(service, created) -> None:
    fetched = routes.get_entitlement(created.id, actor=STAFF, service=service)
    by_tenant = routes.get_tenant_entitlement("t1", "business", actor=STAFF, service=service)
    listed = routes.list_entitlements(
        tenant_id=None,
        tenant_type=None,
        plan_id="pro",
        is_active=True,
        actor=STAFF,
        service=service,
    )

    assert fetched.id == created.id
    assert by_tenant.id == created.id
    assert [entitlement.id for entitlement in listed] == [created.id]
    assert created.metadata.created_by == "admin-1"


def test_entitlement_serializes_with_camel_case_keys(created) -> None:
    document = created.model_dump(mode="json", by_alias=True)

    assert document["tenantId"] == "t1"
    assert document["isActive"] is True
    assert document["audit"][0]["performedBy"] == "admin-1"


def test_patch_routes_record_admin_actor(service, created) -> None:
    routes.update_entitlement(
        created.id,
        EntitlementPatch.model_validate({"planId": "enterprise"}),
        actor=ADMIN,
        service=service,
    )
    module = routes.update_module(
        created.id,
        "analytics",
        ModulePatch(enabled=True),
        actor=ADMIN,
        service=service,
    )
    feature = routes.update_feature(
        created.id,
        "forms",
        "templates",
        FeaturePatch(enabled=True),
        actor=ADMIN,
        service=service,
    )
    quotas = routes.update_quotas(created.id, {"exports": 1}, actor=ADMIN, service=service)

    assert module.enabled is True
    assert feature.enabled is True
    assert quotas["exports"] == 1
    stored = service.get_entitlement(created.id)
    assert stored.plan_id == "enterprise"
    assert stored.metadata.last_modified_by == "admin-1"
    assert len(stored.audit) == 5


def test_usage_route_defaults_to_single_unit(service, created) -> None:
    record = routes.record_usage(created.id, "submissions", None, actor=STAFF, service=service)
    assert record.usage == 1

    record = routes.record_usage(
        created.id, "submissions", UsageRequest(amount=4), actor=STAFF, service=service
    )
    assert record.remaining == 0

    with pytest.raises(QuotaExceededError):
        routes.record_usage(created.id, "submissions", None, actor=STAFF, service=service)
    assert service.get_entitlement(created.id).audit[-1].performed_by == "staff-1"


def test_lifecycle_routes(service, created) -> None:
    deactivated = routes.deactivate_entitlement(
        created.id, LifecycleRequest(reason="unpaid"), actor=ADMIN, service=service
    )
    activated = routes.activate_entitlement(created.id, None, actor=ADMIN, service=service)

    assert deactivated.is_active is False
    assert activated.is_active is True
    assert activated.audit[-2].reason == "unpaid"


def test_check_permission_route(service, created) -> None:
    payload = PermissionCheckRequest.model_validate(
        {"tenantId": "t1", "tenantType": "business", "module": "forms", "feature": "logic"}
    )

    decision = routes.check_permission(payload, actor=STAFF, service=service)

    assert decision.has_permission is True
    assert decision.model_dump(by_alias=True)["isFeatureEnabled"] is True


def test_report_routes(service, created) -> None:
    assert routes.quota_exceeded_report(actor=ADMIN, service=service) == []
    assert routes.expiring_report(None, actor=ADMIN, service=service) == []


def test_check_permission_route_with_unknown_tenant_type(service, created) -> None:
    payload = PermissionCheckRequest.model_validate(
        {"tenantId": "t1", "tenantType": "galaxy", "module": "forms"}
    )

    decision = routes.check_permission(payload, actor=STAFF, service=service)

    assert decision.has_permission is False
    assert decision.reason == "No entitlement found for tenant"
