from __future__ import annotations

from datetime import timedelta

import pytest

from backend.app.entitlements import Entitlement
from backend.app.feature_gates import (
    EntitlementContext,
    FeatureGateError,
    require_feature,
    require_module,
)


@pytest.fixture
def entitlement(service, business_spec, clock) -> Entitlement:
    spec = dict(business_spec, effectiveUntil=(clock.now + timedelta(days=30)).isoformat())
    return service.create_entitlement(spec, "admin")


def test_require_module_allows_enabled_module(entitlement: Entitlement) -> None:
    require_module(entitlement, "forms")


def test_require_module_raises_when_disabled(entitlement: Entitlement) -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_module(entitlement, "analytics")

    assert exc.value.code == "entitlement_required"
    assert exc.value.status_code == 403
    assert exc.value.payload["module"] == "analytics"


def test_require_feature_honours_module_gate(entitlement: Entitlement) -> None:
    require_feature(entitlement, "forms", "logic")

    with pytest.raises(FeatureGateError) as exc:
        require_feature(entitlement, "analytics", "dashboards", error_code="upgrade_required")

    assert exc.value.code == "upgrade_required"
    assert exc.value.payload["feature"] == "dashboards"


def test_entitlement_context_helpers(entitlement: Entitlement, clock) -> None:
    context = EntitlementContext(entitlement, clock=clock)

    assert context.plan_id == "pro"
    assert context.has_module("forms") is True
    assert context.has_feature("forms", "templates") is False
    assert context.module_config("forms") == {"theme": "dark"}
    assert context.feature_config("forms", "logic") == {"maxRules": 25}
    assert context.has_quota("submissions") is True
    assert context.remaining("submissions") == 5

    context.require_module("forms")
    with pytest.raises(FeatureGateError):
        context.require_feature("forms", "templates")


def test_effective_window_is_a_caller_policy(entitlement: Entitlement, clock) -> None:
    context = EntitlementContext(entitlement, clock=clock)

    assert context.is_effective() is True
    assert context.is_effective(clock.now - timedelta(days=1)) is False
    assert context.is_effective(clock.now + timedelta(days=30)) is False

    with pytest.raises(FeatureGateError) as exc:
        context.require_effective(clock.now + timedelta(days=31))
    assert exc.value.code == "entitlement_inactive"


def test_feature_gate_error_converts_to_http_exception() -> None:
    error = FeatureGateError("flag missing")
    http_exc = error.to_http_exception()

    assert http_exc.status_code == 403
    assert http_exc.detail["error"] == "entitlement_required"
