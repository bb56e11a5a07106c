from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest

from backend.app.entitlements import EntitlementService, InMemoryEntitlementStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryEntitlementStore:
    return InMemoryEntitlementStore()


@pytest.fixture
def service(store: InMemoryEntitlementStore, clock: FakeClock) -> EntitlementService:
    return EntitlementService(store=store, clock=clock)


@pytest.fixture
def business_spec() -> Dict[str, Any]:
    return {
        "tenantId": "t1",
        "tenantType": "business",
        "planId": "pro",
        "modules": [
            {
                "name": "forms",
                "enabled": True,
                "features": [
                    {"name": "templates", "enabled": False},
                    {"name": "logic", "enabled": True, "config": {"maxRules": 25}},
                ],
                "config": {"theme": "dark"},
            },
            {
                "name": "analytics",
                "enabled": False,
                "features": [{"name": "dashboards", "enabled": True}],
            },
        ],
        "quotas": {"submissions": 5},
    }
