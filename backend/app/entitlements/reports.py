"""Read-only reporting views over entitlements."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional, Sequence

from .clock import Clock, current_time
from .exceptions import EntitlementValidationError
from .models import Entitlement

if TYPE_CHECKING:
    from .store import EntitlementStore


def is_expiring_within(entitlement: Entitlement, start: datetime, end: datetime) -> bool:
    """Active entitlements whose window closes in ``(start, end]``."""

    until = entitlement.effective_until
    if not entitlement.is_active or until is None:
        return False
    return start < until <= end


def exceeds_any_quota(entitlement: Entitlement) -> bool:
    """Active entitlements using more than the quota of any resource."""

    if not entitlement.is_active:
        return False
    return any(
        entitlement.usage_for(resource) > quota
        for resource, quota in entitlement.quotas.items()
    )


class ReportingQueries:
    """Point-in-time scans used by operators."""

    def __init__(self, store: "EntitlementStore", *, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock

    def expiring_soon(self, days: int = 7) -> Sequence[Entitlement]:
        if days < 0:
            raise EntitlementValidationError("days must be >= 0", detail={"days": days})
        now = current_time(self._clock)
        return self._store.find_expiring(now, now + timedelta(days=days))

    def quota_exceeded(self) -> Sequence[Entitlement]:
        return self._store.find_quota_exceeded()
