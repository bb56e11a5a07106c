"""Quota checks and atomic usage recording."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .audit import AuditLedger
from .clock import Clock, current_time
from .exceptions import EntitlementNotFoundError, EntitlementValidationError, QuotaExceededError
from .models import AuditAction, Entitlement, UsageRecord

if TYPE_CHECKING:
    from .store import EntitlementStore

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED_REASON = "Quota exceeded"


def check_quota(entitlement: Entitlement, resource: str) -> bool:
    """Return whether another unit of ``resource`` may be consumed.

    Missing quota or usage keys count as zero, so reaching the quota exactly
    already counts as exhausted.
    """

    return entitlement.usage_for(resource) < entitlement.quota_for(resource)


class QuotaEnforcer:
    """Applies usage increments only while they stay within quota."""

    def __init__(
        self,
        store: "EntitlementStore",
        ledger: AuditLedger,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._clock = clock

    def record_usage(
        self,
        entitlement_id: str,
        resource: str,
        amount: int = 1,
        *,
        actor_id: str,
    ) -> UsageRecord:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
            raise EntitlementValidationError(
                "amount must be a positive integer",
                detail={"amount": amount},
            )
        if not resource:
            raise EntitlementValidationError("resource is required")

        outcome = self._store.increment_usage(
            entitlement_id,
            resource,
            amount,
            updated_at=current_time(self._clock),
        )
        if outcome is None:
            raise EntitlementNotFoundError()

        if not outcome.accepted:
            logger.warning(
                "Quota exceeded entitlement=%s resource=%s usage=%s quota=%s amount=%s",
                entitlement_id,
                resource,
                outcome.usage,
                outcome.quota,
                amount,
            )
            self._ledger.append(
                entitlement_id,
                AuditAction.QUOTA_EXCEEDED,
                actor_id,
                {"resource": resource, "amount": amount},
                reason=QUOTA_EXCEEDED_REASON,
            )
            raise QuotaExceededError(resource, quota=outcome.quota, usage=outcome.usage)

        logger.info(
            "Usage incremented entitlement=%s resource=%s amount=%s",
            entitlement_id,
            resource,
            amount,
        )
        return UsageRecord(
            resource=resource,
            usage=outcome.usage,
            quota=outcome.quota,
            remaining=outcome.quota - outcome.usage,
        )
