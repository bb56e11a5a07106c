"""Convenience wrapper around an entitlement for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from ..entitlements import (
    ConfigValue,
    Entitlement,
    check_quota,
    get_feature_config,
    get_module_config,
    is_feature_enabled,
    is_module_enabled,
)
from ..entitlements.clock import Clock, current_time
from .enforcement import require_feature, require_module
from .exceptions import FeatureGateError


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for a tenant's entitlement.

    Permission checks deliberately ignore the effective window; callers that
    care whether the entitlement is currently in force use
    :meth:`is_effective` or :meth:`require_effective`.
    """

    entitlement: Entitlement
    clock: Optional[Clock] = None

    @property
    def plan_id(self) -> str:
        return self.entitlement.plan_id

    @property
    def quotas(self) -> Dict[str, int]:
        return dict(self.entitlement.quotas)

    def has_module(self, module_name: str) -> bool:
        return is_module_enabled(self.entitlement, module_name)

    def has_feature(self, module_name: str, feature_name: str) -> bool:
        return is_feature_enabled(self.entitlement, module_name, feature_name)

    def require_module(self, module_name: str, *, error_code: Optional[str] = None) -> None:
        require_module(self.entitlement, module_name, error_code=error_code)

    def require_feature(
        self, module_name: str, feature_name: str, *, error_code: Optional[str] = None
    ) -> None:
        require_feature(self.entitlement, module_name, feature_name, error_code=error_code)

    def module_config(self, module_name: str) -> Dict[str, ConfigValue]:
        return get_module_config(self.entitlement, module_name)

    def feature_config(self, module_name: str, feature_name: str) -> Dict[str, ConfigValue]:
        return get_feature_config(self.entitlement, module_name, feature_name)

    def has_quota(self, resource: str) -> bool:
        """Return whether one more unit of ``resource`` fits the quota."""

        return check_quota(self.entitlement, resource)

    def remaining(self, resource: str) -> int:
        return max(self.entitlement.quota_for(resource) - self.entitlement.usage_for(resource), 0)

    def is_effective(self, at: Optional[datetime] = None) -> bool:
        """Return whether the entitlement is active and inside its window."""

        now = at or current_time(self.clock)
        if not self.entitlement.is_active:
            return False
        starts = self.entitlement.effective_from
        ends = self.entitlement.effective_until
        if starts is not None and now < starts:
            return False
        if ends is not None and now >= ends:
            return False
        return True

    def require_effective(self, at: Optional[datetime] = None) -> None:
        if not self.is_effective(at):
            raise FeatureGateError(
                "Entitlement is not currently in effect.",
                code="entitlement_inactive",
                detail={"entitlementId": self.entitlement.id},
            )
