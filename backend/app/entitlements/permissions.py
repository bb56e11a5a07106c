"""Hierarchical module/feature permission evaluation."""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional, Union

from .models import ConfigValue, Entitlement, PermissionDecision, TenantType

if TYPE_CHECKING:
    from .store import EntitlementStore

NO_ENTITLEMENT_REASON = "No entitlement found for tenant"


def is_module_enabled(entitlement: Entitlement, module_name: str) -> bool:
    """Return whether ``module_name`` is present and enabled."""

    module = entitlement.find_module(module_name)
    return module.enabled if module else False


def is_feature_enabled(entitlement: Entitlement, module_name: str, feature_name: str) -> bool:
    """Return whether a feature is usable.

    A disabled module gates every one of its features, whatever the
    feature's own flag says.
    """

    module = entitlement.find_module(module_name)
    if module is None or not module.enabled:
        return False
    feature = module.find_feature(feature_name)
    return feature.enabled if feature else False


def get_module_config(entitlement: Entitlement, module_name: str) -> Dict[str, ConfigValue]:
    module = entitlement.find_module(module_name)
    return dict(module.config) if module else {}


def get_feature_config(
    entitlement: Entitlement, module_name: str, feature_name: str
) -> Dict[str, ConfigValue]:
    module = entitlement.find_module(module_name)
    if module is None:
        return {}
    feature = module.find_feature(feature_name)
    return dict(feature.config) if feature else {}


class PermissionEvaluator:
    """Read-only access decisions for a tenant's active entitlement."""

    def __init__(self, store: "EntitlementStore") -> None:
        self._store = store

    def check_permission(
        self,
        tenant_id: str,
        tenant_type: Union[TenantType, str],
        module: str,
        feature: Optional[str] = None,
        action: Optional[str] = None,
    ) -> PermissionDecision:
        entitlement = self._lookup(tenant_id, tenant_type)
        if entitlement is None:
            return PermissionDecision(
                has_permission=False,
                module=module,
                feature=feature,
                action=action,
                reason=NO_ENTITLEMENT_REASON,
            )

        module_enabled = is_module_enabled(entitlement, module)
        feature_enabled = is_feature_enabled(entitlement, module, feature) if feature else True
        return PermissionDecision(
            has_permission=module_enabled and feature_enabled,
            module=module,
            feature=feature,
            action=action,
            is_module_enabled=module_enabled,
            is_feature_enabled=feature_enabled,
            quotas=dict(entitlement.quotas),
            usage=dict(entitlement.usage),
        )

    def _lookup(self, tenant_id: str, tenant_type: Union[TenantType, str]) -> Optional[Entitlement]:
        try:
            resolved_type = TenantType(tenant_type)
        except ValueError:
            return None
        return self._store.find_by_tenant(tenant_id, resolved_type)
