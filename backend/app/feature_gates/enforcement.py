"""Helpers for enforcing entitlement checks on API and service layers."""
from __future__ import annotations

from typing import Optional

from ..entitlements import Entitlement, is_feature_enabled, is_module_enabled
from .exceptions import FeatureGateError


def require_module(
    entitlement: Entitlement,
    module_name: str,
    *,
    error_code: Optional[str] = None,
    message: Optional[str] = None,
) -> None:
    """Ensure a module is present and enabled before proceeding.

    Parameters
    ----------
    entitlement:
        The tenant's active entitlement.
    module_name:
        Catalog name of the module that must be enabled.
    error_code:
        Optional override for the surfaced error code. Defaults to
        ``"entitlement_required"``.
    message:
        Optional human-friendly message explaining the failure.
    """

    if not is_module_enabled(entitlement, module_name):
        raise FeatureGateError(
            message or f"Module '{module_name}' is not enabled.",
            code=error_code,
            detail={"module": module_name},
        )


def require_feature(
    entitlement: Entitlement,
    module_name: str,
    feature_name: str,
    *,
    error_code: Optional[str] = None,
    message: Optional[str] = None,
) -> None:
    """Ensure a feature, and the module gating it, are enabled."""

    if not is_feature_enabled(entitlement, module_name, feature_name):
        raise FeatureGateError(
            message or f"Feature '{module_name}.{feature_name}' is not enabled.",
            code=error_code,
            detail={"module": module_name, "feature": feature_name},
        )
