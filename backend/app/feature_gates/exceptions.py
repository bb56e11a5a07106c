"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import status

from ..entitlements.exceptions import EntitlementError


class FeatureGateError(EntitlementError):
    """Represents an actionable gating failure surfaced to API callers."""

    code = "entitlement_required"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        if code is not None:
            self.code = code
