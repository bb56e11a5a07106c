"""Error taxonomy surfaced by the entitlement core."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status
from pydantic import ValidationError


class EntitlementError(Exception):
    """Base class for recoverable, caller-facing entitlement failures."""

    code = "entitlement_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = dict(detail or {})

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        base_detail.update(self.detail)
        return base_detail

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class EntitlementNotFoundError(EntitlementError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    resource = "entitlement"

    def __init__(self, message: str = "Entitlement not found", *, detail: Optional[Mapping[str, Any]] = None) -> None:
        merged: Dict[str, Any] = {"resource": self.resource}
        merged.update(detail or {})
        super().__init__(message, detail=merged)


class MissingModuleError(EntitlementNotFoundError):
    resource = "module"

    def __init__(self, module_name: str) -> None:
        super().__init__("Module not found", detail={"module": module_name})


class MissingFeatureError(EntitlementNotFoundError):
    resource = "feature"

    def __init__(self, module_name: str, feature_name: str) -> None:
        super().__init__(
            "Feature not found",
            detail={"module": module_name, "feature": feature_name},
        )


class EntitlementValidationError(EntitlementError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "EntitlementValidationError":
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0]["msg"] if errors else "Invalid entitlement input"
        return cls(first, detail={"errors": errors})


class DuplicateTenantError(EntitlementError):
    code = "duplicate_tenant"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, tenant_id: str, tenant_type: str) -> None:
        super().__init__(
            "An entitlement already exists for this tenant",
            detail={"tenantId": tenant_id, "tenantType": tenant_type},
        )


class QuotaExceededError(EntitlementError):
    code = "quota_exceeded"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, resource: str, *, quota: int, usage: int) -> None:
        super().__init__(
            "Quota exceeded",
            detail={"resource": resource, "quota": quota, "usage": usage},
        )
        self.resource = resource
        self.quota = quota
        self.usage = usage


class StoreUnavailableError(EntitlementError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Entitlement store is unavailable", *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, detail=detail)


class AuditAppendError(StoreUnavailableError):
    """Raised when a state change persisted but its audit entry did not."""

    code = "audit_append_failed"

    def __init__(self, entitlement_id: str, action: str) -> None:
        super().__init__(
            "Failed to record audit entry",
            detail={"entitlementId": entitlement_id, "action": action},
        )


__all__ = [
    "AuditAppendError",
    "DuplicateTenantError",
    "EntitlementError",
    "EntitlementNotFoundError",
    "EntitlementValidationError",
    "MissingFeatureError",
    "MissingModuleError",
    "QuotaExceededError",
    "StoreUnavailableError",
]
