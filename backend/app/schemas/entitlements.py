"""API schemas for entitlement endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PermissionCheckRequest(BaseModel):
    tenant_id: str = Field(alias="tenantId", min_length=1)
    tenant_type: str = Field(alias="tenantType")
    module: str = Field(min_length=1)
    feature: Optional[str] = None
    action: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class UsageRequest(BaseModel):
    amount: int = Field(default=1, ge=1)


class LifecycleRequest(BaseModel):
    reason: str = ""


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    ready: bool
