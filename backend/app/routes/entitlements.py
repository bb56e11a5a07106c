"""API routes exposing entitlement management, usage and permission checks."""
from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from ..entitlements import (
    Entitlement,
    EntitlementPatch,
    EntitlementQuery,
    EntitlementService,
    EntitlementSpec,
    Feature,
    FeaturePatch,
    Module,
    ModulePatch,
    PermissionDecision,
    TenantType,
    UsageRecord,
)
from ..schemas.entitlements import LifecycleRequest, PermissionCheckRequest, UsageRequest
from .auth import Actor, get_current_actor, require_super_admin


def get_entitlement_service(request: Request) -> EntitlementService:
    return request.app.state.entitlement_service


router = APIRouter(tags=["entitlements"])


@router.post(
    "/entitlements",
    response_model=Entitlement,
    status_code=status.HTTP_201_CREATED,
)
def create_entitlement(
    payload: EntitlementSpec,
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    return service.create_entitlement(payload, actor.actor_id)


@router.get("/entitlements", response_model=List[Entitlement])
def list_entitlements(
    tenant_id: Optional[str] = Query(default=None, alias="tenantId"),
    tenant_type: Optional[TenantType] = Query(default=None, alias="tenantType"),
    plan_id: Optional[str] = Query(default=None, alias="planId"),
    is_active: bool = Query(default=True, alias="isActive"),
    *,
    actor: Actor = Depends(get_current_actor),
    service: EntitlementService = Depends(get_entitlement_service),
) -> List[Entitlement]:
    query = EntitlementQuery(
        tenant_id=tenant_id,
        tenant_type=tenant_type,
        plan_id=plan_id,
        is_active=is_active,
    )
    return list(service.list_entitlements(query))


@router.get("/entitlements/reports/quota-exceeded", response_model=List[Entitlement])
def quota_exceeded_report(
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> List[Entitlement]:
    return list(service.report_quota_exceeded())


@router.get("/entitlements/reports/expiring", response_model=List[Entitlement])
def expiring_report(
    days: Optional[int] = Query(default=None, ge=0),
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> List[Entitlement]:
    return list(service.report_expiring(days))


@router.get("/entitlements/tenant/{tenant_id}/{tenant_type}", response_model=Entitlement)
def get_tenant_entitlement(
    tenant_id: str,
    tenant_type: str,
    *,
    actor: Actor = Depends(get_current_actor),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    return service.get_by_tenant(tenant_id, tenant_type)


@router.get("/entitlements/{entitlement_id}", response_model=Entitlement)
def get_entitlement(
    entitlement_id: str,
    *,
    actor: Actor = Depends(get_current_actor),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    return service.get_entitlement(entitlement_id)


@router.patch("/entitlements/{entitlement_id}", response_model=Entitlement)
def update_entitlement(
    entitlement_id: str,
    payload: EntitlementPatch,
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    return service.update_entitlement(entitlement_id, payload, actor.actor_id)


@router.patch("/entitlements/{entitlement_id}/modules/{module_name}", response_model=Module)
def update_module(
    entitlement_id: str,
    module_name: str,
    payload: ModulePatch,
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Module:
    return service.set_module(entitlement_id, module_name, payload, actor.actor_id)


@router.patch(
    "/entitlements/{entitlement_id}/modules/{module_name}/features/{feature_name}",
    response_model=Feature,
)
def update_feature(
    entitlement_id: str,
    module_name: str,
    feature_name: str,
    payload: FeaturePatch,
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Feature:
    return service.set_feature(entitlement_id, module_name, feature_name, payload, actor.actor_id)


@router.patch("/entitlements/{entitlement_id}/quotas", response_model=Dict[str, int])
def update_quotas(
    entitlement_id: str,
    payload: Dict[str, int],
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Dict[str, int]:
    return service.set_quotas(entitlement_id, payload, actor.actor_id)


@router.post("/entitlements/{entitlement_id}/usage/{resource}", response_model=UsageRecord)
def record_usage(
    entitlement_id: str,
    resource: str,
    payload: Optional[UsageRequest] = None,
    *,
    actor: Actor = Depends(get_current_actor),
    service: EntitlementService = Depends(get_entitlement_service),
) -> UsageRecord:
    amount = payload.amount if payload is not None else 1
    return service.record_usage(entitlement_id, resource, amount, actor_id=actor.actor_id)


@router.post("/entitlements/{entitlement_id}/activate", response_model=Entitlement)
def activate_entitlement(
    entitlement_id: str,
    payload: Optional[LifecycleRequest] = None,
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    reason = payload.reason if payload is not None else ""
    return service.activate(entitlement_id, actor.actor_id, reason)


@router.post("/entitlements/{entitlement_id}/deactivate", response_model=Entitlement)
def deactivate_entitlement(
    entitlement_id: str,
    payload: Optional[LifecycleRequest] = None,
    *,
    actor: Actor = Depends(require_super_admin),
    service: EntitlementService = Depends(get_entitlement_service),
) -> Entitlement:
    reason = payload.reason if payload is not None else ""
    return service.deactivate(entitlement_id, actor.actor_id, reason)


@router.post("/check-permission", response_model=PermissionDecision)
def check_permission(
    payload: PermissionCheckRequest,
    *,
    actor: Actor = Depends(get_current_actor),
    service: EntitlementService = Depends(get_entitlement_service),
) -> PermissionDecision:
    return service.check_permission(
        payload.tenant_id,
        payload.tenant_type,
        payload.module,
        payload.feature,
        payload.action,
    )
