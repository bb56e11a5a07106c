"""Service exposing entitlement operations to the caller layer."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Type, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from .audit import AuditLedger
from .catalog import backfill_usage, resolve_quotas
from .clock import Clock, current_time
from .exceptions import (
    EntitlementNotFoundError,
    EntitlementValidationError,
    MissingFeatureError,
    MissingModuleError,
)
from .models import (
    AuditAction,
    Entitlement,
    EntitlementMetadata,
    EntitlementPatch,
    EntitlementQuery,
    EntitlementSpec,
    Feature,
    FeaturePatch,
    Module,
    ModulePatch,
    PermissionDecision,
    TenantType,
    UsageRecord,
)
from .permissions import PermissionEvaluator
from .quota import QuotaEnforcer
from .reports import ReportingQueries
from .store import EntitlementStore

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


@contextmanager
def _validating() -> Iterator[None]:
    try:
        yield
    except ValidationError as exc:
        raise EntitlementValidationError.from_pydantic(exc) from exc


def _parse(model: Type[_ModelT], payload: Union[_ModelT, Mapping[str, Any]]) -> _ModelT:
    if isinstance(payload, model):
        return payload
    with _validating():
        return model.model_validate(payload)


def _replace_at(items: Sequence[Any], index: int, value: Any) -> tuple[Any, ...]:
    updated = list(items)
    updated[index] = value
    return tuple(updated)


def _module_index(entitlement: Entitlement, module_name: str) -> int:
    for index, module in enumerate(entitlement.modules):
        if module.name == module_name:
            return index
    raise MissingModuleError(module_name)


def _feature_index(module: Module, feature_name: str) -> int:
    for index, feature in enumerate(module.features):
        if feature.name == feature_name:
            return index
    raise MissingFeatureError(module.name.value, feature_name)


@dataclass
class EntitlementService:
    """Coordinates the store, audit ledger, evaluator, enforcer and reports."""

    store: EntitlementStore
    clock: Optional[Clock] = None
    default_report_days: int = 7
    ledger: AuditLedger = field(init=False)
    evaluator: PermissionEvaluator = field(init=False)
    enforcer: QuotaEnforcer = field(init=False)
    reports: ReportingQueries = field(init=False)

    def __post_init__(self) -> None:
        self.ledger = AuditLedger(self.store, clock=self.clock)
        self.evaluator = PermissionEvaluator(self.store)
        self.enforcer = QuotaEnforcer(self.store, self.ledger, clock=self.clock)
        self.reports = ReportingQueries(self.store, clock=self.clock)

    def create_entitlement(
        self,
        spec: Union[EntitlementSpec, Mapping[str, Any]],
        actor_id: str,
    ) -> Entitlement:
        spec = _parse(EntitlementSpec, spec)
        now = current_time(self.clock)
        quotas = resolve_quotas(spec.quotas)
        with _validating():
            entitlement = Entitlement(
                id=f"ent_{uuid4().hex}",
                tenant_id=spec.tenant_id,
                tenant_type=spec.tenant_type,
                plan_id=spec.plan_id,
                add_ons=spec.add_ons,
                modules=spec.modules,
                quotas=quotas,
                usage=backfill_usage(quotas),
                is_active=spec.is_active,
                effective_from=spec.effective_from or now,
                effective_until=spec.effective_until,
                metadata=EntitlementMetadata(
                    created_by=actor_id,
                    version=spec.metadata.version or "1.0",
                    notes=spec.metadata.notes,
                ),
                created_at=now,
                updated_at=now,
            )
        stored = self.store.insert(entitlement)
        self.ledger.append(stored.id, AuditAction.CREATED, actor_id, spec.as_changes())
        logger.info(
            "Entitlement created id=%s tenant=%s/%s plan=%s",
            stored.id,
            stored.tenant_id,
            stored.tenant_type.value,
            stored.plan_id,
        )
        return self.get_entitlement(stored.id)

    def get_entitlement(self, entitlement_id: str) -> Entitlement:
        entitlement = self.store.get(entitlement_id)
        if entitlement is None:
            raise EntitlementNotFoundError()
        return entitlement

    def get_by_tenant(self, tenant_id: str, tenant_type: Union[TenantType, str]) -> Entitlement:
        try:
            resolved_type = TenantType(tenant_type)
        except ValueError as exc:
            raise EntitlementNotFoundError("Entitlement not found for tenant") from exc
        entitlement = self.store.find_by_tenant(tenant_id, resolved_type)
        if entitlement is None:
            raise EntitlementNotFoundError("Entitlement not found for tenant")
        return entitlement

    def list_entitlements(
        self,
        query: Union[EntitlementQuery, Mapping[str, Any], None] = None,
    ) -> Sequence[Entitlement]:
        return self.store.list(_parse(EntitlementQuery, query or {}))

    def list_by_plan(self, plan_id: str) -> Sequence[Entitlement]:
        return self.store.list(EntitlementQuery(plan_id=plan_id))

    def update_entitlement(
        self,
        entitlement_id: str,
        patch: Union[EntitlementPatch, Mapping[str, Any]],
        actor_id: str,
    ) -> Entitlement:
        patch = _parse(EntitlementPatch, patch)
        supplied = patch.supplied()

        def apply(current: Entitlement) -> Entitlement:
            changes: Dict[str, Any] = {
                name: value for name, value in supplied.items() if name != "metadata"
            }
            if "quotas" in changes:
                changes["usage"] = backfill_usage(changes["quotas"], current.usage)
            if patch.metadata is not None:
                changes["metadata"] = current.metadata.model_copy(update=patch.metadata.supplied())
            with _validating():
                return current.revise(**changes)

        self._update(entitlement_id, apply, actor_id)
        self.ledger.append(entitlement_id, AuditAction.UPDATED, actor_id, patch.as_changes())
        logger.info("Entitlement updated id=%s fields=%s", entitlement_id, sorted(supplied))
        return self.get_entitlement(entitlement_id)

    def activate(self, entitlement_id: str, actor_id: str, reason: str = "") -> Entitlement:
        return self._set_active(entitlement_id, True, actor_id, reason)

    def deactivate(self, entitlement_id: str, actor_id: str, reason: str = "") -> Entitlement:
        return self._set_active(entitlement_id, False, actor_id, reason)

    def set_module(
        self,
        entitlement_id: str,
        module_name: str,
        patch: Union[ModulePatch, Mapping[str, Any]],
        actor_id: str,
    ) -> Module:
        patch = _parse(ModulePatch, patch)

        def apply(current: Entitlement) -> Entitlement:
            index = _module_index(current, module_name)
            with _validating():
                module = Module.model_validate(
                    {**current.modules[index].model_dump(), **patch.supplied()}
                )
                return current.revise(modules=_replace_at(current.modules, index, module))

        updated = self._update(entitlement_id, apply, actor_id)
        self.ledger.append(
            entitlement_id,
            AuditAction.UPDATED,
            actor_id,
            {"module": module_name, "changes": patch.as_changes()},
        )
        logger.info("Module updated id=%s module=%s", entitlement_id, module_name)
        return updated.modules[_module_index(updated, module_name)]

    def set_feature(
        self,
        entitlement_id: str,
        module_name: str,
        feature_name: str,
        patch: Union[FeaturePatch, Mapping[str, Any]],
        actor_id: str,
    ) -> Feature:
        patch = _parse(FeaturePatch, patch)

        def apply(current: Entitlement) -> Entitlement:
            module_index = _module_index(current, module_name)
            module = current.modules[module_index]
            feature_index = _feature_index(module, feature_name)
            with _validating():
                feature = Feature.model_validate(
                    {**module.features[feature_index].model_dump(), **patch.supplied()}
                )
                module = module.model_copy(
                    update={"features": _replace_at(module.features, feature_index, feature)}
                )
                return current.revise(modules=_replace_at(current.modules, module_index, module))

        updated = self._update(entitlement_id, apply, actor_id)
        self.ledger.append(
            entitlement_id,
            AuditAction.UPDATED,
            actor_id,
            {"module": module_name, "feature": feature_name, "changes": patch.as_changes()},
        )
        logger.info(
            "Feature updated id=%s module=%s feature=%s",
            entitlement_id,
            module_name,
            feature_name,
        )
        module = updated.modules[_module_index(updated, module_name)]
        return module.features[_feature_index(module, feature_name)]

    def set_quotas(
        self,
        entitlement_id: str,
        patch: Mapping[str, int],
        actor_id: str,
    ) -> Dict[str, int]:
        requested = dict(patch)

        def apply(current: Entitlement) -> Entitlement:
            quotas = {**current.quotas, **requested}
            with _validating():
                return current.revise(quotas=quotas, usage=backfill_usage(quotas, current.usage))

        updated = self._update(entitlement_id, apply, actor_id)
        self.ledger.append(
            entitlement_id,
            AuditAction.UPDATED,
            actor_id,
            {"quotas": {resource: updated.quotas[resource] for resource in requested}},
        )
        logger.info("Quotas updated id=%s resources=%s", entitlement_id, sorted(requested))
        return dict(updated.quotas)

    def record_usage(
        self,
        entitlement_id: str,
        resource: str,
        amount: int = 1,
        *,
        actor_id: str,
    ) -> UsageRecord:
        return self.enforcer.record_usage(entitlement_id, resource, amount, actor_id=actor_id)

    def check_permission(
        self,
        tenant_id: str,
        tenant_type: Union[TenantType, str],
        module: str,
        feature: Optional[str] = None,
        action: Optional[str] = None,
    ) -> PermissionDecision:
        return self.evaluator.check_permission(tenant_id, tenant_type, module, feature, action)

    def report_quota_exceeded(self) -> Sequence[Entitlement]:
        return self.reports.quota_exceeded()

    def report_expiring(self, days: Optional[int] = None) -> Sequence[Entitlement]:
        return self.reports.expiring_soon(self.default_report_days if days is None else days)

    def _update(self, entitlement_id: str, apply, actor_id: str) -> Entitlement:
        updated = self.store.update(
            entitlement_id,
            apply,
            actor_id=actor_id,
            updated_at=current_time(self.clock),
        )
        if updated is None:
            raise EntitlementNotFoundError()
        return updated

    def _set_active(self, entitlement_id: str, active: bool, actor_id: str, reason: str) -> Entitlement:
        self._update(entitlement_id, lambda current: current.revise(is_active=active), actor_id)
        action = AuditAction.ACTIVATED if active else AuditAction.DEACTIVATED
        self.ledger.append(entitlement_id, action, actor_id, {"isActive": active}, reason=reason)
        logger.info("Entitlement %s id=%s", action.value, entitlement_id)
        return self.get_entitlement(entitlement_id)
