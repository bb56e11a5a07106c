"""Domain models for tenant entitlements, usage counters and audit entries."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ConfigValue = Union[bool, int, float, str]
LimitValue = Union[int, float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenantType(str, Enum):
    """Kinds of tenants an entitlement can be issued to."""

    ORGANIZATION = "organization"
    BUSINESS = "business"
    FRANCHISE = "franchise"


class ModuleName(str, Enum):
    """Catalog of product modules that can be entitled."""

    FORMS = "forms"
    SUBMISSIONS = "submissions"
    STAFF = "staff"
    DISCOUNTS = "discounts"
    NOTIFICATIONS = "notifications"
    REPORTS = "reports"
    ANALYTICS = "analytics"
    TRANSLATIONS = "translations"
    INTEGRATIONS = "integrations"
    EXPORTS = "exports"
    AUDIT = "audit"
    SETTINGS = "settings"
    BILLING = "billing"
    RBAC = "rbac"
    ORGANIZATIONS = "organizations"
    BRANDS = "brands"


class AuditAction(str, Enum):
    """Actions recorded in an entitlement's audit trail."""

    CREATED = "created"
    UPDATED = "updated"
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"
    QUOTA_EXCEEDED = "quota_exceeded"


class _DomainModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Feature(_DomainModel):
    """Fine-grained capability nested under a module."""

    name: str = Field(min_length=1)
    enabled: bool = False
    config: Dict[str, ConfigValue] = Field(default_factory=dict)
    limits: Dict[str, LimitValue] = Field(default_factory=dict)


class Module(_DomainModel):
    """Coarse-grained product capability owning a set of features."""

    name: ModuleName
    enabled: bool = False
    features: Sequence[Feature] = Field(default_factory=tuple)
    limits: Dict[str, LimitValue] = Field(default_factory=dict)
    config: Dict[str, ConfigValue] = Field(default_factory=dict)

    @field_validator("features")
    @classmethod
    def _unique_feature_names(cls, value: Sequence[Feature]) -> tuple[Feature, ...]:
        seen: set[str] = set()
        for feature in value:
            if feature.name in seen:
                raise ValueError(f"duplicate feature name: {feature.name}")
            seen.add(feature.name)
        return tuple(value)

    def find_feature(self, feature_name: str) -> Optional[Feature]:
        for feature in self.features:
            if feature.name == feature_name:
                return feature
        return None


class AddOn(_DomainModel):
    """Add-on granted alongside the plan, independent of module state."""

    add_on_id: str
    name: str
    enabled: bool = True
    expires_at: Optional[datetime] = None


class EntitlementMetadata(_DomainModel):
    """Bookkeeping about who created and last changed an entitlement."""

    created_by: str
    last_modified_by: Optional[str] = None
    version: str = "1.0"
    notes: Optional[str] = None


class AuditEntry(_DomainModel):
    """Immutable record of one state-changing action."""

    action: AuditAction
    performed_by: str
    performed_at: datetime = Field(default_factory=_utcnow)
    changes: Dict[str, Any] = Field(default_factory=dict)
    reason: str = ""


class Entitlement(_DomainModel):
    """Aggregate describing what a tenant may use and how much."""

    id: str
    tenant_id: str = Field(min_length=1)
    tenant_type: TenantType
    plan_id: str = Field(min_length=1)
    add_ons: Sequence[AddOn] = Field(default_factory=tuple)
    modules: Sequence[Module] = Field(default_factory=tuple)
    quotas: Dict[str, int] = Field(default_factory=dict)
    usage: Dict[str, int] = Field(default_factory=dict)
    is_active: bool = True
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    metadata: EntitlementMetadata
    audit: Sequence[AuditEntry] = Field(default_factory=tuple)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("add_ons", "audit")
    @classmethod
    def _as_tuple(cls, value: Sequence[Any]) -> tuple[Any, ...]:
        return tuple(value)

    @field_validator("modules")
    @classmethod
    def _unique_module_names(cls, value: Sequence[Module]) -> tuple[Module, ...]:
        seen: set[ModuleName] = set()
        for module in value:
            if module.name in seen:
                raise ValueError(f"duplicate module name: {module.name.value}")
            seen.add(module.name)
        return tuple(value)

    @field_validator("quotas", "usage")
    @classmethod
    def _non_negative_counters(cls, value: Dict[str, int]) -> Dict[str, int]:
        for resource, amount in value.items():
            if amount < 0:
                raise ValueError(f"{resource} must be >= 0")
        return value

    @field_validator("effective_from", "effective_until", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _validate_window(self) -> "Entitlement":
        if (
            self.effective_from is not None
            and self.effective_until is not None
            and self.effective_until <= self.effective_from
        ):
            raise ValueError("effective_until must be later than effective_from")
        return self

    def find_module(self, module_name: str) -> Optional[Module]:
        for module in self.modules:
            if module.name == module_name:
                return module
        return None

    def quota_for(self, resource: str) -> int:
        return int(self.quotas.get(resource, 0))

    def usage_for(self, resource: str) -> int:
        return int(self.usage.get(resource, 0))

    def revise(self, **changes: Any) -> "Entitlement":
        """Return a validated copy with ``changes`` applied.

        Unlike ``model_copy`` this re-runs validation so that invariants such
        as unique module names survive every mutation.
        """

        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)

    def touched(self, actor_id: str, at: datetime) -> "Entitlement":
        """Stamp the modifying actor and the modification time."""

        metadata = self.metadata.model_copy(update={"last_modified_by": actor_id})
        return self.model_copy(update={"metadata": metadata, "updated_at": at})


class _PatchModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def supplied(self) -> Dict[str, Any]:
        """Fields explicitly present in the patch, keyed by attribute name."""

        return {name: getattr(self, name) for name in self.model_fields_set}

    def as_changes(self) -> Dict[str, Any]:
        """JSON-compatible representation used for audit ``changes``."""

        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class MetadataInput(_PatchModel):
    version: Optional[str] = None
    notes: Optional[str] = None


class EntitlementSpec(_PatchModel):
    """Input required to create an entitlement."""

    tenant_id: str = Field(min_length=1)
    tenant_type: TenantType
    plan_id: str = Field(min_length=1)
    add_ons: Sequence[AddOn] = Field(default_factory=tuple)
    modules: Sequence[Module] = Field(default_factory=tuple)
    quotas: Dict[str, int] = Field(default_factory=dict)
    is_active: bool = True
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    metadata: MetadataInput = Field(default_factory=MetadataInput)


class EntitlementPatch(_PatchModel):
    """Field-level partial update of an entitlement.

    The tenant identity key is immutable and usage counters only move through
    usage recording, so neither is accepted here.
    """

    plan_id: Optional[str] = Field(default=None, min_length=1)
    add_ons: Optional[Sequence[AddOn]] = None
    modules: Optional[Sequence[Module]] = None
    quotas: Optional[Dict[str, int]] = None
    is_active: Optional[bool] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    metadata: Optional[MetadataInput] = None


class ModulePatch(_PatchModel):
    enabled: Optional[bool] = None
    features: Optional[Sequence[Feature]] = None
    limits: Optional[Dict[str, LimitValue]] = None
    config: Optional[Dict[str, ConfigValue]] = None


class FeaturePatch(_PatchModel):
    enabled: Optional[bool] = None
    config: Optional[Dict[str, ConfigValue]] = None
    limits: Optional[Dict[str, LimitValue]] = None


class EntitlementQuery(_PatchModel):
    """Filter used when listing entitlements."""

    tenant_id: Optional[str] = None
    tenant_type: Optional[TenantType] = None
    plan_id: Optional[str] = None
    is_active: bool = True

    def matches(self, entitlement: Entitlement) -> bool:
        if entitlement.is_active != self.is_active:
            return False
        if self.tenant_id is not None and entitlement.tenant_id != self.tenant_id:
            return False
        if self.tenant_type is not None and entitlement.tenant_type != self.tenant_type:
            return False
        if self.plan_id is not None and entitlement.plan_id != self.plan_id:
            return False
        return True


class UsageOutcome(_DomainModel):
    """Result of an atomic conditional usage increment at the store level."""

    accepted: bool
    usage: int
    quota: int


class UsageRecord(_DomainModel):
    """Successful usage increment reported to callers."""

    resource: str
    usage: int
    quota: int
    remaining: int


class PermissionDecision(_DomainModel):
    """Outcome of a module/feature permission check."""

    has_permission: bool
    module: str
    feature: Optional[str] = None
    action: Optional[str] = None
    is_module_enabled: bool = False
    is_feature_enabled: bool = False
    quotas: Dict[str, int] = Field(default_factory=dict)
    usage: Dict[str, int] = Field(default_factory=dict)
    reason: Optional[str] = None
