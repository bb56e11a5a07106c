"""Entitlements domain models and services."""

from .audit import AuditLedger
from .catalog import DEFAULT_QUOTAS, backfill_usage, resolve_quotas
from .exceptions import (
    AuditAppendError,
    DuplicateTenantError,
    EntitlementError,
    EntitlementNotFoundError,
    EntitlementValidationError,
    MissingFeatureError,
    MissingModuleError,
    QuotaExceededError,
    StoreUnavailableError,
)
from .models import (
    AddOn,
    AuditAction,
    AuditEntry,
    ConfigValue,
    Entitlement,
    EntitlementMetadata,
    EntitlementPatch,
    EntitlementQuery,
    EntitlementSpec,
    Feature,
    FeaturePatch,
    MetadataInput,
    Module,
    ModuleName,
    ModulePatch,
    PermissionDecision,
    TenantType,
    UsageOutcome,
    UsageRecord,
)
from .permissions import (
    PermissionEvaluator,
    get_feature_config,
    get_module_config,
    is_feature_enabled,
    is_module_enabled,
)
from .quota import QuotaEnforcer, check_quota
from .reports import ReportingQueries
from .service import EntitlementService
from .store import EntitlementStore, InMemoryEntitlementStore

__all__ = [
    "DEFAULT_QUOTAS",
    "backfill_usage",
    "resolve_quotas",
    "AuditAppendError",
    "DuplicateTenantError",
    "EntitlementError",
    "EntitlementNotFoundError",
    "EntitlementValidationError",
    "MissingFeatureError",
    "MissingModuleError",
    "QuotaExceededError",
    "StoreUnavailableError",
    "AddOn",
    "AuditAction",
    "AuditEntry",
    "ConfigValue",
    "Entitlement",
    "EntitlementMetadata",
    "EntitlementPatch",
    "EntitlementQuery",
    "EntitlementSpec",
    "Feature",
    "FeaturePatch",
    "MetadataInput",
    "Module",
    "ModuleName",
    "ModulePatch",
    "PermissionDecision",
    "TenantType",
    "UsageOutcome",
    "UsageRecord",
    "AuditLedger",
    "PermissionEvaluator",
    "get_feature_config",
    "get_module_config",
    "is_feature_enabled",
    "is_module_enabled",
    "QuotaEnforcer",
    "check_quota",
    "ReportingQueries",
    "EntitlementService",
    "EntitlementStore",
    "InMemoryEntitlementStore",
]
