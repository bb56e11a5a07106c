"""Static catalog of default resource quotas."""
from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Mapping, Optional

DEFAULT_QUOTAS: Mapping[str, int] = MappingProxyType(
    {
        "submissions": 1000,
        "forms": 10,
        "staff": 5,
        "notifications": 100,
        "exports": 10,
        "integrations": 3,
    }
)


def resolve_quotas(overrides: Optional[Mapping[str, int]] = None) -> Dict[str, int]:
    """Merge explicit quota values over the catalog defaults."""

    quotas = dict(DEFAULT_QUOTAS)
    if overrides:
        quotas.update(overrides)
    return quotas


def backfill_usage(quotas: Mapping[str, int], usage: Optional[Mapping[str, int]] = None) -> Dict[str, int]:
    """Ensure every quota key has a usage counter, defaulting to zero."""

    counters = dict(usage or {})
    for resource in quotas:
        counters.setdefault(resource, 0)
    return counters
