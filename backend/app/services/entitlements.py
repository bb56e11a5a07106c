"""Application wiring for the entitlement service."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..entitlements import EntitlementService, EntitlementStore, InMemoryEntitlementStore

if TYPE_CHECKING:
    from ...config import ServiceConfig

logger = logging.getLogger(__name__)


def build_entitlement_store(config: ServiceConfig) -> EntitlementStore:
    """Construct and open the store selected by ``config.store_backend``."""

    if config.store_backend == "postgres":
        from ..entitlements.repository import PostgresEntitlementStore

        database = config.database
        store = PostgresEntitlementStore(
            database.connect_kwargs(),
            min_connections=database.pool_min,
            max_connections=database.pool_max,
        )
        store.open()
        store.ensure_schema()
        logger.info(
            "Using PostgreSQL entitlement store host=%s db=%s",
            database.host,
            database.name,
        )
        return store

    logger.info("Using in-memory entitlement store")
    return InMemoryEntitlementStore()


def build_entitlement_service(config: ServiceConfig, store: EntitlementStore) -> EntitlementService:
    return EntitlementService(store=store, default_report_days=config.report_default_days)
