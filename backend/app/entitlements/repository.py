"""PostgreSQL persistence for entitlement aggregates."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import cursor as PgCursor
from psycopg2.pool import PoolError, ThreadedConnectionPool

from .audit import sequence_entry
from .exceptions import DuplicateTenantError, StoreUnavailableError
from .models import AuditEntry, Entitlement, EntitlementQuery, TenantType, UsageOutcome
from .store import Mutation

logger = logging.getLogger(__name__)

ENTITLEMENTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS entitlements (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    tenant_type TEXT NOT NULL,
    plan_id TEXT NOT NULL,
    add_ons JSONB NOT NULL DEFAULT '[]'::jsonb,
    modules JSONB NOT NULL DEFAULT '[]'::jsonb,
    quotas JSONB NOT NULL DEFAULT '{}'::jsonb,
    usage JSONB NOT NULL DEFAULT '{}'::jsonb,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    effective_from TIMESTAMPTZ,
    effective_until TIMESTAMPTZ,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    audit JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE UNIQUE INDEX IF NOT EXISTS entitlements_tenant_key ON entitlements (tenant_id, tenant_type);
CREATE INDEX IF NOT EXISTS entitlements_plan_idx ON entitlements (plan_id);
CREATE INDEX IF NOT EXISTS entitlements_active_idx ON entitlements (is_active);
CREATE INDEX IF NOT EXISTS entitlements_window_idx ON entitlements (effective_from, effective_until);
"""

_USAGE_EXPR = "COALESCE((usage ->> %(resource)s)::bigint, 0)"
_QUOTA_EXPR = "COALESCE((quotas ->> %(resource)s)::bigint, 0)"


def _row_to_entitlement(row: Mapping[str, Any]) -> Entitlement:
    return Entitlement.model_validate(
        {
            "id": row["id"],
            "tenant_id": row["tenant_id"],
            "tenant_type": row["tenant_type"],
            "plan_id": row["plan_id"],
            "add_ons": row.get("add_ons") or [],
            "modules": row.get("modules") or [],
            "quotas": row.get("quotas") or {},
            "usage": row.get("usage") or {},
            "is_active": row["is_active"],
            "effective_from": row.get("effective_from"),
            "effective_until": row.get("effective_until"),
            "metadata": row["metadata"],
            "audit": row.get("audit") or [],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }
    )


def _entitlement_params(entitlement: Entitlement) -> Dict[str, Any]:
    document = entitlement.model_dump(mode="json")
    return {
        "id": entitlement.id,
        "tenant_id": entitlement.tenant_id,
        "tenant_type": entitlement.tenant_type.value,
        "plan_id": entitlement.plan_id,
        "add_ons": psycopg2.extras.Json(document["add_ons"]),
        "modules": psycopg2.extras.Json(document["modules"]),
        "quotas": psycopg2.extras.Json(document["quotas"]),
        "usage": psycopg2.extras.Json(document["usage"]),
        "is_active": entitlement.is_active,
        "effective_from": entitlement.effective_from,
        "effective_until": entitlement.effective_until,
        "metadata": psycopg2.extras.Json(document["metadata"]),
        "audit": psycopg2.extras.Json(document["audit"]),
        "created_at": entitlement.created_at,
        "updated_at": entitlement.updated_at,
    }


class PostgresEntitlementStore:
    """Concrete store persisting entitlements as JSONB documents in PostgreSQL."""

    def __init__(
        self,
        connect_kwargs: Mapping[str, Any],
        *,
        min_connections: int = 1,
        max_connections: int = 10,
    ) -> None:
        self._connect_kwargs = dict(connect_kwargs)
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._pool: Optional[ThreadedConnectionPool] = None

    def open(self) -> None:
        if self._pool is not None:
            return
        try:
            self._pool = ThreadedConnectionPool(
                self._min_connections,
                self._max_connections,
                **self._connect_kwargs,
            )
        except psycopg2.OperationalError as exc:
            raise StoreUnavailableError("Could not connect to the entitlement database") from exc
        logger.info("Opened entitlement store pool max=%s", self._max_connections)

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("Closed entitlement store pool")

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        pool = self._pool
        if pool is None:
            raise StoreUnavailableError("Entitlement store is not open")
        try:
            connection = pool.getconn()
        except PoolError as exc:
            raise StoreUnavailableError("No database connection available") from exc
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
            raise StoreUnavailableError() from exc
        try:
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                connection.commit()
            except Exception:
                connection.rollback()
                raise
            finally:
                cursor.close()
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
            raise StoreUnavailableError() from exc
        finally:
            pool.putconn(connection)

    def ensure_schema(self) -> None:
        with self._cursor() as cursor:
            cursor.execute(ENTITLEMENTS_SCHEMA)

    def ping(self) -> bool:
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT 1")
                return cursor.fetchone() is not None
        except StoreUnavailableError:
            return False

    def insert(self, entitlement: Entitlement) -> Entitlement:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO entitlements (
                        id,
                        tenant_id,
                        tenant_type,
                        plan_id,
                        add_ons,
                        modules,
                        quotas,
                        usage,
                        is_active,
                        effective_from,
                        effective_until,
                        metadata,
                        audit,
                        created_at,
                        updated_at
                    )
                    VALUES (%(id)s, %(tenant_id)s, %(tenant_type)s, %(plan_id)s, %(add_ons)s,
                            %(modules)s, %(quotas)s, %(usage)s, %(is_active)s,
                            %(effective_from)s, %(effective_until)s, %(metadata)s, %(audit)s,
                            %(created_at)s, %(updated_at)s)
                    RETURNING *
                    """,
                    _entitlement_params(entitlement),
                )
                row = cursor.fetchone()
        except psycopg2.errors.UniqueViolation as exc:
            raise DuplicateTenantError(entitlement.tenant_id, entitlement.tenant_type.value) from exc
        if not row:
            raise StoreUnavailableError("Failed to persist entitlement")
        return _row_to_entitlement(row)

    def get(self, entitlement_id: str) -> Optional[Entitlement]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM entitlements WHERE id = %s LIMIT 1", (entitlement_id,))
            row = cursor.fetchone()
            return _row_to_entitlement(row) if row else None

    def find_by_tenant(self, tenant_id: str, tenant_type: TenantType) -> Optional[Entitlement]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM entitlements
                WHERE tenant_id = %s AND tenant_type = %s AND is_active
                LIMIT 1
                """,
                (tenant_id, TenantType(tenant_type).value),
            )
            row = cursor.fetchone()
            return _row_to_entitlement(row) if row else None

    def list(self, query: EntitlementQuery) -> Sequence[Entitlement]:
        clauses: List[str] = ["is_active = %(is_active)s"]
        params: Dict[str, Any] = {"is_active": query.is_active}
        if query.tenant_id is not None:
            clauses.append("tenant_id = %(tenant_id)s")
            params["tenant_id"] = query.tenant_id
        if query.tenant_type is not None:
            clauses.append("tenant_type = %(tenant_type)s")
            params["tenant_type"] = query.tenant_type.value
        if query.plan_id is not None:
            clauses.append("plan_id = %(plan_id)s")
            params["plan_id"] = query.plan_id
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM entitlements WHERE "
                + " AND ".join(clauses)
                + " ORDER BY created_at DESC, id",
                params,
            )
            rows = cursor.fetchall() or []
            return [_row_to_entitlement(row) for row in rows]

    def update(
        self,
        entitlement_id: str,
        mutate: Mutation,
        *,
        actor_id: str,
        updated_at: datetime,
    ) -> Optional[Entitlement]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM entitlements WHERE id = %s FOR UPDATE", (entitlement_id,))
            row = cursor.fetchone()
            if not row:
                return None
            revised = mutate(_row_to_entitlement(row)).touched(actor_id, updated_at)
            cursor.execute(
                """
                UPDATE entitlements
                SET plan_id = %(plan_id)s,
                    add_ons = %(add_ons)s,
                    modules = %(modules)s,
                    quotas = %(quotas)s,
                    usage = %(usage)s,
                    is_active = %(is_active)s,
                    effective_from = %(effective_from)s,
                    effective_until = %(effective_until)s,
                    metadata = %(metadata)s,
                    updated_at = %(updated_at)s
                WHERE id = %(id)s
                RETURNING *
                """,
                _entitlement_params(revised),
            )
            updated_row = cursor.fetchone()
            return _row_to_entitlement(updated_row) if updated_row else None

    def append_audit(self, entitlement_id: str, entry: AuditEntry) -> Optional[AuditEntry]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT audit FROM entitlements WHERE id = %s FOR UPDATE",
                (entitlement_id,),
            )
            row = cursor.fetchone()
            if not row:
                return None
            existing = [AuditEntry.model_validate(item) for item in row.get("audit") or []]
            stored = sequence_entry(entry, existing)
            cursor.execute(
                """
                UPDATE entitlements
                SET audit = audit || %s::jsonb,
                    updated_at = GREATEST(updated_at, %s)
                WHERE id = %s
                """,
                (
                    psycopg2.extras.Json([stored.model_dump(mode="json")]),
                    stored.performed_at,
                    entitlement_id,
                ),
            )
            return stored

    def increment_usage(
        self,
        entitlement_id: str,
        resource: str,
        amount: int,
        *,
        updated_at: datetime,
    ) -> Optional[UsageOutcome]:
        params = {
            "id": entitlement_id,
            "resource": resource,
            "amount": amount,
            "updated_at": updated_at,
        }
        with self._cursor() as cursor:
            # Row lock plus predicate re-check makes this a single conditional increment.
            cursor.execute(
                f"""
                UPDATE entitlements
                SET usage = jsonb_set(
                        usage,
                        ARRAY[%(resource)s],
                        to_jsonb({_USAGE_EXPR} + %(amount)s)
                    ),
                    updated_at = %(updated_at)s
                WHERE id = %(id)s
                  AND {_USAGE_EXPR} + %(amount)s <= {_QUOTA_EXPR}
                RETURNING {_USAGE_EXPR} AS usage, {_QUOTA_EXPR} AS quota
                """,
                params,
            )
            row = cursor.fetchone()
            if row:
                return UsageOutcome(accepted=True, usage=int(row["usage"]), quota=int(row["quota"]))
            cursor.execute(
                f"""
                SELECT {_USAGE_EXPR} AS usage, {_QUOTA_EXPR} AS quota
                FROM entitlements
                WHERE id = %(id)s
                """,
                params,
            )
            current = cursor.fetchone()
            if not current:
                return None
            return UsageOutcome(accepted=False, usage=int(current["usage"]), quota=int(current["quota"]))

    def find_expiring(self, start: datetime, end: datetime) -> Sequence[Entitlement]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM entitlements
                WHERE is_active
                  AND effective_until > %s
                  AND effective_until <= %s
                ORDER BY created_at DESC, id
                """,
                (start, end),
            )
            rows = cursor.fetchall() or []
            return [_row_to_entitlement(row) for row in rows]

    def find_quota_exceeded(self) -> Sequence[Entitlement]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM entitlements AS e
                WHERE e.is_active
                  AND EXISTS (
                      SELECT 1
                      FROM jsonb_each_text(e.quotas) AS q(resource, quota)
                      WHERE COALESCE((e.usage ->> q.resource)::numeric, 0) > q.quota::numeric
                  )
                ORDER BY e.created_at DESC, e.id
                """
            )
            rows = cursor.fetchall() or []
            return [_row_to_entitlement(row) for row in rows]


__all__ = ["ENTITLEMENTS_SCHEMA", "PostgresEntitlementStore"]
