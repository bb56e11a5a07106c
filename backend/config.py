"""Service configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
import os

STORE_MEMORY = "memory"
STORE_POSTGRES = "postgres"


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the PostgreSQL entitlement store."""

    host: str
    port: int
    name: str
    user: str
    password: str
    connect_timeout: int
    pool_min: int
    pool_max: int

    def connect_kwargs(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.name,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
        }


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for the entitlements HTTP service."""

    store_backend: str
    database: DatabaseConfig
    jwt_secret_key: str
    jwt_algorithm: str
    log_level: str
    cors_origins: Tuple[str, ...] = field(default_factory=tuple)
    report_default_days: int = 7


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_list(value: Optional[str], *, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None or not value.strip():
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    """Load :class:`DatabaseConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    pool_min = max(1, _to_int(env_mapping.get("DB_POOL_MIN"), default=1))
    pool_max = max(pool_min, _to_int(env_mapping.get("DB_POOL_MAX"), default=10))

    return DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        name=env_mapping.get("DB_NAME", "entitlements_db"),
        user=env_mapping.get("DB_USER", "entitlements"),
        password=env_mapping.get("DB_PASSWORD", "entitlements"),
        connect_timeout=max(0, _to_int(env_mapping.get("DB_CONNECT_TIMEOUT"), default=5)),
        pool_min=pool_min,
        pool_max=pool_max,
    )


def load_service_config(env: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """Load :class:`ServiceConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    store_backend = (env_mapping.get("ENTITLEMENTS_STORE") or STORE_MEMORY).strip().lower()
    if store_backend not in {STORE_MEMORY, STORE_POSTGRES}:
        raise ValueError(f"Unsupported ENTITLEMENTS_STORE {store_backend!r}")

    report_days = _to_int(env_mapping.get("REPORT_DEFAULT_DAYS"), default=7)
    if report_days < 0:
        raise ValueError("REPORT_DEFAULT_DAYS must be >= 0")

    return ServiceConfig(
        store_backend=store_backend,
        database=load_database_config(env_mapping),
        jwt_secret_key=env_mapping.get("JWT_SECRET_KEY", "dev-secret-change-me"),
        jwt_algorithm=env_mapping.get("JWT_ALGORITHM", "HS256"),
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper(),
        cors_origins=_to_list(env_mapping.get("CORS_ORIGINS"), default=("*",)),
        report_default_days=report_days,
    )
