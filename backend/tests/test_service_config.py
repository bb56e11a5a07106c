from __future__ import annotations

import pytest

from backend.config import STORE_MEMORY, STORE_POSTGRES, load_service_config


def test_defaults_when_environment_is_empty() -> None:
    config = load_service_config({})

    assert config.store_backend == STORE_MEMORY
    assert config.database.host == "127.0.0.1"
    assert config.database.port == 5432
    assert config.database.name == "entitlements_db"
    assert config.database.pool_min == 1
    assert config.database.pool_max == 10
    assert config.jwt_algorithm == "HS256"
    assert config.log_level == "INFO"
    assert config.cors_origins == ("*",)
    assert config.report_default_days == 7


def test_values_are_read_from_environment() -> None:
    config = load_service_config(
        {
            "ENTITLEMENTS_STORE": "Postgres",
            "DB_HOST": "db.internal",
            "DB_PORT": "6543",
            "DB_POOL_MIN": "4",
            "DB_POOL_MAX": "2",
            "JWT_SECRET_KEY": "s3cret",
            "LOG_LEVEL": "debug",
            "CORS_ORIGINS": "https://a.example, https://b.example",
            "REPORT_DEFAULT_DAYS": "14",
        }
    )

    assert config.store_backend == STORE_POSTGRES
    assert config.database.connect_kwargs()["host"] == "db.internal"
    assert config.database.connect_kwargs()["port"] == 6543
    assert config.database.pool_min == 4
    assert config.database.pool_max == 4
    assert config.jwt_secret_key == "s3cret"
    assert config.log_level == "DEBUG"
    assert config.cors_origins == ("https://a.example", "https://b.example")
    assert config.report_default_days == 14


@pytest.mark.parametrize(
    "env",
    [
        {"DB_PORT": "five"},
        {"ENTITLEMENTS_STORE": "mongo"},
        {"REPORT_DEFAULT_DAYS": "-1"},
    ],
)
def test_invalid_values_raise(env) -> None:
    with pytest.raises(ValueError):
        load_service_config(env)
