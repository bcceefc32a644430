from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from signup_guard.api.modules.fraud.models import DeviceFingerprint
from signup_guard.database.base import insert_ignoring_conflicts
from signup_guard.settings import APIConfig, Config, PostgresConfig, RedisConfig


def build_config(**overrides) -> Config:
    return Config(
        _env_file=None,
        api=APIConfig(allowed_hosts=["*"]),
        postgres=PostgresConfig(user="guard", password="guard", host="db", db="guard"),
        redis=RedisConfig(host="cache"),
        **overrides,
    )


def test_database_url_from_postgres_section():
    config = build_config(env="prod")

    assert config.database_url == "postgresql+asyncpg://guard:guard@db:5432/guard"
    assert config.redis_url == "redis://cache:6379/0"


def test_database_dsn_takes_precedence():
    config = build_config(database_dsn="sqlite+aiosqlite:///guard.db")

    assert config.database_url == "sqlite+aiosqlite:///guard.db"


def test_unsupported_database_dsn_rejected():
    with pytest.raises(ValidationError):
        build_config(database_dsn="mysql+aiomysql://guard@db/guard")


def test_whitelisted_addresses_are_scored_by_default():
    assert build_config().fraud.skip_whitelisted_addresses is False


def test_insert_ignoring_conflicts_rejects_unknown_dialect():
    session = MagicMock()
    session.get_bind.return_value.dialect.name = "mysql"

    with pytest.raises(ValueError, match="mysql"):
        insert_ignoring_conflicts(
            session, DeviceFingerprint, {"fingerprint": "f" * 32}, ["fingerprint"]
        )
