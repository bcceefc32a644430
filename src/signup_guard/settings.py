from functools import lru_cache
from typing import Literal, final

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from yarl import URL


class PostgresConfig(BaseModel):
    user: str
    password: str
    host: str
    port: int = 5432
    db: str


class RedisConfig(BaseModel):
    host: str
    port: int = 6379
    db: int = 0


class APIConfig(BaseModel):
    title: str = "Signup Guard API"
    version: str = "1.0.0"
    port: int = 8000
    host: str = "0.0.0.0"
    allowed_hosts: list[str]
    api_key: str | None = None



class FraudConfig(BaseModel):
    trust_forwarded_ip: bool = True

    # Decision thresholds (score >= threshold)
    block_score_threshold: int = Field(default=90, ge=1, le=100)
    flag_score_threshold: int = Field(default=75, ge=1, le=100)
    verify_score_threshold: int = Field(default=50, ge=1, le=100)
    critical_category_score: int = Field(default=90, ge=1, le=100)

    enforce_single_account_per_device: bool = True
    skip_whitelisted_addresses: bool = False

    max_accounts_per_address: int = 3
    rapid_creation_window_seconds: int = 60 * 60
    rapid_creation_max_accounts: int = 3
    referral_window_seconds: int = 24 * 60 * 60
    referral_max_signups: int = 3
    similar_email_prefix_length: int = 5
    similar_email_max_accounts: int = 3
    typing_speed_ceiling: float = 200.0

    high_risk_countries: list[str] = Field(
        default_factory=lambda: ["CN", "RU", "IR", "KP", "SY"]
    )
    extra_disposable_email_domains: list[str] = Field(default_factory=list)
    tor_exit_addresses: list[str] = Field(default_factory=list)
    vpn_networks: list[str] = Field(default_factory=list)

    analyzer_timeout_seconds: float = 3.0

    device_retention_days: int = 365
    network_retention_days: int = 730
    attempt_retention_days: int = 365

    auto_blacklist_min_devices: int = 3
    auto_blacklist_blocked_ratio: float = 0.5

    ip_geolocation_enabled: bool = True
    ip_geolocation_base_url: str = "https://ipapi.co"
    ip_geolocation_timeout_seconds: float = 1.5
    ip_geolocation_cache_ttl_seconds: int = 3600

    threat_intel_enabled: bool = False
    threat_intel_base_url: str = "https://proxycheck.io/v2"
    threat_intel_api_key: str | None = None
    threat_intel_timeout_seconds: float = 1.5

    reverse_dns_enabled: bool = True
    reverse_dns_timeout_seconds: float = 0.5

    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests_per_ip: int = 30


SUPPORTED_DSN_SCHEMES = ("postgresql+asyncpg://", "sqlite+aiosqlite://")


@final
class Config(BaseSettings):
    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="APP__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: Literal["local", "dev", "prod"] = "local"

    api: APIConfig
    fraud: FraudConfig = FraudConfig()

    postgres: PostgresConfig
    redis: RedisConfig

    # Full SQLAlchemy URL; takes precedence over the postgres section when set.
    database_dsn: str | None = None

    @field_validator("database_dsn")
    @classmethod
    def _supported_dialect(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(SUPPORTED_DSN_SCHEMES):
            raise ValueError(
                f"database_dsn must use one of: {', '.join(SUPPORTED_DSN_SCHEMES)}"
            )
        return value

    @property
    def database_url(self) -> str:
        if self.database_dsn:
            return self.database_dsn
        host = "localhost" if self.env == "local" else self.postgres.host
        return URL.build(
            scheme="postgresql+asyncpg",
            user=self.postgres.user,
            password=self.postgres.password,
            host=host,
            port=self.postgres.port,
            path=f"/{self.postgres.db}",
        ).human_repr()

    @property
    def redis_url(self) -> str:
        host = "localhost" if self.env == "local" else self.redis.host
        return URL.build(
            scheme="redis",
            host=host,
            port=self.redis.port,
            path=f"/{self.redis.db}",
        ).human_repr()


@lru_cache
def get_config() -> Config:
    return Config()
