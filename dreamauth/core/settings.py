"""Application settings loaded from environment variables."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DB_POOL_SIZE_DEFAULT = 5
DB_MAX_OVERFLOW_DEFAULT = 10
DB_PORT_DEFAULT = 5432
KEY_CACHE_TTL_DEFAULT = 600
KEY_CACHE_MAX_ENTRIES_DEFAULT = 64
JWKS_FETCH_TIMEOUT_DEFAULT = 5.0
JWKS_MIN_REFRESH_INTERVAL_DEFAULT = 30.0
JWKS_BACKOFF_BASE_DEFAULT = 1.0
JWKS_BACKOFF_MAX_DEFAULT = 60.0
PROVISIONING_LOCK_SHARDS_DEFAULT = 64

ASYMMETRIC_ALGORITHMS = frozenset(
    {
        "RS256",
        "RS384",
        "RS512",
        "PS256",
        "PS384",
        "PS512",
        "ES256",
        "ES384",
        "ES512",
        "EdDSA",
    }
)


class DatabaseSettings(BaseSettings):
    """Identity store connection settings."""

    model_config = SettingsConfigDict(env_prefix="AUTH_DB_")

    host: str = "localhost"
    port: int = DB_PORT_DEFAULT
    user: str = "dreamauth"
    password: str = "dreamauth"
    database: str = "dreamauth"
    pool_size: int = DB_POOL_SIZE_DEFAULT
    max_overflow: int = DB_MAX_OVERFLOW_DEFAULT
    echo: bool = False
    create_schema: bool = False
    url: str | None = None

    @property
    def async_url(self) -> str:
        """Build async connection URL, preferring an explicit override."""
        if self.url:
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class AuthSettings(BaseSettings):
    """Identity provider trust and key caching settings."""

    model_config = SettingsConfigDict(env_prefix="AUTH_")

    provider_domain: str = "localhost"
    algorithm: str = "RS256"
    audience: str | None = None
    require_exp: bool = True
    leeway_seconds: int = 0
    key_cache_ttl: int = KEY_CACHE_TTL_DEFAULT
    key_cache_max_entries: int = KEY_CACHE_MAX_ENTRIES_DEFAULT
    jwks_fetch_timeout: float = JWKS_FETCH_TIMEOUT_DEFAULT
    jwks_min_refresh_interval: float = JWKS_MIN_REFRESH_INTERVAL_DEFAULT
    jwks_backoff_base: float = JWKS_BACKOFF_BASE_DEFAULT
    jwks_backoff_max: float = JWKS_BACKOFF_MAX_DEFAULT
    provisioning_lock_shards: int = PROVISIONING_LOCK_SHARDS_DEFAULT
    cors_origins: str = ""

    @field_validator("algorithm")
    @classmethod
    def _require_asymmetric(cls, value: str) -> str:
        if value not in ASYMMETRIC_ALGORITHMS:
            msg = f"algorithm must be one of {sorted(ASYMMETRIC_ALGORITHMS)}"
            raise ValueError(msg)
        return value

    @field_validator("provider_domain")
    @classmethod
    def _bare_domain(cls, value: str) -> str:
        value = value.strip()
        if not value or "://" in value or "/" in value:
            msg = "provider_domain must be a bare host name"
            raise ValueError(msg)
        return value

    @property
    def jwks_url(self) -> str:
        """Published key set location for the provider."""
        return f"https://{self.provider_domain}/.well-known/jwks.json"

    @property
    def issuer(self) -> str:
        """Expected ``iss`` claim, trailing slash included."""
        return f"https://{self.provider_domain}/"

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class LoggingSettings(BaseSettings):
    """Structured logging output settings."""

    model_config = SettingsConfigDict(env_prefix="AUTH_LOG_")

    level: str = "INFO"
    json_output: bool = True
