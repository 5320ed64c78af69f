"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment (dev | test | production)
    ENV: str = "dev"
    TESTING: bool = False  # Set by the test suite; in-memory limiter and caches

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./clinic.db"
    AUTO_MIGRATE: bool = True  # Additive "add column if not exists" at startup

    # Access Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 5  # Login attempts per IP
    RATE_LIMIT_API: int = 120  # General API

    # Login lockout (per username, production only)
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_MINUTES: int = 15
    REDIS_URL: str = ""  # Shared lockout store, rate-limit storage and payload caches when set
    REDIS_MAX_CONNECTIONS: int = 20

    # Tenancy
    DEFAULT_CLINIC_ID: int = 1  # Seed clinic, never deletable
    CLINIC_DAILY_CAPACITY: int = 10

    # Leads payload cache
    LEADS_CACHE_TTL_SECONDS: int = 300

    # Bootstrap super admin defaults for `clinic-api create-super-admin`
    SEED_SUPER_ADMIN_USERNAME: str = ""
    SEED_SUPER_ADMIN_PASSWORD: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in ("production", "prod")

    @property
    def login_rate_limit_enabled(self) -> bool:
        """Login lockout only runs in production-like environments."""
        return self.is_production


settings = Settings()
