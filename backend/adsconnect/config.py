import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/ads_connect"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Hosted Postgres gives postgresql:// — we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values

    # Shared with the identity provider; verifies the HS256 session JWTs
    secret_key: str = "change-me-in-production"
    cors_origins: str = "http://localhost:3000"
    encryption_key: str = ""
    cron_secret: str = ""

    # Facebook app
    facebook_app_id: str = ""
    facebook_app_secret: str = ""
    facebook_api_version: str = "v23.0"
    facebook_oauth_redirect_uri: str = ""
    facebook_scopes: str = "ads_read,ads_management,business_management"

    # Where OAuth results are sent (the web frontend)
    frontend_url: str = "http://localhost:3000"

    # Token refresh cron
    token_refresh_threshold_days: int = 7
    token_refresh_delay_seconds: float = 1.0

    # Graph API client
    graph_max_attempts: int = 3
    graph_backoff_base_seconds: float = 1.0
    graph_timeout_seconds: float = 30.0

    action_log_limit: int = 100

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "SECRET_KEY must be set to a secure value in production. "
                    "Use the signing secret shared with the identity provider."
                )
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if not self.facebook_app_id or not self.facebook_app_secret:
                raise ValueError("FACEBOOK_APP_ID and FACEBOOK_APP_SECRET must be set in production.")
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["http://localhost:3000"]

    @property
    def scope_list(self) -> list[str]:
        return [s.strip() for s in self.facebook_scopes.split(",") if s.strip()]

    @property
    def graph_base_url(self) -> str:
        return f"https://graph.facebook.com/{self.facebook_api_version}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
