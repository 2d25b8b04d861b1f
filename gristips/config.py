"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROCONNECT_DOMAIN = "fca.integ01.dev-agentconnect.fr"
DEFAULT_PROCONNECT_SCOPES = (
    "openid given_name usual_name email organizational_unit belonging_population"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # App
    app_env: Literal["development", "production", "test"] = "development"
    app_secret_key: str

    @field_validator("app_secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Ensure the session signing key is strong enough."""
        if len(v) < 32:
            raise ValueError("APP_SECRET_KEY must be at least 32 characters long")
        if v == "change-me-to-a-secure-random-string":
            raise ValueError("APP_SECRET_KEY must be changed from the default value")
        return v

    app_url: str = "http://localhost:8080"
    app_name: str = "Gristips"

    # Database
    database_url: PostgresDsn

    # Master key for Grist API keys at rest (checked by SecretCipher)
    encryption_key: str = ""

    # ProConnect (OIDC)
    proconnect_client_id: str
    proconnect_client_secret: str
    proconnect_domain: str = DEFAULT_PROCONNECT_DOMAIN
    proconnect_issuer: str | None = None
    proconnect_scopes: str = DEFAULT_PROCONNECT_SCOPES
    # When False every ProConnect user is treated as a public agent
    proconnect_require_agent_claim: bool = True

    # Grist
    grist_base_url: str = "https://docs.getgrist.com"
    grist_timeout: float = 10.0

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def database_url_async(self) -> str:
        """Get async database URL (postgresql+asyncpg)."""
        url = str(self.database_url)
        return url.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def proconnect_redirect_uri(self) -> str:
        """Callback URL registered with ProConnect."""
        return f"{self.app_url.rstrip('/')}/api/auth/proconnect/callback"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]
