# backend/sodflow/core/settings.py
"""
SOD Flow - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/sodflow/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "SOD Flow"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins",
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Dataverse (order / detail provider, history store)
    # ===================
    DATAVERSE_ORG_URL: str = Field(
        default="https://example.crm5.dynamics.com", description="Dataverse organization URL"
    )
    DATAVERSE_API_VERSION: str = Field(default="v9.2", description="Web API version")
    DATAVERSE_AUTH_TRIGGER_URL: Optional[str] = Field(
        default=None, description="Flow trigger that issues Dataverse access tokens"
    )
    DATAVERSE_DELIVERED_STATUS: Optional[int] = Field(
        default=None,
        description="Option-set value of a fully delivered order/detail; excluded from fetches",
    )
    TOKEN_REFRESH_MARGIN_SECONDS: int = Field(
        default=300, description="Refresh cached tokens this long before they expire"
    )
    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, description="Timeout for outbound HTTP calls")

    # ===================
    # Notification flows
    # ===================
    FLOW_NOTIFY_URL: Optional[str] = Field(
        default=None, description="Flow trigger receiving workflow notifications"
    )
    FLOW_SALE_DECISION_URL: Optional[str] = Field(
        default=None, description="Flow trigger receiving partial shipment decisions"
    )
    OUTBOX_AUTO_DISPATCH: bool = Field(
        default=True, description="Drain queued notifications in the background"
    )

    # ===================
    # History persistence
    # ===================
    HISTORY_BACKEND: str = Field(default="dataverse", description="dataverse or database")
    DATABASE_URL: str = Field(
        default="sqlite:///./sodflow.db", description="Database for the 'database' history backend"
    )

    @field_validator("HISTORY_BACKEND")
    @classmethod
    def validate_history_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("dataverse", "database"):
            raise ValueError("HISTORY_BACKEND must be 'dataverse' or 'database'")
        return v

    # ===================
    # Workflow
    # ===================
    DEFAULT_CUSTOMER_ID: Optional[str] = Field(
        default=None, description="Customer used when the bootstrap parameters carry none"
    )
    DEFAULT_ROLE: str = Field(default="ADMIN", description="Role when no role/department hint is given")
    DEFAULT_SOURCE_SUPPLIER: str = Field(
        default="Kho Dataverse", description="Supplier recorded when Source leaves it blank"
    )
    ON_REOPEN_POLICY: str = Field(
        default="preserve",
        description="preserve or clear_decisions: what happens to decisions when a shortage reopens",
    )

    @field_validator("ON_REOPEN_POLICY")
    @classmethod
    def validate_reopen_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("preserve", "clear_decisions"):
            raise ValueError("ON_REOPEN_POLICY must be 'preserve' or 'clear_decisions'")
        return v

    @field_validator("DEFAULT_ROLE")
    @classmethod
    def normalize_default_role(cls, v: str) -> str:
        return v.strip().upper()

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # json or text
    LOG_FILE: Optional[str] = None

    @property
    def dataverse_api_url(self) -> str:
        return f"{self.DATAVERSE_ORG_URL.rstrip('/')}/api/data/{self.DATAVERSE_API_VERSION}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


# Convenience alias
settings = get_settings()
