"""
Seeder configuration

Settings are read once from the environment (and an optional .env file) by
load_settings() and the resulting frozen object is handed to every component
that needs it. Nothing in the services reads configuration from module state.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from order_seeder.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SHOPIFY_API_VERSION = "2024-01"
DEFAULT_CONNECTION_LIMIT = 10


@dataclass(frozen=True)
class ShopifyCredentials:
    """Store credentials for one Shopify Admin API endpoint."""
    store_domain: str
    access_token: str
    api_version: str = DEFAULT_SHOPIFY_API_VERSION

    @property
    def graphql_url(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/graphql.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    ENVIRONMENT: str = "staging"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database - NO DEFAULT (will fail if not set)
    DATABASE_URL: str
    DATABASE_CONNECTION_LIMIT: int = DEFAULT_CONNECTION_LIMIT

    # Shopify Admin API (default / CA store)
    SHOPIFY_STORE_DOMAIN: str
    SHOPIFY_ACCESS_TOKEN: str
    SHOPIFY_API_VERSION: str = DEFAULT_SHOPIFY_API_VERSION
    SHOPIFY_TIMEOUT_SECONDS: float = 30.0

    # Optional separate US store
    SHOPIFY_US_STORE_DOMAIN: str = ""
    SHOPIFY_US_ACCESS_TOKEN: str = ""

    # Written to orders.source_name for every mirrored order
    SEED_SOURCE_NAME: str = "wms_seed"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v):
        """Convert postgres:// URLs to the asyncpg dialect."""
        if not v:
            return v
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://") and "+asyncpg" not in v:
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("DATABASE_CONNECTION_LIMIT", mode="before")
    @classmethod
    def parse_connection_limit(cls, v):
        if v is None or v == "":
            return DEFAULT_CONNECTION_LIMIT
        try:
            limit = int(v)
        except (TypeError, ValueError):
            limit = 0
        if limit <= 0:
            logger.warning(
                f"Invalid DATABASE_CONNECTION_LIMIT {v!r}, using default {DEFAULT_CONNECTION_LIMIT}"
            )
            return DEFAULT_CONNECTION_LIMIT
        return limit

    @field_validator("SHOPIFY_STORE_DOMAIN", "SHOPIFY_US_STORE_DOMAIN", mode="before")
    @classmethod
    def strip_scheme(cls, v):
        if isinstance(v, str):
            v = v.strip().removeprefix("https://").removeprefix("http://").rstrip("/")
        return v

    def shopify_credentials(self, region: Optional[str] = None) -> ShopifyCredentials:
        """
        Pick the store for a region.

        The US store is used only when region is "US" and US credentials are
        configured; everything else goes to the default store.
        """
        if region == "US" and self.SHOPIFY_US_STORE_DOMAIN and self.SHOPIFY_US_ACCESS_TOKEN:
            return ShopifyCredentials(
                store_domain=self.SHOPIFY_US_STORE_DOMAIN,
                access_token=self.SHOPIFY_US_ACCESS_TOKEN,
                api_version=self.SHOPIFY_API_VERSION,
            )
        return ShopifyCredentials(
            store_domain=self.SHOPIFY_STORE_DOMAIN,
            access_token=self.SHOPIFY_ACCESS_TOKEN,
            api_version=self.SHOPIFY_API_VERSION,
        )


def load_settings(**overrides: Any) -> Settings:
    """
    Build the settings object once at startup.

    Keyword overrides take precedence over the environment (used by tests and
    by the CLI).

    Raises:
        ConfigurationError: naming every missing or invalid variable
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigurationError(
            f"Missing or invalid required environment variables: {', '.join(fields)}. "
            "Please check your environment or .env file.",
            details={"fields": fields},
        ) from e

    logger.info(
        f"Configuration loaded: environment={settings.ENVIRONMENT}, "
        f"store={settings.SHOPIFY_STORE_DOMAIN}"
    )
    return settings
