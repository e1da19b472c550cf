"""
Staging guardrails

Seeding writes real orders and real rows, so every CLI run checks that the
configured database and store look like staging before touching either.
"""
import logging
import re
from typing import Dict, Any
from urllib.parse import urlsplit, urlunsplit

from order_seeder.core.config import Settings
from order_seeder.core.exceptions import StagingGuardrailError

logger = logging.getLogger(__name__)

STAGING_DB_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (r"staging", r"stage", r"test", r"dev", r"uat")
]

STAGING_SHOPIFY_PATTERNS = STAGING_DB_PATTERNS + [
    re.compile(r"\.myshopify\.com$", re.IGNORECASE),
]


def mask_url(url: str) -> str:
    """Replace the password component of a URL with ***."""
    try:
        parts = urlsplit(url)
        if parts.password:
            userinfo = f"{parts.username or ''}:***@"
            host = parts.hostname or ""
            if parts.port:
                host = f"{host}:{parts.port}"
            return urlunsplit(parts._replace(netloc=userinfo + host))
        return url
    except ValueError:
        return re.sub(r":[^:@/]+@", ":***@", url)


def is_staging_database(url: str) -> bool:
    return any(p.search(url) for p in STAGING_DB_PATTERNS)


def is_staging_store(domain: str) -> bool:
    return any(p.search(domain) for p in STAGING_SHOPIFY_PATTERNS)


def assert_staging_environment(settings: Settings) -> None:
    """
    Raise StagingGuardrailError unless both the database URL and the store
    domain match a staging pattern.
    """
    if not is_staging_database(settings.DATABASE_URL):
        raise StagingGuardrailError(
            f"Database URL does not match staging patterns. Detected: {mask_url(settings.DATABASE_URL)}",
            details={"database_url": mask_url(settings.DATABASE_URL)},
        )
    if not is_staging_store(settings.SHOPIFY_STORE_DOMAIN):
        raise StagingGuardrailError(
            f"Shopify domain does not match staging patterns. Detected: {settings.SHOPIFY_STORE_DOMAIN}",
            details={"shopify_domain": settings.SHOPIFY_STORE_DOMAIN},
        )


def describe_environment(settings: Settings) -> Dict[str, Any]:
    """Summary suitable for printing before a run."""
    return {
        "database_url": mask_url(settings.DATABASE_URL),
        "shopify_domain": settings.SHOPIFY_STORE_DOMAIN,
        "is_staging": (
            is_staging_database(settings.DATABASE_URL)
            and is_staging_store(settings.SHOPIFY_STORE_DOMAIN)
        ),
    }


def require_staging(settings: Settings, override: bool = False) -> None:
    """
    CLI entry check. With override the guardrail is skipped but the bypass is
    logged.
    """
    if override:
        logger.warning(
            f"Staging guardrail bypassed for {describe_environment(settings)['database_url']}"
        )
        return
    assert_staging_environment(settings)
