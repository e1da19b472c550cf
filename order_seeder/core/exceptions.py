"""
Seeder Exception Hierarchy

Structured exception classes for the order seeding pipeline.
All exceptions include code, message, and details for logging and for the
structured failure lists returned by the orchestrators.

Exception Hierarchy:
    SeederBaseError
    ├── ConfigurationError
    ├── StagingGuardrailError
    ├── SeedValidationError
    ├── VariantResolutionError
    ├── ShopifyServiceError
    ├── WmsServiceError
    ├── WmsRepositoryError
    └── BatchSeedError
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Iterable

logger = logging.getLogger(__name__)


class SeederBaseError(Exception):
    """
    Base exception for all seeder errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging
        severity: P0-P3 severity level
    """

    default_code: str = "SEEDER_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(SeederBaseError):
    """Required settings are missing or invalid."""
    default_code = "CONFIG_INVALID"
    default_severity = "P0"


class StagingGuardrailError(SeederBaseError):
    """Refusing to run against something that does not look like staging."""
    default_code = "STAGING_GUARDRAIL"
    default_severity = "P0"


# =============================================================================
# INPUT / RESOLUTION ERRORS
# =============================================================================

class SeedValidationError(SeederBaseError):
    """Batch request failed validation before any remote or local call."""
    default_code = "SEED_VALIDATION_FAILED"
    default_severity = "P2"


class VariantResolutionError(SeederBaseError):
    """One or more SKUs could not be resolved to platform variants."""
    default_code = "VARIANT_NOT_FOUND"
    default_severity = "P1"

    def __init__(self, missing_skus: Iterable[str], **kwargs):
        self.missing_skus = sorted(set(missing_skus))
        message = kwargs.pop(
            "message",
            f"Variants not found for SKUs: {', '.join(self.missing_skus)}",
        )
        details = kwargs.pop("details", {})
        details["missing_skus"] = self.missing_skus
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# REMOTE (SHOPIFY) ERRORS
# =============================================================================

@dataclass
class UserError:
    """Field-level error reported by the Shopify API."""
    message: str
    field: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserError":
        return cls(
            message=str(payload.get("message", "")),
            field=list(payload.get("field") or []),
        )


class ShopifyServiceError(SeederBaseError):
    """Any failed Shopify call: transport, GraphQL errors, userErrors, missing data."""
    default_code = "SHOPIFY_REQUEST_FAILED"
    default_severity = "P1"

    def __init__(
        self,
        message: str,
        user_errors: Optional[List[UserError]] = None,
        **kwargs
    ):
        self.user_errors = list(user_errors or [])
        details = kwargs.pop("details", {})
        if self.user_errors:
            details["user_errors"] = [
                {"message": e.message, "field": e.field} for e in self.user_errors
            ]
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# WMS ERRORS
# =============================================================================

class WmsServiceError(SeederBaseError):
    """WMS mirror service failure (unresolved SKU, unknown line item)."""
    default_code = "WMS_SERVICE_ERROR"
    default_severity = "P1"


class WmsRepositoryErrorType(str, Enum):
    """Categories of database failures surfaced by the repository."""
    DUPLICATE_RECORD = "DUPLICATE_RECORD"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    UNKNOWN_DATABASE_ERROR = "UNKNOWN_DATABASE_ERROR"


# Postgres SQLSTATE codes
SQLSTATE_UNIQUE_VIOLATION = "23505"
SQLSTATE_FOREIGN_KEY_VIOLATION = "23503"


class WmsRepositoryError(SeederBaseError):
    """Structured error for WMS repository operations."""
    default_code = "WMS_REPOSITORY_ERROR"
    default_severity = "P1"

    def __init__(
        self,
        error_type: WmsRepositoryErrorType,
        context: str,
        sqlstate: Optional[str] = None,
        target: Optional[str] = None,
        **kwargs
    ):
        self.error_type = error_type
        self.context = context
        self.sqlstate = sqlstate
        self.target = target
        details = kwargs.pop("details", {})
        details.update({
            "error_type": error_type.value,
            "context": context,
            "sqlstate": sqlstate,
            "target": target,
        })
        message = self.format_message(error_type, context, target)
        super().__init__(message, details=details, **kwargs)

    @staticmethod
    def format_message(
        error_type: WmsRepositoryErrorType,
        context: str,
        target: Optional[str] = None,
    ) -> str:
        if error_type == WmsRepositoryErrorType.DUPLICATE_RECORD:
            if target:
                return f"{context} already exists (constraint on: {target})"
            return f"{context} already exists"
        if error_type == WmsRepositoryErrorType.FOREIGN_KEY_VIOLATION:
            return f"Foreign key constraint failed for {context}"
        if error_type == WmsRepositoryErrorType.RECORD_NOT_FOUND:
            return f"{context} not found"
        return f"Database error for {context}"

    @classmethod
    def from_db_error(cls, error: Exception, context: str) -> "WmsRepositoryError":
        """
        Map a SQLAlchemy/DBAPI error onto a repository error.

        Args:
            error: The raised database exception
            context: What was being written, e.g. "Order with shopify_order_id X"
        """
        from sqlalchemy.exc import IntegrityError, NoResultFound

        if isinstance(error, NoResultFound):
            return cls(WmsRepositoryErrorType.RECORD_NOT_FOUND, context)

        orig = getattr(error, "orig", None)
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        text = str(orig or error).lower()
        # asyncpg keeps the constraint name on the wrapped driver exception
        driver_error = getattr(orig, "__cause__", None)
        target = getattr(orig, "constraint_name", None) or getattr(driver_error, "constraint_name", None)

        if isinstance(error, IntegrityError):
            if sqlstate == SQLSTATE_UNIQUE_VIOLATION or "unique" in text:
                return cls(WmsRepositoryErrorType.DUPLICATE_RECORD, context, sqlstate, target)
            if sqlstate == SQLSTATE_FOREIGN_KEY_VIOLATION or "foreign key" in text:
                return cls(WmsRepositoryErrorType.FOREIGN_KEY_VIOLATION, context, sqlstate)

        return cls(WmsRepositoryErrorType.UNKNOWN_DATABASE_ERROR, context, sqlstate)


# =============================================================================
# BATCH ERRORS
# =============================================================================

# Code recorded for per-order failures that are not SeederBaseError
UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"


@dataclass
class OrderFailure:
    """A single order that failed under the continue-on-error policy."""
    order_index: int
    customer_email: Optional[str]
    error: str
    error_code: Optional[str] = None
    shopify_order_id: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        order_index: int,
        customer_email: Optional[str],
        exc: Exception,
        shopify_order_id: Optional[str] = None,
    ) -> "OrderFailure":
        if isinstance(exc, SeederBaseError):
            error, error_code = exc.message, exc.code
        else:
            error, error_code = f"{type(exc).__name__}: {exc}", UNEXPECTED_ERROR_CODE
        return cls(
            order_index=order_index,
            customer_email=customer_email,
            error=error,
            error_code=error_code,
            shopify_order_id=shopify_order_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderIndex": self.order_index,
            "customerEmail": self.customer_email,
            "shopifyOrderId": self.shopify_order_id,
            "error": self.error,
            "errorCode": self.error_code,
        }


class BatchSeedError(SeederBaseError):
    """Every order in the batch failed under the continue-on-error policy."""
    default_code = "BATCH_SEED_FAILED"
    default_severity = "P1"

    def __init__(self, message: str, failures: Optional[List[OrderFailure]] = None, **kwargs):
        self.failures = list(failures or [])
        details = kwargs.pop("details", {})
        details["failures"] = [f.to_dict() for f in self.failures]
        super().__init__(message, details=details, **kwargs)
