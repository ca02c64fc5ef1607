"""
Custom exception classes for the application.

Two families matter to callers:
    - transient errors (bad input, failed writes) shown as a dismissible notice
    - blocking errors (domain-rule violations such as not enough seed) that
      the operator has to acknowledge before continuing
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "TRAY_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
        blocking: True when the UI must show a blocking dialog
    """

    blocking = False

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "blocking": self.blocking,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SESSION / INPUT ERRORS
# ===================

class MissingFarmScopeError(ValidationError):
    """No farm identifier in the session or request."""

    def __init__(self):
        super().__init__(
            code="FARM_SCOPE_MISSING",
            message="No farm selected. Sign in again to continue."
        )


class EmptySelectionError(ValidationError):
    """Operation needs at least one selected item."""

    def __init__(self, what: str = "tray"):
        super().__init__(
            code="EMPTY_SELECTION",
            message=f"Select at least one {what} first",
            details={"selection": what}
        )


class InvalidQuantityError(ValidationError):
    """Quantity must be a positive number."""

    def __init__(self, field: str, value: Any):
        super().__init__(
            code="INVALID_QUANTITY",
            message=f"{field} must be greater than zero",
            details={"field": field, "provided": value}
        )


class ScheduleKeyRequiredError(ValidationError):
    """Order schedule writes need both parts of the composite key."""

    def __init__(self, standing_order_id: Any, delivery_date: Any):
        super().__init__(
            code="SCHEDULE_KEY_REQUIRED",
            message="A standing order and delivery date are both required",
            details={
                "standing_order_id": standing_order_id,
                "scheduled_delivery_date": str(delivery_date) if delivery_date else None,
            }
        )


class InvalidLossReasonError(ValidationError):
    """Unknown tray loss reason."""

    def __init__(self, reason: str, valid: list[str]):
        super().__init__(
            code="INVALID_LOSS_REASON",
            message=f"Unknown loss reason: {reason}",
            details={"provided": reason, "valid": valid}
        )


# ===================
# TRAY ERRORS
# ===================

class TrayNotFoundError(NotFoundError):
    """Tray not found in this farm."""

    def __init__(self, tray_id: Any):
        super().__init__(
            resource="Tray",
            identifier=str(tray_id),
            code="TRAY_NOT_FOUND"
        )


class HarvestStepNotFoundError(NotFoundError):
    """Tray has no pending harvest step."""

    def __init__(self, tray_step_id: Any):
        super().__init__(
            resource="Harvest step",
            identifier=str(tray_step_id),
            code="HARVEST_STEP_NOT_FOUND"
        )


# ===================
# SOAKED SEED ERRORS
# ===================

class SoakedSeedNotFoundError(NotFoundError):
    """Soaked seed lot not found."""

    def __init__(self, soaked_seed_id: Any):
        super().__init__(
            resource="Soaked seed",
            identifier=str(soaked_seed_id),
            code="SOAKED_SEED_NOT_FOUND"
        )


class InsufficientSeedError(ConflictError):
    """Not enough soaked seed left for the requested trays."""

    blocking = True

    def __init__(self, variety_name: str, requested: Any, available: Any):
        super().__init__(
            code="INSUFFICIENT_SEED",
            message=f"Not enough seed for {variety_name}",
            details={
                "variety_name": variety_name,
                "requested": requested,
                "available": available,
            }
        )


class SoakedSeedExpiredError(ConflictError):
    """Soaked seed lot is past its expiry."""

    blocking = True

    def __init__(self, soaked_seed_id: Any, expires_at: Any):
        super().__init__(
            code="SOAKED_SEED_EXPIRED",
            message="This soaked seed has expired and cannot be used",
            details={"soaked_seed_id": soaked_seed_id, "expires_at": str(expires_at)}
        )


# ===================
# RELOAD ERRORS
# ===================

class ReloadTimeoutError(AppError):
    """A reload exceeded the watchdog interval."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            code="RELOAD_TIMEOUT",
            message="Loading took too long and was restarted",
            status_code=504,
            details={"timeout_seconds": timeout_seconds}
        )
