"""
Custom exceptions module.

Services raise these; routes turn them into JSON via AppError.to_dict().
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Session / input
    MissingFarmScopeError,
    EmptySelectionError,
    InvalidQuantityError,
    ScheduleKeyRequiredError,
    InvalidLossReasonError,

    # Trays
    TrayNotFoundError,
    HarvestStepNotFoundError,

    # Soaked seed
    SoakedSeedNotFoundError,
    InsufficientSeedError,
    SoakedSeedExpiredError,

    # Reload
    ReloadTimeoutError,
)

__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",
    "MissingFarmScopeError",
    "EmptySelectionError",
    "InvalidQuantityError",
    "ScheduleKeyRequiredError",
    "InvalidLossReasonError",
    "TrayNotFoundError",
    "HarvestStepNotFoundError",
    "SoakedSeedNotFoundError",
    "InsufficientSeedError",
    "SoakedSeedExpiredError",
    "ReloadTimeoutError",
]
