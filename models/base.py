"""
Base schemas and shared field types for all models.
"""

from pydantic import BaseModel, BeforeValidator, ConfigDict
from datetime import date, datetime
from typing import Annotated, Any, Optional

from utils.record_adapter import parse_local_date


def _zero_if_none(value: Any) -> Any:
    return 0 if value is None else value


# Calendar date column: accepts "YYYY-MM-DD", ISO timestamps, date/datetime.
LocalDate = Annotated[Optional[date], BeforeValidator(parse_local_date)]

# Count column from an aggregate view; NULL means zero.
Count = Annotated[int, BeforeValidator(_zero_if_none)]


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
        - Ignore columns a model does not declare
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="ignore"
    )


class TimestampMixin(BaseModel):
    """Add creation timestamp to response models."""
    created_at: Optional[datetime] = None
