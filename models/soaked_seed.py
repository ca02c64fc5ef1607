"""
Soaked seed lot schemas.

Leftover soak inventory is consumed by ad-hoc tray creation or discarded.
"""

from pydantic import Field
from datetime import date
from typing import Optional
from decimal import Decimal

from models.base import BaseSchema, LocalDate


class SoakedSeed(BaseSchema):
    """Soaked seed lot."""

    soaked_seed_id: int
    farm_uuid: Optional[str] = None
    variety_name: Optional[str] = None
    quantity_remaining: Decimal = Decimal("0")
    unit: str = "g"
    soak_date: LocalDate = None
    expires_at: LocalDate = None
    request_id: Optional[int] = None
    status: Optional[str] = None

    def is_expired(self, today: date) -> bool:
        return self.expires_at is not None and self.expires_at < today


class UseSoakedSeedRequest(BaseSchema):
    """Create trays from a leftover lot."""
    quantity_trays: int = Field(..., description="Number of trays to create")
    request_id: Optional[int] = None


class DiscardSoakedSeedRequest(BaseSchema):
    """Throw away a leftover lot."""
    reason: str = Field(..., min_length=1, max_length=500)
