"""
Session schema: the farm scope and identity every query runs under.
"""

from typing import Optional

from models.base import BaseSchema


class FarmSession(BaseSchema):
    farm_uuid: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    farm_name: str = "My Farm"
