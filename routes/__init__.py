"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.order_gaps import router as order_gaps_router
from routes.remediation import router as remediation_router
from routes.fulfillment_actions import router as fulfillment_actions_router
from routes.soaked_seeds import router as soaked_seeds_router
from routes.trays import router as trays_router

__all__ = [
    "order_gaps_router",
    "remediation_router",
    "fulfillment_actions_router",
    "soaked_seeds_router",
    "trays_router",
]
