"""
Business logic services.

Each service handles one domain area.
"""

from services.tray_eligibility_service import TrayEligibilityService, get_tray_eligibility_service
from services.gap_service import GapService, RecentlyResolvedGaps, get_gap_service
from services.variety_breakdown_service import build_variety_breakdown, compute_gap_breakdown
from services.remediation_service import RemediationService, RemediationFlow, get_remediation_service
from services.fulfillment_action_service import FulfillmentActionService, get_fulfillment_action_service
from services.soaked_seed_service import SoakedSeedService, get_soaked_seed_service
from services.tray_service import TrayService, get_tray_service
from services.activity_service import ActivityService, get_activity_service
from services.session_service import SessionService, get_session_service

__all__ = [
    "TrayEligibilityService",
    "get_tray_eligibility_service",
    "GapService",
    "RecentlyResolvedGaps",
    "get_gap_service",
    "build_variety_breakdown",
    "compute_gap_breakdown",
    "RemediationService",
    "RemediationFlow",
    "get_remediation_service",
    "FulfillmentActionService",
    "get_fulfillment_action_service",
    "SoakedSeedService",
    "get_soaked_seed_service",
    "TrayService",
    "get_tray_service",
    "ActivityService",
    "get_activity_service",
    "SessionService",
    "get_session_service",
]
