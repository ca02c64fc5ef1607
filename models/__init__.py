"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
    LocalDate,
    Count,
)
from models.tray import (
    TrayStatus,
    StepStatus,
    Recipe,
    ProductRecipe,
    Tray,
    TrayStep,
    HarvestStepRef,
    EligibleTray,
    EligibleTrays,
)
from models.order_gap import (
    FulfillmentStatus,
    VarietyState,
    RemediationOption,
    OrderGap,
    RecipeRequirement,
    VarietyStatus,
    GapReconciliation,
    GapListResponse,
)
from models.order_schedule import (
    ScheduleStatus,
    OrderSchedule,
    FinalizeDayResult,
)
from models.daily_task import TaskSource, DailyTask
from models.fulfillment_action import (
    FulfillmentActionType,
    FulfillmentActionCreate,
    FulfillmentAction,
    RecordActionResponse,
)
from models.soaked_seed import (
    SoakedSeed,
    UseSoakedSeedRequest,
    DiscardSoakedSeedRequest,
)
from models.session import FarmSession
from models.remediation import (
    ItemOutcome,
    TrayOutcome,
    HarvestStepChange,
    ReallocationPreview,
    EarlyHarvestPlan,
    BatchHarvestResult,
    RemediationDialogState,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "LocalDate",
    "Count",

    # Trays
    "TrayStatus",
    "StepStatus",
    "Recipe",
    "ProductRecipe",
    "Tray",
    "TrayStep",
    "HarvestStepRef",
    "EligibleTray",
    "EligibleTrays",

    # Gaps
    "FulfillmentStatus",
    "VarietyState",
    "RemediationOption",
    "OrderGap",
    "RecipeRequirement",
    "VarietyStatus",
    "GapReconciliation",
    "GapListResponse",

    # Schedules
    "ScheduleStatus",
    "OrderSchedule",
    "FinalizeDayResult",

    # Tasks
    "TaskSource",
    "DailyTask",

    # Fulfillment actions
    "FulfillmentActionType",
    "FulfillmentActionCreate",
    "FulfillmentAction",
    "RecordActionResponse",

    # Soaked seed
    "SoakedSeed",
    "UseSoakedSeedRequest",
    "DiscardSoakedSeedRequest",

    # Session
    "FarmSession",

    # Remediation
    "ItemOutcome",
    "TrayOutcome",
    "HarvestStepChange",
    "ReallocationPreview",
    "EarlyHarvestPlan",
    "BatchHarvestResult",
    "RemediationDialogState",
]
