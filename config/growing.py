"""
Growing and fulfillment constants.

Status vocabularies used by the trays, tray_steps and order_schedules tables,
plus the fixed labels the daily task stream and the remediation flows rely on.
"""

# =============================================================================
# TRAY LIFECYCLE
# =============================================================================

TRAY_ACTIVE = "active"
TRAY_HARVESTED = "harvested"
TRAY_LOST = "lost"

# =============================================================================
# TRAY STEPS
# =============================================================================

STEP_PENDING = "Pending"
STEP_COMPLETED = "Completed"

# A tray's scheduled harvest date comes from its pending step whose name
# contains this keyword (case-insensitive).
HARVEST_STEP_KEYWORD = "harvest"

# =============================================================================
# ORDER SCHEDULES
# =============================================================================

SCHEDULE_PENDING = "pending"
SCHEDULE_COMPLETED = "completed"
SCHEDULE_SKIPPED = "skipped"

KEEP_FOR_FUTURE_NOTES = "Skipped: tray kept for a future delivery"
CANCEL_DELIVERY_NOTES = "Cancelled: delivery cancelled from order gaps"
SKIP_DELIVERY_NOTES = "Skipped: no tray available for this delivery"

# =============================================================================
# DAILY TASKS
# =============================================================================

# Tasks whose action label contains this marker go through the
# fulfillment-action flow instead of direct completion.
AT_RISK_MARKER = "at risk"

HARVEST_ACTION = "Harvest"

# =============================================================================
# VARIETY NAMES
# =============================================================================

UNKNOWN_VARIETY = "Unknown"

# =============================================================================
# TRAY LOSS
# =============================================================================

LOSS_REASONS = [
    {"value": "disease", "label": "Disease", "description": "Fungal, bacterial, or viral infection"},
    {"value": "dried_out", "label": "Dried Out", "description": "Not watered / dehydration"},
    {"value": "bad_seed", "label": "Bad Seed", "description": "Poor germination or seed quality"},
    {"value": "mold", "label": "Mold", "description": "Mold growth on seeds or greens"},
    {"value": "pest", "label": "Pest Damage", "description": "Insects, gnats, or other pests"},
    {"value": "contamination", "label": "Contamination", "description": "Soil, water, or environmental contamination"},
    {"value": "overwatered", "label": "Overwatered", "description": "Root rot from excess water"},
    {"value": "temperature", "label": "Temperature Issue", "description": "Too hot or too cold"},
    {"value": "other", "label": "Other", "description": "Other reason (specify in notes)"},
]

LOSS_REASON_VALUES = frozenset(reason["value"] for reason in LOSS_REASONS)
