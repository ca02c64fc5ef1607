"""
Record adapter for rows coming back from the query layer.

The same logical key shows up under different names depending on the view
or RPC that produced the row (batchid / batch_id, trayid / tray_id / id,
farmUuid / farm_uuid). Rows are normalized here, right after each query,
so domain code only ever sees the canonical field names.
"""

from datetime import date, datetime
from typing import Any, Iterable, Optional
import structlog

logger = structlog.get_logger(__name__)

# canonical name -> accepted spellings, canonical first
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "tray_id": ("tray_id", "trayid", "trayId"),
    "tray_step_id": ("tray_step_id", "traystepid", "trayStepId"),
    "batch_id": ("batch_id", "batchid", "batchId"),
    "farm_uuid": ("farm_uuid", "farmUuid", "farmuuid"),
    "recipe_id": ("recipe_id", "recipeid", "recipeId"),
    "customer_id": ("customer_id", "customerid", "customerId"),
    "product_id": ("product_id", "productid", "productId"),
    "standing_order_id": ("standing_order_id", "standingorderid", "standingOrderId"),
    "user_id": ("user_id", "userid", "userId"),
    "soaked_seed_id": ("soaked_seed_id", "soaked_id", "soakedSeedId"),
    "scheduled_delivery_date": ("scheduled_delivery_date", "scheduledDeliveryDate"),
    "farm_name": ("farm_name", "farmname", "farmName"),
}


def normalize_row(row: dict, id_field: Optional[str] = None) -> dict:
    """
    Return a copy of row with aliased keys renamed to their canonical name.

    Args:
        row: Raw row from the query layer
        id_field: Canonical key a bare "id" column stands for, if any

    Returns:
        New dict with canonical keys; unknown keys are passed through
    """
    normalized = dict(row)

    for canonical, aliases in FIELD_ALIASES.items():
        if normalized.get(canonical) is not None:
            for alias in aliases[1:]:
                normalized.pop(alias, None)
            continue
        for alias in aliases[1:]:
            if alias in normalized:
                value = normalized.pop(alias)
                if value is not None and normalized.get(canonical) is None:
                    normalized[canonical] = value

    if id_field and normalized.get(id_field) is None and "id" in normalized:
        normalized[id_field] = normalized["id"]

    return normalized


def normalize_rows(rows: Optional[Iterable[dict]], id_field: Optional[str] = None) -> list[dict]:
    """Normalize every row of a query result (None is treated as no rows)."""
    return [normalize_row(row, id_field=id_field) for row in (rows or [])]


def parse_local_date(value: Any) -> Optional[date]:
    """
    Parse a date column as a calendar date, never shifting by timezone.

    Handles "2025-12-15", "2025-12-15T00:00:00Z", date and datetime values.
    Unparseable values are logged and return None rather than raising.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        logger.warning("unparseable_date", value=repr(value), value_type=type(value).__name__)
        return None

    date_part = value.strip().split("T")[0].split(" ")[0]
    try:
        return date.fromisoformat(date_part)
    except ValueError:
        logger.warning("unparseable_date", value=value)
        return None


def resolve_variety_name_from_relation(relation: Any) -> Optional[str]:
    """
    Pull a variety name out of an embedded relation.

    Embedded relations come back either as one object or as a list of objects
    depending on how the foreign key is declared.
    """
    if not relation:
        return None
    if isinstance(relation, list):
        for entry in relation:
            if isinstance(entry, dict) and entry.get("name"):
                return entry["name"]
        return None
    if isinstance(relation, dict):
        return relation.get("name") or None
    return None
