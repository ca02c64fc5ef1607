"""
Tray eligibility — which trays can cover a product for a customer.

Partitions active trays into:
    - ready (unassigned, sow date inside the ready window)
    - ready_for_customer (assigned, harvest step due today or earlier)
    - mismatched (assigned, harvest step after today, and no ready tray of
      the same recipe for that customer)

The ready window is a fixed band around today, not a per-recipe growth
model: sow_date in [today - lookback, today + lookahead].
"""

from datetime import date, timedelta
from typing import Iterable, Optional
import structlog

from config import get_supabase_client, settings
from config.growing import HARVEST_STEP_KEYWORD, STEP_PENDING, TRAY_ACTIVE, UNKNOWN_VARIETY
from exceptions import DatabaseError, ValidationError
from models.tray import (
    EligibleTray,
    EligibleTrays,
    HarvestStepRef,
    ProductRecipe,
    Recipe,
    Tray,
    TrayStep,
)
from utils.record_adapter import normalize_rows

logger = structlog.get_logger(__name__)


# ===================
# PURE CALCULATIONS
# ===================

def is_in_ready_window(
    sow_date: Optional[date],
    reference_date: date,
    lookback_days: Optional[int] = None,
    lookahead_days: Optional[int] = None,
) -> bool:
    """
    Check whether a sow date falls inside the ready window (inclusive).

    A tray without a sow date is never inside the window.
    """
    if sow_date is None:
        return False
    if lookback_days is None:
        lookback_days = settings.ready_window_lookback_days
    if lookahead_days is None:
        lookahead_days = settings.ready_window_lookahead_days

    earliest = reference_date - timedelta(days=lookback_days)
    latest = reference_date + timedelta(days=lookahead_days)
    return earliest <= sow_date <= latest


def growth_progress(
    sow_date: Optional[date],
    reference_date: date,
    cycle_days: int,
) -> tuple[Optional[int], Optional[int]]:
    """
    Days grown so far and days left until the cycle completes.

    Returns:
        (days_grown, days_until_ready); both None without a sow date.
        days_until_ready never goes below zero.
    """
    if sow_date is None:
        return None, None
    days_grown = (reference_date - sow_date).days
    return days_grown, max(0, cycle_days - days_grown)


def enrich_tray(
    tray: Tray,
    recipe: Optional[Recipe],
    harvest_step: Optional[HarvestStepRef],
    reference_date: date,
    nominal_cycle_days: Optional[int] = None,
) -> EligibleTray:
    """Attach display name, harvest step and growth progress to a tray."""
    if nominal_cycle_days is None:
        nominal_cycle_days = settings.nominal_cycle_days

    cycle_days = nominal_cycle_days
    if recipe is not None and recipe.total_days:
        cycle_days = recipe.total_days

    days_grown, days_until_ready = growth_progress(tray.sow_date, reference_date, cycle_days)

    return EligibleTray(
        tray_id=tray.tray_id,
        recipe_id=tray.recipe_id,
        recipe_name=recipe.recipe_name if recipe else None,
        variety_name=recipe.display_name if recipe else UNKNOWN_VARIETY,
        customer_id=tray.customer_id,
        sow_date=tray.sow_date,
        tray_step_id=harvest_step.tray_step_id if harvest_step else None,
        scheduled_harvest_date=harvest_step.scheduled_date if harvest_step else None,
        cycle_days=cycle_days,
        days_grown=days_grown,
        days_until_ready=days_until_ready,
    )


def classify_trays(
    trays: Iterable[Tray],
    harvest_steps: dict[int, HarvestStepRef],
    recipe_ids: Iterable[int],
    reference_date: date,
    customer_id: Optional[int] = None,
    recipes: Optional[dict[int, Recipe]] = None,
    lookback_days: Optional[int] = None,
    lookahead_days: Optional[int] = None,
    nominal_cycle_days: Optional[int] = None,
) -> EligibleTrays:
    """
    Partition trays for one target recipe set (and optionally one customer).

    Args:
        trays: Candidate trays (any status; non-growing ones are ignored)
        harvest_steps: tray_id → pending harvest step
        recipe_ids: Recipes that satisfy the target product
        reference_date: "Today"
        customer_id: Customer whose assigned trays are classified
        recipes: recipe_id → Recipe, for names and cycle length

    Returns:
        EligibleTrays. A recipe with any ready_for_customer tray never has
        mismatched trays in the result.
    """
    recipe_set = set(recipe_ids)
    recipes = recipes or {}

    ready: list[EligibleTray] = []
    ready_for_customer: list[EligibleTray] = []
    mismatch_candidates: list[EligibleTray] = []

    for tray in trays:
        if not tray.is_growing or tray.recipe_id not in recipe_set:
            continue

        step = harvest_steps.get(tray.tray_id)
        enriched = enrich_tray(
            tray,
            recipes.get(tray.recipe_id),
            step,
            reference_date,
            nominal_cycle_days,
        )

        if tray.customer_id is None:
            if is_in_ready_window(tray.sow_date, reference_date, lookback_days, lookahead_days):
                ready.append(enriched)
            continue

        if customer_id is None or tray.customer_id != customer_id:
            continue

        # Assigned trays are judged by their harvest step, not by sow date
        if step is None or step.scheduled_date is None:
            continue

        if step.scheduled_date <= reference_date:
            ready_for_customer.append(enriched)
        else:
            mismatch_candidates.append(enriched)

    covered_recipes = {t.recipe_id for t in ready_for_customer}
    mismatched = [t for t in mismatch_candidates if t.recipe_id not in covered_recipes]

    return EligibleTrays(
        ready=ready,
        mismatched=mismatched,
        ready_for_customer=ready_for_customer,
    )


# ===================
# SERVICE
# ===================

class TrayEligibilityService:
    """
    Loads trays, recipes, product mappings and harvest steps in bulk and
    classifies them. Every loader takes the full id set so callers never
    query per gap.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.tray_table = "trays"
        self.recipe_table = "recipes"
        self.mapping_table = "product_recipe_mapping"
        self.step_table = "tray_steps"

    # ===================
    # BULK LOADERS
    # ===================

    def get_recipe_ids_for_products(self, product_ids: Iterable[int]) -> dict[int, list[int]]:
        """
        Map each product to its recipes (a mix maps to several).

        Args:
            product_ids: Products to look up

        Returns:
            product_id → [recipe_id], in mapping order, no duplicates
        """
        product_ids = sorted(set(product_ids))
        if not product_ids:
            return {}

        try:
            result = self.db.table(self.mapping_table).select(
                "product_id, recipe_id"
            ).in_("product_id", product_ids).execute()
        except Exception as e:
            logger.error("get_product_recipes_failed", error=str(e))
            raise DatabaseError("select", str(e))

        mapping: dict[int, list[int]] = {}
        for row in normalize_rows(result.data):
            link = ProductRecipe(**row)
            recipes = mapping.setdefault(link.product_id, [])
            if link.recipe_id not in recipes:
                recipes.append(link.recipe_id)

        logger.debug("product_recipes_loaded", products=len(mapping))
        return mapping

    def get_active_trays(self, farm_uuid: str, recipe_ids: Iterable[int]) -> list[Tray]:
        """
        Active, unharvested trays of the given recipes, oldest sow date first.

        Args:
            farm_uuid: Farm scope
            recipe_ids: Recipes to include

        Returns:
            List of Tray
        """
        recipe_ids = sorted(set(recipe_ids))
        if not recipe_ids:
            return []

        try:
            result = self.db.table(self.tray_table).select(
                "tray_id, farm_uuid, recipe_id, sow_date, customer_id, customer_name, status, harvest_date"
            ).eq(
                "farm_uuid", farm_uuid
            ).eq(
                "status", TRAY_ACTIVE
            ).is_(
                "harvest_date", "null"
            ).in_(
                "recipe_id", recipe_ids
            ).order("sow_date", desc=False).execute()
        except Exception as e:
            logger.error("get_active_trays_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("select", str(e))

        trays = [Tray(**row) for row in normalize_rows(result.data, id_field="tray_id")]
        logger.debug("active_trays_loaded", farm_uuid=farm_uuid, count=len(trays))
        return trays

    def get_recipes(self, farm_uuid: str, recipe_ids: Iterable[int]) -> dict[int, Recipe]:
        """Recipes by id, with the linked variety relation embedded."""
        recipe_ids = sorted(set(recipe_ids))
        if not recipe_ids:
            return {}

        try:
            result = self.db.table(self.recipe_table).select(
                "recipe_id, recipe_name, variety_name, total_days, varieties(name)"
            ).eq(
                "farm_uuid", farm_uuid
            ).in_("recipe_id", recipe_ids).execute()
        except Exception as e:
            logger.error("get_recipes_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("select", str(e))

        return {
            row["recipe_id"]: Recipe(**row)
            for row in normalize_rows(result.data, id_field="recipe_id")
        }

    def get_pending_harvest_steps(self, tray_ids: Iterable[int]) -> dict[int, HarvestStepRef]:
        """
        Earliest pending harvest step of each tray.

        Returns:
            tray_id → HarvestStepRef; trays without one are absent
        """
        tray_ids = sorted(set(tray_ids))
        if not tray_ids:
            return {}

        try:
            result = self.db.table(self.step_table).select(
                "tray_step_id, tray_id, step_name, scheduled_date, status"
            ).in_(
                "tray_id", tray_ids
            ).eq(
                "status", STEP_PENDING
            ).ilike(
                "step_name", f"%{HARVEST_STEP_KEYWORD}%"
            ).order("scheduled_date", desc=False).execute()
        except Exception as e:
            logger.error("get_harvest_steps_failed", error=str(e))
            raise DatabaseError("select", str(e))

        steps: dict[int, HarvestStepRef] = {}
        for row in normalize_rows(result.data, id_field="tray_step_id"):
            step = TrayStep(**row)
            if not step.is_pending_harvest or step.tray_id in steps:
                continue  # first (earliest) wins
            steps[step.tray_id] = HarvestStepRef(
                tray_step_id=step.tray_step_id,
                scheduled_date=step.scheduled_date,
            )
        return steps

    # ===================
    # RESOLUTION
    # ===================

    def resolve_eligible_trays(
        self,
        farm_uuid: str,
        product_id: Optional[int] = None,
        recipe_ids: Optional[Iterable[int]] = None,
        reference_date: Optional[date] = None,
        customer_id: Optional[int] = None,
    ) -> EligibleTrays:
        """
        Resolve candidate trays for a product (or explicit recipe set).

        Args:
            farm_uuid: Farm scope
            product_id: Target product; its recipes come from the mapping
            recipe_ids: Target recipes, used when no product is given
            reference_date: "Today" (defaults to date.today())
            customer_id: Customer whose assigned trays are classified

        Returns:
            EligibleTrays

        Raises:
            ValidationError: If neither product_id nor recipe_ids is given
        """
        if product_id is None and recipe_ids is None:
            raise ValidationError(
                "A product or a set of recipes is required",
                code="ELIGIBILITY_TARGET_REQUIRED"
            )

        reference_date = reference_date or date.today()

        if product_id is not None:
            targets = self.get_recipe_ids_for_products([product_id]).get(product_id, [])
        else:
            targets = list(recipe_ids)

        logger.info(
            "resolving_eligible_trays",
            farm_uuid=farm_uuid,
            product_id=product_id,
            recipes=len(targets),
            customer_id=customer_id,
        )

        trays = self.get_active_trays(farm_uuid, targets)
        recipes = self.get_recipes(farm_uuid, targets)
        steps = self.get_pending_harvest_steps(t.tray_id for t in trays)

        eligible = classify_trays(
            trays,
            steps,
            targets,
            reference_date,
            customer_id=customer_id,
            recipes=recipes,
        )

        logger.info(
            "eligible_trays_resolved",
            ready=len(eligible.ready),
            mismatched=len(eligible.mismatched),
            ready_for_customer=len(eligible.ready_for_customer),
        )
        return eligible


# Singleton instance
_tray_eligibility_service: Optional[TrayEligibilityService] = None


def get_tray_eligibility_service() -> TrayEligibilityService:
    """Get the singleton tray eligibility service instance."""
    global _tray_eligibility_service
    if _tray_eligibility_service is None:
        _tray_eligibility_service = TrayEligibilityService()
    return _tray_eligibility_service
