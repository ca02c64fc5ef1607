"""
Order gap service — reconciles delivery shortfalls against tray supply.

Raw per-gap counts come from the order_gap_status view. This service drives
everything on top of them: eligible trays, per-variety breakdown and the
remediation options of each gap.

Reconciliation is batched. However many gaps are active, it runs the same
fixed set of bulk queries:
    1. order_gap_status (the gaps themselves)
    2. product_recipe_mapping for the union of product ids
    3. active trays for the union of recipe ids
    4. recipes for the union of recipe ids
    5. pending harvest steps for every loaded tray
    6. order_fulfillment_status for the union of delivery dates / customers
and derives each gap from in-memory lookup maps.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional
import time
import structlog

from config import get_supabase_client, settings
from exceptions import DatabaseError
from models.order_gap import (
    GapListResponse,
    GapReconciliation,
    OrderGap,
    RecipeRequirement,
    RemediationOption,
)
from models.tray import HarvestStepRef, Recipe, Tray
from services.tray_eligibility_service import classify_trays, get_tray_eligibility_service
from services.variety_breakdown_service import compute_gap_breakdown
from utils.record_adapter import normalize_rows

logger = structlog.get_logger(__name__)


# ===================
# RECENTLY RESOLVED GAPS
# ===================

class RecentlyResolvedGaps:
    """
    Short-lived suppression set keyed by (customer_id, product_id).

    After an operator resolves a gap, the next reloads may still see it
    because the write has not shown up in the summary view yet. Gaps marked
    here are hidden until the TTL runs out. Owned by one session and passed
    in explicitly; there is no module-level instance.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = settings.resolved_gap_suppression_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._resolved_at: dict[tuple[int, int], float] = {}

    def mark(self, customer_id: int, product_id: int) -> None:
        self._resolved_at[(customer_id, product_id)] = self._clock()
        logger.debug("gap_marked_resolved", customer_id=customer_id, product_id=product_id)

    def is_suppressed(self, customer_id: int, product_id: int) -> bool:
        key = (customer_id, product_id)
        resolved_at = self._resolved_at.get(key)
        if resolved_at is None:
            return False
        if self._clock() - resolved_at >= self.ttl_seconds:
            del self._resolved_at[key]
            return False
        return True

    def prune(self) -> None:
        """Drop expired entries."""
        for customer_id, product_id in list(self._resolved_at):
            self.is_suppressed(customer_id, product_id)

    def filter(self, gaps: Iterable[OrderGap]) -> tuple[list[OrderGap], int]:
        """
        Split gaps into visible ones and a count of suppressed ones.

        Returns:
            (visible_gaps, suppressed_count)
        """
        visible = []
        suppressed = 0
        for gap in gaps:
            if self.is_suppressed(*gap.resolution_key):
                suppressed += 1
            else:
                visible.append(gap)
        return visible, suppressed

    def __len__(self) -> int:
        self.prune()
        return len(self._resolved_at)


# ===================
# LOOKUP CONTEXT
# ===================

@dataclass
class GapContext:
    """In-memory lookup maps shared by every gap of one reconciliation pass."""

    product_recipes: dict[int, list[int]] = field(default_factory=dict)
    trays: list[Tray] = field(default_factory=list)
    recipes: dict[int, Recipe] = field(default_factory=dict)
    harvest_steps: dict[int, HarvestStepRef] = field(default_factory=dict)
    requirements: dict[tuple[Optional[date], Optional[str]], list[RecipeRequirement]] = field(
        default_factory=dict
    )
    query_count: int = 0

    def requirements_for(self, gap: OrderGap) -> list[RecipeRequirement]:
        return self.requirements.get((gap.effective_delivery_date, gap.customer_name), [])


class GapService:
    """
    Order gap business logic.

    Loads active gaps and reconciles them with tray supply in one batched
    pass.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.tray_service = get_tray_eligibility_service()
        self.gap_view = "order_gap_status"
        self.fulfillment_view = "order_fulfillment_status"

    # ===================
    # READ OPERATIONS
    # ===================

    def fetch_order_gaps(self, farm_uuid: str) -> list[OrderGap]:
        """
        All rows of the gap summary view for a farm.

        Args:
            farm_uuid: Farm scope

        Returns:
            List of OrderGap (including rows with gap <= 0)
        """
        logger.debug("fetching_order_gaps", farm_uuid=farm_uuid)

        try:
            result = self.db.table(self.gap_view).select("*").eq(
                "farm_uuid", farm_uuid
            ).execute()
        except Exception as e:
            logger.error("fetch_order_gaps_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("select", str(e))

        return [OrderGap(**row) for row in normalize_rows(result.data)]

    def get_active_gaps(
        self,
        farm_uuid: str,
        resolved: Optional[RecentlyResolvedGaps] = None,
    ) -> tuple[list[OrderGap], int]:
        """
        Gaps with a positive shortfall, minus recently resolved ones.

        Returns:
            (active_gaps, suppressed_count)
        """
        gaps = [gap for gap in self.fetch_order_gaps(farm_uuid) if gap.is_active]
        if resolved is None:
            return gaps, 0
        return resolved.filter(gaps)

    def fetch_requirements(
        self,
        farm_uuid: str,
        delivery_dates: Iterable[date],
        customer_names: Iterable[str],
    ) -> dict[tuple[Optional[date], Optional[str]], list[RecipeRequirement]]:
        """
        Per-recipe fulfillment rows for many deliveries at once.

        Returns:
            (delivery_date, customer_name) → [RecipeRequirement]
        """
        dates = sorted({d.isoformat() for d in delivery_dates if d is not None})
        names = sorted({n for n in customer_names if n})
        if not dates or not names:
            return {}

        try:
            result = self.db.table(self.fulfillment_view).select("*").eq(
                "farm_uuid", farm_uuid
            ).in_(
                "delivery_date", dates
            ).in_(
                "customer_name", names
            ).execute()
        except Exception as e:
            logger.error("fetch_requirements_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("select", str(e))

        grouped: dict[tuple[Optional[date], Optional[str]], list[RecipeRequirement]] = {}
        for row in normalize_rows(result.data):
            requirement = RecipeRequirement(**row)
            key = (requirement.delivery_date, requirement.customer_name)
            grouped.setdefault(key, []).append(requirement)
        return grouped

    # ===================
    # RECONCILIATION
    # ===================

    def build_context(self, farm_uuid: str, gaps: list[OrderGap]) -> GapContext:
        """
        Run the bulk queries for a set of gaps and index the results.

        The number of queries does not depend on len(gaps).
        """
        context = GapContext()
        if not gaps:
            return context

        product_ids = {gap.product_id for gap in gaps}
        context.product_recipes = self.tray_service.get_recipe_ids_for_products(product_ids)
        context.query_count += 1

        recipe_ids = {rid for rids in context.product_recipes.values() for rid in rids}
        if recipe_ids:
            context.trays = self.tray_service.get_active_trays(farm_uuid, recipe_ids)
            context.recipes = self.tray_service.get_recipes(farm_uuid, recipe_ids)
            context.query_count += 2

        if context.trays:
            context.harvest_steps = self.tray_service.get_pending_harvest_steps(
                tray.tray_id for tray in context.trays
            )
            context.query_count += 1

        context.requirements = self.fetch_requirements(
            farm_uuid,
            (gap.effective_delivery_date for gap in gaps),
            (gap.customer_name for gap in gaps),
        )
        context.query_count += 1

        logger.info(
            "gap_context_built",
            farm_uuid=farm_uuid,
            gaps=len(gaps),
            products=len(product_ids),
            trays=len(context.trays),
            queries=context.query_count,
        )
        return context

    def reconcile_gap(
        self,
        gap: OrderGap,
        context: GapContext,
        reference_date: date,
    ) -> GapReconciliation:
        """Derive one gap's trays, breakdown and options purely from lookups."""
        recipe_ids = context.product_recipes.get(gap.product_id, [])

        eligible = classify_trays(
            context.trays,
            context.harvest_steps,
            recipe_ids,
            reference_date,
            customer_id=gap.customer_id,
            recipes=context.recipes,
        )

        recipe_set = set(recipe_ids)
        requirements = [r for r in context.requirements_for(gap) if r.recipe_id in recipe_set]

        # Customer's own trays first so they represent the recipe
        ready_trays = eligible.ready_for_customer + eligible.ready

        breakdown = compute_gap_breakdown(
            gap,
            eligible.mismatched,
            ready_trays,
            requirements,
        )

        options: list[RemediationOption] = []
        if eligible.ready:
            options.append(RemediationOption.ASSIGN_TRAY)
        if eligible.mismatched:
            options.append(RemediationOption.HARVEST_EARLY)
        if gap.standing_order_id is not None and gap.effective_delivery_date is not None:
            options.append(RemediationOption.SKIP_DELIVERY)

        return GapReconciliation(
            gap=gap,
            recipe_ids=recipe_ids,
            ready_trays=eligible.ready_for_customer,
            mismatched_trays=eligible.mismatched,
            unassigned_trays=eligible.ready,
            requirements=requirements,
            breakdown=breakdown,
            options=options,
        )

    def reconcile(
        self,
        farm_uuid: str,
        reference_date: Optional[date] = None,
        resolved: Optional[RecentlyResolvedGaps] = None,
    ) -> GapListResponse:
        """
        Load and reconcile every active gap of a farm.

        Args:
            farm_uuid: Farm scope
            reference_date: "Today" (defaults to date.today())
            resolved: Session's recently-resolved set, if any

        Returns:
            GapListResponse ordered by delivery date, then customer
        """
        reference_date = reference_date or date.today()
        logger.info("reconciling_gaps", farm_uuid=farm_uuid, reference_date=str(reference_date))

        gaps, suppressed = self.get_active_gaps(farm_uuid, resolved)
        context = self.build_context(farm_uuid, gaps)

        reconciled = [self.reconcile_gap(gap, context, reference_date) for gap in gaps]
        reconciled.sort(key=lambda r: (
            r.gap.effective_delivery_date or date.max,
            r.gap.customer_name or "",
            r.gap.product_name or "",
        ))

        logger.info(
            "gaps_reconciled",
            farm_uuid=farm_uuid,
            active=len(reconciled),
            suppressed=suppressed,
            queries=context.query_count + 1,
        )

        return GapListResponse(
            data=reconciled,
            total=len(reconciled),
            suppressed=suppressed,
            query_count=context.query_count + 1,
        )


# Singleton instance
_gap_service: Optional[GapService] = None


def get_gap_service() -> GapService:
    """Get the singleton gap service instance."""
    global _gap_service
    if _gap_service is None:
        _gap_service = GapService()
    return _gap_service
