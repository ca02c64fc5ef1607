"""
Remediation operations for order gaps.

Every write here is a single-row update with no transaction around it.
Multi-tray operations are best-effort loops: the first failure stops the
loop, writes already applied are kept, and the caller gets a per-tray
outcome list instead of an exception.

Gap resolution is never written anywhere; a resolved gap simply stops
showing up on the next reconciliation.
"""

from datetime import date
from typing import Any, Callable, Iterable, Optional
import structlog

from config import get_supabase_client
from config.growing import (
    CANCEL_DELIVERY_NOTES,
    HARVEST_ACTION,
    KEEP_FOR_FUTURE_NOTES,
    SCHEDULE_COMPLETED,
    SCHEDULE_PENDING,
    SCHEDULE_SKIPPED,
    SKIP_DELIVERY_NOTES,
    STEP_COMPLETED,
    STEP_PENDING,
    TRAY_HARVESTED,
)
from exceptions import (
    AppError,
    DatabaseError,
    EmptySelectionError,
    HarvestStepNotFoundError,
    MissingFarmScopeError,
    ScheduleKeyRequiredError,
    TrayNotFoundError,
    ValidationError,
)
from models.daily_task import DailyTask, TaskSource
from models.fulfillment_action import FulfillmentActionCreate
from models.order_gap import OrderGap, VarietyStatus
from models.order_schedule import FinalizeDayResult, OrderSchedule
from models.remediation import (
    AssignDialog,
    BatchHarvestResult,
    EarlyHarvestDialog,
    EarlyHarvestPlan,
    FulfillmentActionDialog,
    HarvestStepChange,
    ItemOutcome,
    NoDialog,
    ReallocateDialog,
    ReallocationPreview,
    RemediationDialogState,
    SkipDialog,
    TrayOutcome,
)
from models.tray import EligibleTray, TrayStep
from services.activity_service import get_activity_service
from services.fulfillment_action_service import (
    get_fulfillment_action_service,
    requires_fulfillment_action,
)
from services.gap_service import RecentlyResolvedGaps
from utils.record_adapter import normalize_row, normalize_rows

logger = structlog.get_logger(__name__)

ScheduleKey = tuple[int, date]


def _require_farm(farm_uuid: Optional[str]) -> str:
    if not farm_uuid:
        raise MissingFarmScopeError()
    return farm_uuid


def run_best_effort(
    items: Iterable[Any],
    write: Callable[[Any], Any],
    operation: str,
    tray_id_of: Optional[Callable[[Any], int]] = None,
) -> list[TrayOutcome]:
    """
    Apply a write to each item in order until one fails.

    Args:
        items: Tray ids, or records carrying one
        write: Called with each item; raising AppError marks a failure
        operation: Name used in log events
        tray_id_of: Extracts the tray id reported for an item (default: the item itself)

    Returns:
        One TrayOutcome per item: ok, error (the failing one), or skipped
        (everything after the failure)
    """
    outcomes: list[TrayOutcome] = []
    failed = False

    for item in items:
        tray_id = tray_id_of(item) if tray_id_of else item
        if failed:
            outcomes.append(TrayOutcome(tray_id=tray_id, outcome=ItemOutcome.SKIPPED))
            continue
        try:
            write(item)
            outcomes.append(TrayOutcome(tray_id=tray_id, outcome=ItemOutcome.OK))
        except AppError as e:
            failed = True
            logger.warning(
                "best_effort_item_failed",
                operation=operation,
                tray_id=tray_id,
                error=e.message,
            )
            outcomes.append(TrayOutcome(tray_id=tray_id, outcome=ItemOutcome.ERROR, error=e.message))

    return outcomes


class RemediationService:
    """
    Writes behind the remediation buttons of the gap view.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.activity = get_activity_service()
        self.tray_table = "trays"
        self.step_table = "tray_steps"
        self.schedule_table = "order_schedules"

    # ===================
    # ASSIGN
    # ===================

    def assign_tray(self, farm_uuid: str, tray_id: int, customer_id: int) -> bool:
        """
        Assign an unassigned tray to a customer.

        Idempotent: assigning the same tray to the same customer again is a
        no-op update.

        Raises:
            MissingFarmScopeError: If farm_uuid is empty
            TrayNotFoundError: If the tray is not in this farm
            DatabaseError: If the update fails
        """
        _require_farm(farm_uuid)
        logger.info("assigning_tray", tray_id=tray_id, customer_id=customer_id)

        try:
            result = self.db.table(self.tray_table).update({
                "customer_id": customer_id
            }).eq(
                "tray_id", tray_id
            ).eq(
                "farm_uuid", farm_uuid
            ).execute()
        except Exception as e:
            logger.error("assign_tray_failed", tray_id=tray_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise TrayNotFoundError(tray_id)

        logger.info("tray_assigned", tray_id=tray_id, customer_id=customer_id)
        self.activity.log_activity(
            farm_uuid,
            "tray_assigned",
            f"Tray {tray_id} assigned to customer {customer_id}",
            {"tray_id": tray_id, "customer_id": customer_id},
        )
        return True

    # ===================
    # HARVEST EARLY
    # ===================

    def get_next_pending_delivery(
        self,
        farm_uuid: str,
        standing_order_id: int,
        reference_date: date,
    ) -> Optional[OrderSchedule]:
        """Next pending occurrence of a standing order strictly after reference_date."""
        try:
            result = self.db.table(self.schedule_table).select("*").eq(
                "farm_uuid", farm_uuid
            ).eq(
                "standing_order_id", standing_order_id
            ).gt(
                "scheduled_delivery_date", reference_date.isoformat()
            ).eq(
                "status", SCHEDULE_PENDING
            ).order("scheduled_delivery_date", desc=False).limit(1).execute()
        except Exception as e:
            logger.error("next_delivery_lookup_failed", standing_order_id=standing_order_id, error=str(e))
            raise DatabaseError("select", str(e))

        rows = normalize_rows(result.data, id_field="schedule_id")
        return OrderSchedule(**rows[0]) if rows else None

    def open_reallocation_confirm(
        self,
        farm_uuid: str,
        gap: OrderGap,
        tray: EligibleTray,
        reference_date: Optional[date] = None,
    ) -> ReallocationPreview:
        """
        Preview moving a tray's harvest to today.

        The next pending delivery of the same standing order is returned so
        the operator sees which future delivery loses this tray. Nothing is
        written.
        """
        _require_farm(farm_uuid)
        reference_date = reference_date or date.today()

        next_delivery = None
        if gap.standing_order_id is not None:
            next_delivery = self.get_next_pending_delivery(farm_uuid, gap.standing_order_id, reference_date)

        logger.info(
            "reallocation_previewed",
            tray_id=tray.tray_id,
            standing_order_id=gap.standing_order_id,
            next_delivery=str(next_delivery.scheduled_delivery_date) if next_delivery else None,
        )

        return ReallocationPreview(
            gap=gap,
            tray=tray,
            original_harvest_date=tray.scheduled_harvest_date,
            next_delivery=next_delivery,
        )

    def get_farm_pending_step(
        self,
        farm_uuid: str,
        tray_step_id: int,
        tray_id: Optional[int] = None,
    ) -> TrayStep:
        """
        Load a pending step whose tray belongs to the farm.

        tray_steps has no farm column; ownership goes through the tray.

        Args:
            farm_uuid: Farm scope
            tray_step_id: Step to load
            tray_id: Tray the caller expects the step to belong to, if known

        Raises:
            HarvestStepNotFoundError: If no pending step with this id belongs
                to the farm (or to the expected tray)
        """
        _require_farm(farm_uuid)

        try:
            result = self.db.table(self.step_table).select(
                "tray_step_id, tray_id, step_name, scheduled_date, status"
            ).eq(
                "tray_step_id", tray_step_id
            ).eq(
                "status", STEP_PENDING
            ).limit(1).execute()
        except Exception as e:
            logger.error("harvest_step_lookup_failed", tray_step_id=tray_step_id, error=str(e))
            raise DatabaseError("select", str(e))

        rows = normalize_rows(result.data, id_field="tray_step_id")
        if not rows:
            raise HarvestStepNotFoundError(tray_step_id)
        step = TrayStep(**rows[0])

        if tray_id is not None and step.tray_id != tray_id:
            logger.warning("harvest_step_tray_mismatch", tray_step_id=tray_step_id, tray_id=tray_id)
            raise HarvestStepNotFoundError(tray_step_id)

        try:
            owner = self.db.table(self.tray_table).select("tray_id").eq(
                "tray_id", step.tray_id
            ).eq(
                "farm_uuid", farm_uuid
            ).limit(1).execute()
        except Exception as e:
            logger.error("harvest_step_owner_lookup_failed", tray_step_id=tray_step_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not owner.data:
            logger.warning("harvest_step_outside_farm", tray_step_id=tray_step_id, farm_uuid=farm_uuid)
            raise HarvestStepNotFoundError(tray_step_id)

        return step

    def _set_step_date(self, tray_step_id: int, scheduled_date: Optional[date]) -> None:
        try:
            result = self.db.table(self.step_table).update({
                "scheduled_date": scheduled_date.isoformat() if scheduled_date else None
            }).eq(
                "tray_step_id", tray_step_id
            ).eq(
                "status", STEP_PENDING
            ).execute()
        except Exception as e:
            logger.error("harvest_step_update_failed", tray_step_id=tray_step_id, error=str(e))
            raise DatabaseError("update", str(e))

        # Completed between the lookup and the write
        if not result.data:
            raise HarvestStepNotFoundError(tray_step_id)

    def update_harvest_step_to_today(
        self,
        farm_uuid: str,
        tray_step_id: int,
        reference_date: Optional[date] = None,
        tray_id: Optional[int] = None,
    ) -> HarvestStepChange:
        """
        Move a pending harvest step of this farm to today.

        Returns:
            HarvestStepChange carrying the original date for a later revert

        Raises:
            MissingFarmScopeError: If farm_uuid is empty
            HarvestStepNotFoundError: If the step is not pending or not in this farm
            DatabaseError: If the read or update fails
        """
        reference_date = reference_date or date.today()
        step = self.get_farm_pending_step(farm_uuid, tray_step_id, tray_id=tray_id)

        change = HarvestStepChange(
            tray_step_id=tray_step_id,
            tray_id=step.tray_id,
            original_date=step.scheduled_date,
            new_date=reference_date,
        )
        self._set_step_date(tray_step_id, reference_date)

        logger.info(
            "harvest_step_moved",
            tray_step_id=tray_step_id,
            from_date=str(change.original_date),
            to_date=str(reference_date),
        )
        return change

    def revert_harvest_step(self, farm_uuid: str, change: HarvestStepChange) -> bool:
        """
        Compensating write: put a moved step back on its original date.

        If this fails the tray stays advanced; the error is raised so the
        operator is told.

        Raises:
            HarvestStepNotFoundError: If the step is no longer pending or not in this farm
        """
        self.get_farm_pending_step(farm_uuid, change.tray_step_id, tray_id=change.tray_id)

        try:
            self._set_step_date(change.tray_step_id, change.original_date)
        except AppError as e:
            logger.error(
                "harvest_step_revert_failed",
                tray_step_id=change.tray_step_id,
                original_date=str(change.original_date),
                error=e.message,
            )
            raise

        logger.info("harvest_step_reverted", tray_step_id=change.tray_step_id, to_date=str(change.original_date))
        return True

    def harvest_today(
        self,
        farm_uuid: str,
        tray_step_id: int,
        reference_date: Optional[date] = None,
    ) -> HarvestStepChange:
        """Commit "harvest early" for one tray: its harvest step moves to today."""
        change = self.update_harvest_step_to_today(farm_uuid, tray_step_id, reference_date)
        self.activity.log_activity(
            farm_uuid,
            "harvest_moved_to_today",
            f"Harvest step {tray_step_id} moved to {change.new_date}",
            {"tray_step_id": tray_step_id, "tray_id": change.tray_id},
        )
        return change

    # ===================
    # ORDER SCHEDULES
    # ===================

    def _skip_schedule(
        self,
        farm_uuid: str,
        standing_order_id: Optional[int],
        delivery_date: Optional[date],
        notes: str,
        action: str,
    ) -> OrderSchedule:
        """
        Mark one order schedule occurrence skipped.

        Matched on (standing_order_id, scheduled_delivery_date); both parts
        are required. Other occurrences of the standing order are untouched.
        """
        _require_farm(farm_uuid)
        if standing_order_id is None or delivery_date is None:
            raise ScheduleKeyRequiredError(standing_order_id, delivery_date)

        row = {
            "farm_uuid": farm_uuid,
            "standing_order_id": standing_order_id,
            "scheduled_delivery_date": delivery_date.isoformat(),
            "status": SCHEDULE_SKIPPED,
            "notes": notes,
        }

        try:
            result = self.db.table(self.schedule_table).upsert(
                row,
                on_conflict="standing_order_id,scheduled_delivery_date"
            ).execute()
        except Exception as e:
            logger.error(
                "schedule_skip_failed",
                action=action,
                standing_order_id=standing_order_id,
                delivery_date=str(delivery_date),
                error=str(e),
            )
            raise DatabaseError("upsert", str(e))

        logger.info(
            "schedule_skipped",
            action=action,
            standing_order_id=standing_order_id,
            delivery_date=str(delivery_date),
        )
        self.activity.log_activity(
            farm_uuid,
            action,
            f"Delivery of standing order {standing_order_id} on {delivery_date} skipped",
            {"standing_order_id": standing_order_id, "delivery_date": delivery_date.isoformat()},
        )

        saved = result.data[0] if result.data else row
        return OrderSchedule(**normalize_row(saved, id_field="schedule_id"))

    def keep_for_future(
        self,
        farm_uuid: str,
        standing_order_id: Optional[int],
        delivery_date: Optional[date],
        notes: Optional[str] = None,
    ) -> OrderSchedule:
        """Skip this delivery so the late tray serves a later one."""
        return self._skip_schedule(
            farm_uuid, standing_order_id, delivery_date,
            notes or KEEP_FOR_FUTURE_NOTES, "keep_for_future",
        )

    def cancel_delivery(
        self,
        farm_uuid: str,
        standing_order_id: Optional[int],
        delivery_date: Optional[date],
        notes: Optional[str] = None,
    ) -> OrderSchedule:
        """Cancel this delivery."""
        return self._skip_schedule(
            farm_uuid, standing_order_id, delivery_date,
            notes or CANCEL_DELIVERY_NOTES, "cancel_delivery",
        )

    def skip_delivery(
        self,
        farm_uuid: str,
        standing_order_id: Optional[int],
        delivery_date: Optional[date],
        notes: Optional[str] = None,
    ) -> OrderSchedule:
        """Skip a delivery that has no candidate tray at all."""
        return self._skip_schedule(
            farm_uuid, standing_order_id, delivery_date,
            notes or SKIP_DELIVERY_NOTES, "skip_delivery",
        )

    def finalize_day(self, farm_uuid: str) -> FinalizeDayResult:
        """
        End-of-day sweep: today's fulfilled pending schedules become
        completed, unfulfilled ones skipped.

        Returns:
            FinalizeDayResult with the counts the server reports
        """
        _require_farm(farm_uuid)

        try:
            result = self.db.rpc(
                "finalize_todays_deliveries",
                {"p_farm_uuid": farm_uuid}
            ).execute()
        except Exception as e:
            logger.error("finalize_day_failed", farm_uuid=farm_uuid, error=str(e))
            raise DatabaseError("rpc", str(e))

        data = result.data
        if isinstance(data, list):
            data = data[0] if data else {}

        summary = FinalizeDayResult(**(data or {}))
        logger.info(
            "day_finalized",
            farm_uuid=farm_uuid,
            completed=summary.completed,
            skipped=summary.skipped,
        )
        return summary

    # ===================
    # BATCH HARVEST
    # ===================

    def _early_harvest_task(
        self,
        tray: EligibleTray,
        gap: Optional[OrderGap],
        reference_date: date,
    ) -> DailyTask:
        return DailyTask(
            id=f"early-harvest-{tray.tray_id}",
            action=f"{HARVEST_ACTION} {tray.variety_name}",
            crop=tray.variety_name,
            trays=1,
            tray_ids=[tray.tray_id],
            recipe_id=tray.recipe_id,
            step_id=tray.tray_step_id,
            task_source=TaskSource.ORDER_FULFILLMENT,
            customer_id=tray.customer_id if tray.customer_id is not None else (gap.customer_id if gap else None),
            customer_name=gap.customer_name if gap else None,
            delivery_date=gap.effective_delivery_date if gap else reference_date,
            standing_order_id=gap.standing_order_id if gap else None,
            is_early_harvest=True,
        )

    def open_early_harvest_confirm(
        self,
        farm_uuid: str,
        trays: list[EligibleTray],
        gap: Optional[OrderGap] = None,
        ready_tasks: Optional[list[DailyTask]] = None,
        reference_date: Optional[date] = None,
    ) -> EarlyHarvestPlan:
        """
        Advance every given tray's harvest step to today and build the
        confirmation list.

        Steps are moved best-effort. The plan keeps the original date of
        every step actually moved, and lists harvest tasks for the moved
        trays after the already-ready tasks.

        Raises:
            EmptySelectionError: If no trays are given
        """
        _require_farm(farm_uuid)
        if not trays:
            raise EmptySelectionError("tray")

        reference_date = reference_date or date.today()
        by_id = {tray.tray_id: tray for tray in trays}
        changes: list[HarvestStepChange] = []

        def advance(tray_id: int) -> None:
            tray = by_id[tray_id]
            if tray.tray_step_id is None:
                raise HarvestStepNotFoundError(f"tray:{tray_id}")
            changes.append(
                self.update_harvest_step_to_today(farm_uuid, tray.tray_step_id, reference_date, tray_id=tray_id)
            )

        outcomes = run_best_effort(by_id.keys(), advance, "early_harvest_advance")

        tasks = list(ready_tasks or [])
        already_listed = {tray_id for task in tasks for tray_id in task.tray_ids}
        for outcome in outcomes:
            if outcome.outcome == ItemOutcome.OK and outcome.tray_id not in already_listed:
                tasks.append(self._early_harvest_task(by_id[outcome.tray_id], gap, reference_date))

        plan = EarlyHarvestPlan(
            farm_uuid=farm_uuid,
            reference_date=reference_date,
            gap=gap,
            changes=changes,
            outcomes=outcomes,
            tasks=tasks,
        )
        logger.info(
            "early_harvest_opened",
            trays=len(trays),
            moved=len(changes),
            complete=plan.complete,
        )
        return plan

    def cancel_early_harvest(self, farm_uuid: str, plan: EarlyHarvestPlan) -> list[TrayOutcome]:
        """
        Revert every step the plan moved. Best-effort like the advance.

        Only steps of farm_uuid are touched, whatever farm the plan names.

        Returns:
            Per-tray revert outcomes
        """
        _require_farm(farm_uuid)
        changes = {change.tray_step_id: change for change in plan.changes}
        outcomes = run_best_effort(
            changes.values(),
            lambda change: self.revert_harvest_step(farm_uuid, change),
            "early_harvest_revert",
            tray_id_of=lambda change: change.tray_id,
        )
        logger.info("early_harvest_cancelled", reverted=sum(o.outcome == ItemOutcome.OK for o in outcomes))
        return outcomes

    def _harvest_tray(self, farm_uuid: str, tray_id: int, harvest_date: date) -> None:
        try:
            result = self.db.table(self.tray_table).update({
                "status": TRAY_HARVESTED,
                "harvest_date": harvest_date.isoformat(),
            }).eq(
                "tray_id", tray_id
            ).eq(
                "farm_uuid", farm_uuid
            ).execute()
        except Exception as e:
            raise DatabaseError("update", str(e), {"tray_id": tray_id})

        if not result.data:
            raise TrayNotFoundError(tray_id)

        try:
            self.db.table(self.step_table).update({
                "status": STEP_COMPLETED
            }).eq(
                "tray_id", tray_id
            ).eq(
                "status", STEP_PENDING
            ).execute()
        except Exception as e:
            raise DatabaseError("update", str(e), {"tray_id": tray_id})

    def _complete_schedule(self, farm_uuid: str, key: ScheduleKey) -> int:
        standing_order_id, delivery_date = key
        try:
            result = self.db.table(self.schedule_table).update({
                "status": SCHEDULE_COMPLETED
            }).eq(
                "farm_uuid", farm_uuid
            ).eq(
                "standing_order_id", standing_order_id
            ).eq(
                "scheduled_delivery_date", delivery_date.isoformat()
            ).execute()
        except Exception as e:
            raise DatabaseError("update", str(e), {"standing_order_id": standing_order_id})
        return len(result.data or [])

    def record_harvest(
        self,
        farm_uuid: str,
        tray_ids: list[int],
        harvest_date: Optional[date] = None,
        schedule_keys: Optional[dict[int, ScheduleKey]] = None,
    ) -> BatchHarvestResult:
        """
        Record the harvest of the selected trays.

        Each tray becomes harvested with harvest_date set and its pending
        steps completed. Order schedules of trays that harvested are then
        marked completed.

        Args:
            farm_uuid: Farm scope
            tray_ids: Trays the operator selected
            harvest_date: Defaults to today
            schedule_keys: tray_id → (standing_order_id, delivery_date)

        Raises:
            EmptySelectionError: If no trays are selected
        """
        _require_farm(farm_uuid)
        if not tray_ids:
            raise EmptySelectionError("tray")

        harvest_date = harvest_date or date.today()
        schedule_keys = schedule_keys or {}

        outcomes = run_best_effort(
            list(dict.fromkeys(tray_ids)),
            lambda tray_id: self._harvest_tray(farm_uuid, tray_id, harvest_date),
            "record_harvest",
        )
        result = BatchHarvestResult(outcomes=outcomes)

        keys = []
        for tray_id in result.harvested:
            key = schedule_keys.get(tray_id)
            if key is not None and key not in keys:
                keys.append(key)

        for key in keys:
            try:
                result.schedules_completed += self._complete_schedule(farm_uuid, key)
            except AppError as e:
                logger.error("schedule_complete_failed", standing_order_id=key[0], error=e.message)
                result.schedule_errors.append(e.message)

        logger.info(
            "harvest_recorded",
            farm_uuid=farm_uuid,
            harvested=len(result.harvested),
            selected=len(outcomes),
            schedules_completed=result.schedules_completed,
        )
        if result.harvested:
            self.activity.log_activity(
                farm_uuid,
                "harvest_recorded",
                f"Harvested {len(result.harvested)} tray(s)",
                {"tray_ids": result.harvested},
            )
        return result

    def handle_confirm_early_harvest(
        self,
        farm_uuid: str,
        plan: EarlyHarvestPlan,
        selected_tray_ids: list[int],
    ) -> BatchHarvestResult:
        """
        Harvest the trays the operator picked from the confirmation list.

        Writes are scoped to farm_uuid, not to the farm the plan names.
        A tray's order schedule is completed when its task (or the plan's
        gap) names a standing order and delivery date.
        """
        _require_farm(farm_uuid)
        if not selected_tray_ids:
            raise EmptySelectionError("tray")

        schedule_keys: dict[int, ScheduleKey] = {}
        for task in plan.tasks:
            standing_order_id = task.standing_order_id
            delivery_date = task.delivery_date
            if standing_order_id is None and plan.gap is not None:
                standing_order_id = plan.gap.standing_order_id
                delivery_date = plan.gap.effective_delivery_date
            if standing_order_id is None or delivery_date is None:
                continue
            for tray_id in task.tray_ids:
                schedule_keys.setdefault(tray_id, (standing_order_id, delivery_date))

        return self.record_harvest(
            farm_uuid,
            selected_tray_ids,
            harvest_date=plan.reference_date,
            schedule_keys=schedule_keys,
        )


# ===================
# DIALOG FLOW
# ===================

class RemediationFlow:
    """
    One-gap-at-a-time remediation flow of a session.

    Holds exactly one dialog state. A successful confirm marks the gap in
    the session's RecentlyResolvedGaps and closes the dialog; a failed one
    leaves the dialog open for a retry.
    """

    def __init__(
        self,
        farm_uuid: str,
        resolved: RecentlyResolvedGaps,
        service: Optional[RemediationService] = None,
    ):
        self.farm_uuid = farm_uuid
        self.resolved = resolved
        self.service = service or get_remediation_service()
        self.state: RemediationDialogState = NoDialog()

    @property
    def kind(self) -> str:
        return self.state.kind

    def open_reallocate(
        self,
        gap: OrderGap,
        tray: EligibleTray,
        action: str = "harvest_early",
        reference_date: Optional[date] = None,
    ) -> ReallocateDialog:
        preview = None
        if action == "harvest_early":
            preview = self.service.open_reallocation_confirm(self.farm_uuid, gap, tray, reference_date)
        self._close_current()
        self.state = ReallocateDialog(gap=gap, tray=tray, action=action, preview=preview)
        return self.state

    def open_assign(self, gap: OrderGap, candidates: list[EligibleTray]) -> AssignDialog:
        self._close_current()
        self.state = AssignDialog(gap=gap, candidates=candidates)
        return self.state

    def open_skip(self, gap: OrderGap) -> SkipDialog:
        self._close_current()
        self.state = SkipDialog(gap=gap)
        return self.state

    def open_early_harvest(
        self,
        trays: list[EligibleTray],
        gap: Optional[OrderGap] = None,
        ready_tasks: Optional[list[DailyTask]] = None,
        reference_date: Optional[date] = None,
    ) -> EarlyHarvestDialog:
        self._close_current()
        plan = self.service.open_early_harvest_confirm(
            self.farm_uuid, trays, gap=gap, ready_tasks=ready_tasks, reference_date=reference_date
        )
        self.state = EarlyHarvestDialog(plan=plan)
        return self.state

    def open_fulfillment_action(
        self,
        task: DailyTask,
        entry: Optional[VarietyStatus] = None,
    ) -> FulfillmentActionDialog:
        """
        Raises:
            ValidationError: If the task is not at risk
        """
        if not requires_fulfillment_action(task):
            raise ValidationError(
                f"Task '{task.action}' is not at risk",
                code="FULFILLMENT_ACTION_NOT_REQUIRED",
                details={"task_id": task.id},
            )
        self._close_current()
        self.state = FulfillmentActionDialog(task=task, entry=entry)
        return self.state

    def handle_task(
        self,
        task: DailyTask,
        entry: Optional[VarietyStatus] = None,
        harvest_date: Optional[date] = None,
    ) -> Any:
        """
        Route a task from the daily list.

        At-risk tasks open the fulfillment-action dialog. Harvest tasks are
        completed directly: their trays are harvested and the delivery they
        serve is completed.

        Returns:
            FulfillmentActionDialog or BatchHarvestResult

        Raises:
            ValidationError: If the task is neither at risk nor a harvest
            EmptySelectionError: If a harvest task lists no trays
        """
        if requires_fulfillment_action(task):
            return self.open_fulfillment_action(task, entry)

        if not task.action.lower().startswith(HARVEST_ACTION.lower()):
            raise ValidationError(
                f"Task '{task.action}' cannot be completed from the gap view",
                code="TASK_NOT_HANDLED",
                details={"task_id": task.id},
            )
        if not task.tray_ids:
            raise EmptySelectionError("tray")

        schedule_keys: dict[int, ScheduleKey] = {}
        if task.standing_order_id is not None and task.delivery_date is not None:
            schedule_keys = {
                tray_id: (task.standing_order_id, task.delivery_date) for tray_id in task.tray_ids
            }

        return self.service.record_harvest(
            self.farm_uuid,
            task.tray_ids,
            harvest_date=harvest_date,
            schedule_keys=schedule_keys,
        )

    def _close_current(self) -> None:
        # An abandoned early-harvest confirmation puts its steps back
        if isinstance(self.state, EarlyHarvestDialog):
            self.service.cancel_early_harvest(self.farm_uuid, self.state.plan)
        self.state = NoDialog()

    def close(self) -> None:
        self._close_current()

    def _resolve(self, gap: Optional[OrderGap]) -> None:
        if gap is not None:
            self.resolved.mark(*gap.resolution_key)
        self.state = NoDialog()

    def confirm(
        self,
        tray_id: Optional[int] = None,
        selected_tray_ids: Optional[list[int]] = None,
        action: Optional[FulfillmentActionCreate] = None,
        user_id: Optional[str] = None,
    ) -> Any:
        """
        Commit the open dialog.

        Args:
            tray_id: Tray picked in the assign dialog
            selected_tray_ids: Trays picked in the early-harvest dialog
            action: Decision entered in the fulfillment-action dialog
            user_id: Acting user, for fulfillment actions

        Returns:
            Whatever the underlying operation returns
        """
        state = self.state

        if isinstance(state, ReallocateDialog):
            gap = state.gap
            if state.action == "harvest_early":
                if state.tray.tray_step_id is None:
                    raise HarvestStepNotFoundError(f"tray:{state.tray.tray_id}")
                result = self.service.harvest_today(self.farm_uuid, state.tray.tray_step_id)
            elif state.action == "keep_for_future":
                result = self.service.keep_for_future(
                    self.farm_uuid, gap.standing_order_id, gap.effective_delivery_date
                )
            else:
                result = self.service.cancel_delivery(
                    self.farm_uuid, gap.standing_order_id, gap.effective_delivery_date
                )
            self._resolve(gap)
            return result

        if isinstance(state, AssignDialog):
            if tray_id is None:
                raise EmptySelectionError("tray")
            result = self.service.assign_tray(self.farm_uuid, tray_id, state.gap.customer_id)
            self._resolve(state.gap)
            return result

        if isinstance(state, SkipDialog):
            gap = state.gap
            result = self.service.skip_delivery(
                self.farm_uuid, gap.standing_order_id, gap.effective_delivery_date
            )
            self._resolve(gap)
            return result

        if isinstance(state, EarlyHarvestDialog):
            result = self.service.handle_confirm_early_harvest(
                self.farm_uuid, state.plan, selected_tray_ids or []
            )
            if result.harvested:
                self._resolve(state.plan.gap)
            return result

        if isinstance(state, FulfillmentActionDialog):
            if action is None:
                raise ValidationError("A fulfillment decision is required", code="ACTION_REQUIRED")
            result = get_fulfillment_action_service().record_fulfillment_action(
                self.farm_uuid, action, user_id=user_id
            )
            self.state = NoDialog()
            return result

        raise ValidationError("No remediation dialog is open", code="NO_DIALOG_OPEN")


# Singleton instance
_remediation_service: Optional[RemediationService] = None


def get_remediation_service() -> RemediationService:
    """Get the singleton remediation service instance."""
    global _remediation_service
    if _remediation_service is None:
        _remediation_service = RemediationService()
    return _remediation_service
