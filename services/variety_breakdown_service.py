"""
Variety breakdown — per-variety coverage of one order gap.

Two paths:
    - requirement rows available: one entry per required recipe, with the
      database's fulfillment_status taking precedence over tray matching
    - no requirement rows: group trays by lowercased variety name and add
      the gap's missing_varieties tokens that no tray name already covers

Each recipe is represented by at most one tray (first seen wins); how many
trays of a variety exist beyond "at least one" is not modeled here.
"""

from typing import Iterable, Optional
import structlog

from config.growing import UNKNOWN_VARIETY
from models.order_gap import (
    OrderGap,
    RecipeRequirement,
    RemediationOption,
    VARIETY_STATE_PRECEDENCE,
    VarietyState,
    VarietyStatus,
)
from models.tray import EligibleTray
from utils.text_utils import names_overlap, parse_missing_varieties, variety_key

logger = structlog.get_logger(__name__)


def _first_tray_by_recipe(trays: Iterable[EligibleTray]) -> dict[int, EligibleTray]:
    by_recipe: dict[int, EligibleTray] = {}
    for tray in trays:
        if tray.recipe_id is not None and tray.recipe_id not in by_recipe:
            by_recipe[tray.recipe_id] = tray
    return by_recipe


def _first_tray_by_name(trays: Iterable[EligibleTray]) -> dict[str, EligibleTray]:
    by_name: dict[str, EligibleTray] = {}
    for tray in trays:
        key = variety_key(tray.variety_name or tray.recipe_name)
        if key not in by_name:
            by_name[key] = tray
    return by_name


def sort_breakdown(entries: list[VarietyStatus]) -> list[VarietyStatus]:
    """Stable sort: date_mismatch, then missing, then ready."""
    return sorted(entries, key=lambda entry: VARIETY_STATE_PRECEDENCE[entry.status])


# ===================
# REQUIREMENT PATH
# ===================

def _breakdown_from_requirements(
    requirements: list[RecipeRequirement],
    mismatched_trays: list[EligibleTray],
    ready_trays: list[EligibleTray],
) -> list[VarietyStatus]:
    mismatched_by_recipe = _first_tray_by_recipe(mismatched_trays)
    ready_by_recipe = _first_tray_by_recipe(ready_trays)

    entries: list[VarietyStatus] = []
    seen: set[int] = set()

    for requirement in requirements:
        recipe_id = requirement.recipe_id
        if recipe_id in seen:
            continue
        seen.add(recipe_id)

        mismatched = mismatched_by_recipe.get(recipe_id)
        ready = ready_by_recipe.get(recipe_id)
        name = (
            requirement.recipe_name
            or (ready.variety_name if ready else None)
            or (mismatched.variety_name if mismatched else None)
            or UNKNOWN_VARIETY
        )

        if requirement.is_fulfilled:
            entries.append(VarietyStatus(
                variety_name=name,
                recipe_id=recipe_id,
                status=VarietyState.READY,
                tray=ready,
                ready_date=ready.scheduled_harvest_date if ready else None,
            ))
        elif mismatched is not None:
            entries.append(VarietyStatus(
                variety_name=name,
                recipe_id=recipe_id,
                status=VarietyState.DATE_MISMATCH,
                tray=mismatched,
                ready_date=mismatched.scheduled_harvest_date,
            ))
        elif ready is not None:
            entries.append(VarietyStatus(
                variety_name=name,
                recipe_id=recipe_id,
                status=VarietyState.READY,
                tray=ready,
                ready_date=ready.scheduled_harvest_date,
            ))
        else:
            entries.append(VarietyStatus(
                variety_name=name,
                recipe_id=recipe_id,
                status=VarietyState.MISSING,
            ))

    return entries


# ===================
# NAME FALLBACK PATH
# ===================

def _breakdown_from_names(
    gap: OrderGap,
    mismatched_trays: list[EligibleTray],
    ready_trays: list[EligibleTray],
) -> list[VarietyStatus]:
    entries: list[VarietyStatus] = []

    mismatched_by_name = _first_tray_by_name(mismatched_trays)
    for tray in mismatched_by_name.values():
        entries.append(VarietyStatus(
            variety_name=tray.variety_name,
            recipe_id=tray.recipe_id,
            status=VarietyState.DATE_MISMATCH,
            tray=tray,
            ready_date=tray.scheduled_harvest_date,
        ))

    mismatched_recipes = {
        t.recipe_id for t in mismatched_by_name.values() if t.recipe_id is not None
    }
    for tray in _first_tray_by_name(ready_trays).values():
        if tray.recipe_id is not None and tray.recipe_id in mismatched_recipes:
            continue
        entries.append(VarietyStatus(
            variety_name=tray.variety_name,
            recipe_id=tray.recipe_id,
            status=VarietyState.READY,
            tray=tray,
            ready_date=tray.scheduled_harvest_date,
        ))

    for token in parse_missing_varieties(gap.missing_varieties):
        # Fuzzy and best-effort: can over-merge names sharing a substring
        if any(names_overlap(token, entry.variety_name) for entry in entries):
            continue
        entries.append(VarietyStatus(
            variety_name=token,
            status=VarietyState.MISSING,
        ))

    return entries


# ===================
# PUBLIC API
# ===================

def build_variety_breakdown(
    gap: OrderGap,
    mismatched_trays: list[EligibleTray],
    ready_trays: list[EligibleTray],
    recipe_requirements: Optional[list[RecipeRequirement]] = None,
) -> list[VarietyStatus]:
    """
    Build the per-variety status list of a gap.

    Args:
        gap: The order gap
        mismatched_trays: Customer trays harvesting after the delivery
        ready_trays: Trays ready for the delivery (customer's first)
        recipe_requirements: Per-recipe fulfillment rows of this
            delivery/customer; empty or None selects the name fallback

    Returns:
        VarietyStatus list ordered date_mismatch < missing < ready
    """
    if recipe_requirements:
        entries = _breakdown_from_requirements(recipe_requirements, mismatched_trays, ready_trays)
    else:
        entries = _breakdown_from_names(gap, mismatched_trays, ready_trays)

    logger.debug(
        "variety_breakdown_built",
        customer_id=gap.customer_id,
        product_id=gap.product_id,
        entries=len(entries),
        fallback=not recipe_requirements,
    )
    return sort_breakdown(entries)


def remediation_options_for(entry: VarietyStatus) -> list[RemediationOption]:
    """
    Remediation buttons an entry offers.

    A ready entry never offers harvest-early, even when a mismatched tray of
    the same recipe still exists physically.
    """
    if entry.status == VarietyState.DATE_MISMATCH:
        options = []
        if entry.tray is not None and entry.tray.tray_step_id is not None:
            options.append(RemediationOption.HARVEST_EARLY)
        options.extend([RemediationOption.KEEP_FOR_FUTURE, RemediationOption.CANCEL_DELIVERY])
        return options

    if entry.status == VarietyState.MISSING:
        return [RemediationOption.SUBSTITUTE, RemediationOption.SKIP_DELIVERY]

    if entry.tray is not None and entry.tray.is_unassigned:
        return [RemediationOption.ASSIGN_TRAY]
    return []


def compute_gap_breakdown(
    gap: OrderGap,
    mismatched_trays: list[EligibleTray],
    ready_trays: list[EligibleTray],
    recipe_requirements: Optional[list[RecipeRequirement]] = None,
) -> list[VarietyStatus]:
    """Breakdown with each entry's remediation options filled in."""
    entries = build_variety_breakdown(gap, mismatched_trays, ready_trays, recipe_requirements)
    for entry in entries:
        entry.options = remediation_options_for(entry)
    return entries
