"""
Unit tests for the variety breakdown builder.

Run: pytest tests/unit/test_variety_breakdown_service.py -v
"""

import pytest
from datetime import date, timedelta

from services.variety_breakdown_service import (
    build_variety_breakdown,
    compute_gap_breakdown,
    remediation_options_for,
)
from models.order_gap import (
    OrderGap,
    RecipeRequirement,
    RemediationOption,
    VARIETY_STATE_PRECEDENCE,
    VarietyState,
)
from models.tray import EligibleTray

TODAY = date(2025, 6, 15)

PEA = 1
RADISH = 2


def _gap(**overrides) -> OrderGap:
    data = {
        "customer_id": 7,
        "customer_name": "Acme",
        "product_id": 10,
        "product_name": "Pea Mix",
        "standing_order_id": 77,
        "scheduled_delivery_date": TODAY,
        "gap": 1,
    }
    data.update(overrides)
    return OrderGap(**data)


def _tray(tray_id, recipe_id, variety_name, harvest_offset=0, customer_id=7, step_id=None) -> EligibleTray:
    return EligibleTray(
        tray_id=tray_id,
        recipe_id=recipe_id,
        recipe_name=f"{variety_name} recipe",
        variety_name=variety_name,
        customer_id=customer_id,
        sow_date=TODAY - timedelta(days=8),
        tray_step_id=step_id if step_id is not None else 500 + tray_id,
        scheduled_harvest_date=TODAY + timedelta(days=harvest_offset),
        cycle_days=10,
    )


def _requirement(recipe_id, name, status="no_trays") -> RecipeRequirement:
    return RecipeRequirement(
        recipe_id=recipe_id,
        recipe_name=name,
        fulfillment_status=status,
        delivery_date=TODAY,
        customer_name="Acme",
    )


def _summary(entries):
    return [(e.variety_name, e.status.value) for e in entries]


# ===================
# END-TO-END SCENARIOS
# ===================

class TestScenarios:
    """Pea Mix for Acme, delivered today."""

    def test_mismatch_listed_before_ready(self):
        pea_ready = _tray(1, PEA, "Pea")
        radish_late = _tray(2, RADISH, "Radish", harvest_offset=2)

        entries = compute_gap_breakdown(
            _gap(),
            [radish_late],
            [pea_ready],
            [_requirement(PEA, "Pea"), _requirement(RADISH, "Radish")],
        )

        assert _summary(entries) == [("Radish", "date_mismatch"), ("Pea", "ready")]
        assert RemediationOption.HARVEST_EARLY in entries[0].options
        assert entries[0].ready_date == TODAY + timedelta(days=2)

    def test_recorded_fulfillment_wins_over_mismatched_tray(self):
        pea_ready = _tray(1, PEA, "Pea")
        radish_late = _tray(2, RADISH, "Radish", harvest_offset=2)

        entries = compute_gap_breakdown(
            _gap(),
            [radish_late],
            [pea_ready],
            [_requirement(PEA, "Pea"), _requirement(RADISH, "Radish", status="fulfilled")],
        )

        assert sorted(_summary(entries)) == [("Pea", "ready"), ("Radish", "ready")]
        radish = next(e for e in entries if e.recipe_id == RADISH)
        assert RemediationOption.HARVEST_EARLY not in radish.options

    def test_name_fallback_suppresses_covered_missing_token(self):
        sunflower = _tray(3, 3, "Sunflower Shoots")

        entries = compute_gap_breakdown(
            _gap(missing_varieties="sunflower"),
            [],
            [sunflower],
            None,
        )

        assert _summary(entries) == [("Sunflower Shoots", "ready")]


# ===================
# PRIMARY PATH
# ===================

class TestRequirementPath:
    """Tests for the requirement-driven breakdown."""

    def test_missing_when_no_tray(self):
        entries = build_variety_breakdown(_gap(), [], [], [_requirement(PEA, "Pea")])

        assert _summary(entries) == [("Pea", "missing")]
        assert entries[0].tray is None

    def test_one_entry_per_recipe(self):
        entries = build_variety_breakdown(
            _gap(),
            [],
            [_tray(1, PEA, "Pea"), _tray(2, PEA, "Pea")],
            [_requirement(PEA, "Pea"), _requirement(PEA, "Pea")],
        )

        assert len(entries) == 1
        assert entries[0].tray.tray_id == 1  # first seen wins

    def test_name_falls_back_to_tray(self):
        entries = build_variety_breakdown(
            _gap(), [], [_tray(1, PEA, "Pea")], [_requirement(PEA, None)]
        )

        assert entries[0].variety_name == "Pea"

    def test_fulfilled_without_tray_is_ready(self):
        entries = build_variety_breakdown(_gap(), [], [], [_requirement(PEA, "Pea", status="fulfilled")])

        assert entries[0].status == VarietyState.READY
        assert entries[0].tray is None

    def test_always_sorted_by_precedence(self):
        requirements = [
            _requirement(1, "A", status="fulfilled"),
            _requirement(2, "B"),
            _requirement(3, "C"),
            _requirement(4, "D"),
        ]
        entries = build_variety_breakdown(
            _gap(),
            [_tray(13, 3, "C", harvest_offset=1)],
            [_tray(14, 4, "D")],
            requirements,
        )

        ranks = [VARIETY_STATE_PRECEDENCE[e.status] for e in entries]
        assert ranks == sorted(ranks)
        assert _summary(entries) == [
            ("C", "date_mismatch"),
            ("B", "missing"),
            ("A", "ready"),
            ("D", "ready"),
        ]


# ===================
# FALLBACK PATH
# ===================

class TestNameFallbackPath:
    """Tests for the name-grouping fallback."""

    def test_groups_trays_by_lowercased_name(self):
        entries = build_variety_breakdown(
            _gap(),
            [],
            [_tray(1, PEA, "Pea"), _tray(2, PEA, "pea")],
        )

        assert len(entries) == 1

    def test_ready_skipped_when_same_recipe_is_mismatched(self):
        entries = build_variety_breakdown(
            _gap(),
            [_tray(2, RADISH, "Radish", harvest_offset=2)],
            [_tray(3, RADISH, "Radish Red")],
        )

        assert _summary(entries) == [("Radish", "date_mismatch")]

    def test_uncovered_tokens_become_missing(self):
        entries = build_variety_breakdown(
            _gap(missing_varieties="Basil, Pea"),
            [],
            [_tray(1, PEA, "Pea Shoots")],
        )

        assert _summary(entries) == [("Basil", "missing"), ("Pea Shoots", "ready")]

    def test_empty_tokens_ignored(self):
        entries = build_variety_breakdown(_gap(missing_varieties=" , ,"), [], [])

        assert entries == []

    def test_substring_match_can_over_merge(self):
        # Known limitation: "Red" is suppressed by an unrelated "Red Cabbage" tray
        entries = build_variety_breakdown(
            _gap(missing_varieties="Red"),
            [],
            [_tray(1, 9, "Red Cabbage")],
        )

        assert _summary(entries) == [("Red Cabbage", "ready")]


# ===================
# REMEDIATION OPTIONS
# ===================

class TestRemediationOptions:
    """Tests for remediation_options_for()"""

    def test_mismatch_options(self):
        entry = build_variety_breakdown(_gap(), [_tray(2, RADISH, "Radish", 2)], [])[0]

        assert remediation_options_for(entry) == [
            RemediationOption.HARVEST_EARLY,
            RemediationOption.KEEP_FOR_FUTURE,
            RemediationOption.CANCEL_DELIVERY,
        ]

    def test_mismatch_without_step_cannot_harvest_early(self):
        tray = _tray(2, RADISH, "Radish", 2)
        tray.tray_step_id = None
        entry = build_variety_breakdown(_gap(), [tray], [])[0]

        assert RemediationOption.HARVEST_EARLY not in remediation_options_for(entry)

    def test_missing_options(self):
        entry = build_variety_breakdown(_gap(missing_varieties="Basil"), [], [])[0]

        assert remediation_options_for(entry) == [
            RemediationOption.SUBSTITUTE,
            RemediationOption.SKIP_DELIVERY,
        ]

    def test_ready_unassigned_offers_assign(self):
        entry = build_variety_breakdown(_gap(), [], [_tray(1, PEA, "Pea", customer_id=None)])[0]

        assert remediation_options_for(entry) == [RemediationOption.ASSIGN_TRAY]

    def test_ready_assigned_offers_nothing(self):
        entry = build_variety_breakdown(_gap(), [], [_tray(1, PEA, "Pea")])[0]

        assert remediation_options_for(entry) == []
