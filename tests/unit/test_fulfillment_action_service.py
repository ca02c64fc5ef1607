"""
Unit tests for FulfillmentActionService and the fulfillment action models.

Run: pytest tests/unit/test_fulfillment_action_service.py -v
"""

import pytest
from datetime import date
from pydantic import ValidationError as PydanticValidationError

from services.fulfillment_action_service import (
    FulfillmentActionService,
    get_fulfillment_action_service,
    requires_fulfillment_action,
)
from models.daily_task import DailyTask
from models.fulfillment_action import FulfillmentActionCreate, FulfillmentActionType
from exceptions import DatabaseError, MissingFarmScopeError

DELIVERY = date(2025, 6, 15)


def _action(**overrides) -> FulfillmentActionCreate:
    data = {
        "standing_order_id": 77,
        "delivery_date": DELIVERY,
        "recipe_id": 2,
        "action_type": "skip",
        "notes": "Customer agreed",
    }
    data.update(overrides)
    return FulfillmentActionCreate(**data)


# ===================
# MODELS
# ===================

class TestFulfillmentActionCreate:
    """Tests for FulfillmentActionCreate validation"""

    def test_substitute_requires_recipe(self):
        with pytest.raises(PydanticValidationError):
            _action(action_type="substitute")

    def test_substitute_with_recipe(self):
        action = _action(action_type="substitute", substitute_recipe_id=5)

        assert action.action_type == FulfillmentActionType.SUBSTITUTE

    @pytest.mark.parametrize("quantity", [None, 0, -2])
    def test_partial_requires_positive_quantity(self, quantity):
        with pytest.raises(PydanticValidationError):
            _action(action_type="partial", fulfilled_quantity=quantity)

    def test_unknown_action_type(self):
        with pytest.raises(PydanticValidationError):
            _action(action_type="refund")


class TestRequiresFulfillmentAction:
    """Tests for requires_fulfillment_action()"""

    @pytest.mark.parametrize("action,expected", [
        ("Harvest Pea At Risk", True),
        ("Harvest Pea at risk", True),
        ("Harvest Pea", False),
        ("Soak Radish", False),
    ])
    def test_at_risk_marker(self, action, expected):
        assert requires_fulfillment_action(DailyTask(id="t", action=action)) is expected


# ===================
# SERVICE
# ===================

class TestRecordFulfillmentAction:
    """Tests for record_fulfillment_action()"""

    def test_sends_rpc_params(self, mock_db, farm_uuid):
        mock_db.set_rpc(
            "record_fulfillment_action",
            lambda db, params: {"success": True, "action_id": 41, "schedule_id": 901, "resolved": True},
        )

        response = FulfillmentActionService().record_fulfillment_action(farm_uuid, _action(), user_id="u-1")

        assert response.action_id == 41
        assert response.resolved is True
        name, params = mock_db.rpc_calls[0]
        assert name == "record_fulfillment_action"
        assert params["p_delivery_date"] == "2025-06-15"
        assert params["p_action_type"] == "skip"
        assert params["p_created_by"] == "u-1"

    def test_list_result_accepted(self, mock_db, farm_uuid):
        mock_db.set_rpc(
            "record_fulfillment_action",
            lambda db, params: [{"success": True, "action_id": 42}],
        )

        response = FulfillmentActionService().record_fulfillment_action(
            farm_uuid, _action(action_type="note")
        )

        assert response.action_id == 42
        assert response.resolved is False

    def test_empty_result_is_error(self, mock_db, farm_uuid):
        with pytest.raises(DatabaseError):
            FulfillmentActionService().record_fulfillment_action(farm_uuid, _action())

    def test_requires_farm(self, mock_db):
        with pytest.raises(MissingFarmScopeError):
            FulfillmentActionService().record_fulfillment_action("", _action())


class TestGetItemAction:
    """Tests for get_item_action()"""

    def test_latest_action_returned(self, mock_db, farm_uuid):
        mock_db.set_table_data("order_fulfillment_actions", [
            {"id": 1, "farm_uuid": farm_uuid, "delivery_date": "2025-06-15", "recipe_id": 2,
             "action_type": "contacted", "created_at": "2025-06-14T09:00:00+00:00"},
            {"id": 2, "farm_uuid": farm_uuid, "delivery_date": "2025-06-15", "recipe_id": 2,
             "action_type": "skip", "created_at": "2025-06-14T15:00:00+00:00"},
            {"id": 3, "farm_uuid": farm_uuid, "delivery_date": "2025-06-15", "recipe_id": 3,
             "action_type": "note", "created_at": "2025-06-14T16:00:00+00:00"},
        ])

        action = FulfillmentActionService().get_item_action(farm_uuid, DELIVERY, 2)

        assert action.action_id == 2
        assert action.action_type == FulfillmentActionType.SKIP

    def test_none_recorded(self, mock_db, farm_uuid):
        assert FulfillmentActionService().get_item_action(farm_uuid, DELIVERY, 2) is None


class TestFulfillmentActionServiceSingleton:
    def test_singleton(self, mock_db):
        assert get_fulfillment_action_service() is get_fulfillment_action_service()
