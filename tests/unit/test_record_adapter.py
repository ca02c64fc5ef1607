"""
Unit tests for the record adapter.

Run: pytest tests/unit/test_record_adapter.py -v
"""

import pytest
from datetime import date, datetime
from unittest.mock import patch

from utils.record_adapter import (
    normalize_row,
    normalize_rows,
    parse_local_date,
    resolve_variety_name_from_relation,
)


class TestNormalizeRow:
    """Tests for normalize_row() / normalize_rows()"""

    def test_aliases_renamed(self):
        row = normalize_row({"trayid": 4, "farmUuid": "farm-1", "batchid": 9})

        assert row == {"tray_id": 4, "farm_uuid": "farm-1", "batch_id": 9}

    def test_canonical_name_wins(self):
        row = normalize_row({"tray_id": 4, "trayid": 5})

        assert row == {"tray_id": 4}

    def test_bare_id_mapped(self):
        assert normalize_row({"id": 42}, id_field="tray_id")["tray_id"] == 42

    def test_none_is_no_rows(self):
        assert normalize_rows(None) == []


class TestParseLocalDate:
    """Tests for parse_local_date()"""

    @pytest.mark.parametrize("value", [
        "2025-12-15",
        "2025-12-15T00:00:00Z",
        "2025-12-15 23:30:00",
        date(2025, 12, 15),
        datetime(2025, 12, 15, 23, 59),
    ])
    def test_calendar_date_kept(self, value):
        assert parse_local_date(value) == date(2025, 12, 15)

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_is_none(self, value):
        with patch("utils.record_adapter.logger") as logger:
            assert parse_local_date(value) is None

        logger.warning.assert_not_called()

    def test_garbage_string_logged(self):
        with patch("utils.record_adapter.logger") as logger:
            assert parse_local_date("next tuesday") is None

        logger.warning.assert_called_once_with("unparseable_date", value="next tuesday")

    def test_wrong_type_logged(self):
        with patch("utils.record_adapter.logger") as logger:
            assert parse_local_date(20251215) is None

        logger.warning.assert_called_once()
        assert logger.warning.call_args.args == ("unparseable_date",)
        assert logger.warning.call_args.kwargs["value_type"] == "int"


class TestVarietyRelation:
    """Tests for resolve_variety_name_from_relation()"""

    def test_object(self):
        assert resolve_variety_name_from_relation({"name": "Pea"}) == "Pea"

    def test_list_first_named(self):
        relation = [{"name": ""}, {"name": "Radish"}]

        assert resolve_variety_name_from_relation(relation) == "Radish"

    @pytest.mark.parametrize("relation", [None, [], {}, "Pea"])
    def test_missing(self, relation):
        assert resolve_variety_name_from_relation(relation) is None
