"""
Shared test fixtures.

The Supabase double keeps rows in memory and really applies the filters,
updates and upserts the services issue, so tests can assert on the
resulting table state instead of on mock call arguments.
"""

import os
import re
import sys
from pathlib import Path

# Settings need Supabase credentials at import time
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import pytest
from unittest.mock import patch
from contextlib import ExitStack
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Generator, Optional


# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data
        self.count = count


def _comparable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def _compare(left: Any, right: Any) -> Optional[int]:
    """-1/0/1, or None when either side is NULL."""
    left, right = _comparable(left), _comparable(right)
    if left is None or right is None:
        return None
    if isinstance(left, str) and not isinstance(right, str):
        right = str(right)
    elif isinstance(right, str) and not isinstance(left, str):
        left = str(left)
    return (left > right) - (left < right)


def _like(pattern: str) -> re.Pattern:
    escaped = re.escape(pattern).replace("%", ".*").replace("_", ".")
    return re.compile(f"^{escaped}$", re.IGNORECASE | re.DOTALL)


class MockSupabaseQuery:
    """Chainable query against one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._operation = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._single = False
        self._maybe_single = False
        self._count_requested = False

    # --- operations ---

    def select(self, *columns, count: Optional[str] = None, **kwargs):
        self._count_requested = count is not None
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._operation = "update"
        self._payload = data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None, **kwargs):
        self._operation = "upsert"
        self._payload = data
        self._on_conflict = on_conflict
        return self

    def delete(self):
        self._operation = "delete"
        return self

    # --- filters ---

    def eq(self, column, value):
        self._filters.append(lambda row: _compare(row.get(column), value) == 0)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: _compare(row.get(column), value) not in (0, None))
        return self

    def gt(self, column, value):
        self._filters.append(lambda row: _compare(row.get(column), value) == 1)
        return self

    def gte(self, column, value):
        self._filters.append(lambda row: _compare(row.get(column), value) in (0, 1))
        return self

    def lt(self, column, value):
        self._filters.append(lambda row: _compare(row.get(column), value) == -1)
        return self

    def lte(self, column, value):
        self._filters.append(lambda row: _compare(row.get(column), value) in (-1, 0))
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(
            lambda row: any(_compare(row.get(column), v) == 0 for v in values)
        )
        return self

    def is_(self, column, value):
        if value in (None, "null"):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) == value)
        return self

    def ilike(self, column, pattern):
        regex = _like(pattern)
        self._filters.append(lambda row: bool(regex.match(str(row.get(column) or ""))))
        return self

    # --- shaping ---

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        return self

    def single(self):
        self._single = True
        return self

    def maybe_single(self):
        self._maybe_single = True
        return self

    # --- execution ---

    def _matching(self) -> list[dict]:
        rows = self._client.rows(self._table)
        return [row for row in rows if all(f(row) for f in self._filters)]

    def execute(self) -> MockSupabaseResponse:
        self._client.record(self._table, self._operation)
        self._client.maybe_fail(self._table, self._operation)

        if self._operation == "insert":
            return MockSupabaseResponse(data=self._client.insert_rows(self._table, self._payload))
        if self._operation == "upsert":
            return MockSupabaseResponse(
                data=self._client.upsert_rows(self._table, self._payload, self._on_conflict)
            )
        if self._operation == "update":
            updated = []
            for row in self._matching():
                row.update(self._payload)
                updated.append(dict(row))
            return MockSupabaseResponse(data=updated, count=len(updated))
        if self._operation == "delete":
            doomed = self._matching()
            self._client.remove_rows(self._table, doomed)
            return MockSupabaseResponse(data=[dict(r) for r in doomed])

        rows = [dict(row) for row in self._matching()]
        for column, desc in reversed(self._order):
            rows.sort(
                key=lambda r: (r.get(column) is None, _comparable(r.get(column)) or 0),
                reverse=desc,
            )
        total = len(rows)
        if self._limit is not None:
            rows = rows[: self._limit]

        if self._single or self._maybe_single:
            return MockSupabaseResponse(data=rows[0] if rows else None, count=total)
        return MockSupabaseResponse(data=rows, count=total if self._count_requested else len(rows))


class MockSupabaseRpc:
    def __init__(self, client: "MockSupabaseClient", name: str, params: dict):
        self._client = client
        self._name = name
        self._params = params

    def execute(self) -> MockSupabaseResponse:
        self._client.record(f"rpc:{self._name}", "rpc")
        self._client.rpc_calls.append((self._name, self._params))
        self._client.maybe_fail(f"rpc:{self._name}", "rpc")
        handler = self._client.rpc_handlers.get(self._name)
        data = handler(self._client, self._params) if handler else None
        return MockSupabaseResponse(data=data)


class MockSupabaseClient:
    """
    In-memory Supabase client.

    Usage:
        mock_supabase.set_table_data("trays", [TrayFactory.create()])
        mock_supabase.fail_on("trays", "update", after=1)
        mock_supabase.set_rpc("finalize_todays_deliveries", lambda db, params: {...})
    """

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self._failures: dict[tuple[str, str], dict] = {}
        self._next_ids: dict[str, int] = {}
        self.calls: list[tuple[str, str]] = []
        self.rpc_calls: list[tuple[str, dict]] = []
        self.rpc_handlers: dict[str, Callable[["MockSupabaseClient", dict], Any]] = {}

    # --- setup ---

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure rows for a table (copied)."""
        self._tables[table_name] = [dict(row) for row in data]

    def set_rpc(self, name: str, handler: Callable[["MockSupabaseClient", dict], Any]):
        self.rpc_handlers[name] = handler

    def fail_on(self, table: str, operation: str, after: int = 0, message: str = "connection reset"):
        """Make the (after+1)-th and later calls of an operation raise."""
        self._failures[(table, operation)] = {"after": after, "seen": 0, "message": message}

    # --- inspection ---

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def record(self, table: str, operation: str):
        self.calls.append((table, operation))

    def query_count(self, operation: str = "select") -> int:
        return sum(1 for _, op in self.calls if op == operation)

    def reset_calls(self):
        self.calls.clear()
        self.rpc_calls.clear()

    def maybe_fail(self, table: str, operation: str):
        failure = self._failures.get((table, operation))
        if failure is None:
            return
        failure["seen"] += 1
        if failure["seen"] > failure["after"]:
            raise Exception(failure["message"])

    # --- mutation helpers ---

    def insert_rows(self, table: str, data) -> list[dict]:
        items = data if isinstance(data, list) else [data]
        inserted = []
        for item in items:
            row = dict(item)
            self._next_ids[table] = self._next_ids.get(table, 1000) + 1
            row.setdefault("id", self._next_ids[table])
            self.rows(table).append(row)
            inserted.append(dict(row))
        return inserted

    def upsert_rows(self, table: str, data, on_conflict: Optional[str]) -> list[dict]:
        items = data if isinstance(data, list) else [data]
        keys = [k.strip() for k in (on_conflict or "id").split(",")]
        saved = []
        for item in items:
            existing = next(
                (
                    row for row in self.rows(table)
                    if all(_compare(row.get(k), item.get(k)) == 0 for k in keys)
                ),
                None,
            )
            if existing is not None:
                existing.update(item)
                saved.append(dict(existing))
            else:
                saved.extend(self.insert_rows(table, item))
        return saved

    def remove_rows(self, table: str, doomed: list[dict]):
        ids = {id(row) for row in doomed}
        self._tables[table] = [row for row in self.rows(table) if id(row) not in ids]

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)

    def from_(self, name: str) -> MockSupabaseQuery:
        return self.table(name)

    def rpc(self, name: str, params: Optional[dict] = None) -> MockSupabaseRpc:
        return MockSupabaseRpc(self, name, params or {})


# ===================
# FIXTURES
# ===================

SERVICE_MODULES = [
    "services.tray_eligibility_service",
    "services.gap_service",
    "services.remediation_service",
    "services.fulfillment_action_service",
    "services.soaked_seed_service",
    "services.tray_service",
    "services.activity_service",
]

SINGLETONS = {
    "services.tray_eligibility_service": "_tray_eligibility_service",
    "services.gap_service": "_gap_service",
    "services.remediation_service": "_remediation_service",
    "services.fulfillment_action_service": "_fulfillment_action_service",
    "services.soaked_seed_service": "_soaked_seed_service",
    "services.tray_service": "_tray_service",
    "services.activity_service": "_activity_service",
    "services.session_service": "_session_service",
}


def _reset_singletons():
    import importlib

    for module_name, attribute in SINGLETONS.items():
        module = importlib.import_module(module_name)
        setattr(module, attribute, None)


@pytest.fixture(autouse=True)
def reset_service_singletons():
    """Every test starts with fresh service instances."""
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """Create an empty in-memory Supabase client."""
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with the mock in every service.

    Usage:
        def test_something(mock_db):
            mock_db.set_table_data("trays", [...])
    """
    with ExitStack() as stack:
        stack.enter_context(patch("config.database.get_supabase_client", return_value=mock_supabase))
        for module_name in SERVICE_MODULES:
            stack.enter_context(
                patch(f"{module_name}.get_supabase_client", return_value=mock_supabase)
            )
        yield mock_supabase


@pytest.fixture
def today() -> date:
    """Fixed reference date used as "today"."""
    return date(2025, 6, 15)


@pytest.fixture
def farm_uuid() -> str:
    return "farm-uuid-1"


@pytest.fixture
def test_client_with_mock_db(mock_db, tmp_path):
    """
    Create FastAPI test client with mocked database and an empty session.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_db):
            mock_db.set_table_data("trays", [...])
            response = test_client_with_mock_db.get(
                "/api/trays/active-count", headers={"X-Farm-UUID": "farm-uuid-1"}
            )
    """
    from fastapi.testclient import TestClient
    import services.session_service as session_module
    from services.session_service import SessionService
    from routes.order_gaps import reset_resolved_gaps
    from main import app

    session_module._session_service = SessionService(str(tmp_path / "session.json"))
    reset_resolved_gaps()
    yield TestClient(app)
    reset_resolved_gaps()
