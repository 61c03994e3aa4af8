"""
Tests for the database tool helpers and the tool dispatcher.
"""
import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from sqlalchemy.exc import OperationalError

from app.ai.assistant import db_tools


class FakeQuery:
    """Records the PostgREST builder calls made by the helpers."""

    def __init__(self, table, calls, rows=None, error=None):
        self.table = table
        self.calls = calls
        self.rows = rows if rows is not None else []
        self.error = error

    def _record(self, name, *args):
        self.calls.append((self.table, name, args))
        return self

    def select(self, *args):
        return self._record("select", *args)

    def eq(self, *args):
        return self._record("eq", *args)

    def in_(self, *args):
        return self._record("in_", *args)

    def is_(self, *args):
        return self._record("is_", *args)

    def limit(self, *args):
        return self._record("limit", *args)

    def execute(self):
        self.calls.append((self.table, "execute", ()))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.rows)


class FakeSupabase:

    def __init__(self, rows=None, failing_selects=()):
        self.calls = []
        self.rows = rows or []
        self.failing_selects = set(failing_selects)

    def table(self, name):
        return _SelectAware(name, self)


class _SelectAware(FakeQuery):
    # fails on execute() when the select expression is in failing_selects

    def __init__(self, name, sb):
        super().__init__(name, sb.calls, rows=sb.rows)
        self.sb = sb

    def select(self, *args):
        if args and args[0] in self.sb.failing_selects:
            self.error = PostgrestAPIError({"message": f"no relationship for {args[0]}", "code": "PGRST200"})
        return super().select(*args)


# ─── query_table ─────────────────────────────────────

def test_query_table_applies_filters_and_limit():
    sb = FakeSupabase(rows=[{"name": "Anna"}])
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table(
            "public.t_employees",
            filters={"is_active": True, "role": ["Fahrer", "Helfer"], "left_at": None},
            limit=20,
        )

    assert result == {"ok": True, "table": "t_employees", "rows": [{"name": "Anna"}], "row_count": 1}
    assert ("t_employees", "select", ("*",)) in sb.calls
    assert ("t_employees", "eq", ("is_active", "true")) in sb.calls
    assert ("t_employees", "in_", ("role", ["Fahrer", "Helfer"])) in sb.calls
    assert ("t_employees", "is_", ("left_at", "null")) in sb.calls
    assert ("t_employees", "limit", (20,)) in sb.calls


def test_query_table_embeds_joins():
    sb = FakeSupabase()
    with patch.object(db_tools, "get_supabase", return_value=sb):
        db_tools.query_table("t_materials", joins=["t_material_prices(*)"])

    assert ("t_materials", "select", ("*, t_material_prices(*)",)) in sb.calls


def test_query_table_clamps_limit():
    sb = FakeSupabase()
    with patch.object(db_tools, "get_supabase", return_value=sb):
        db_tools.query_table("t_projects", limit=1_000_000)
        db_tools.query_table("t_projects", limit=0)

    limits = [args[0] for _, name, args in sb.calls if name == "limit"]
    assert limits == [db_tools.config.MAX_QUERY_LIMIT, 1]


def test_query_table_rejects_bad_identifier_without_calling_db():
    sb = MagicMock()
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table("t_projects; drop table t_projects")

    assert result["ok"] is False
    assert "Invalid identifier" in result["error"]
    sb.table.assert_not_called()


def test_query_table_returns_database_error_to_model():
    sb = MagicMock()
    sb.table.return_value.select.return_value.limit.return_value.execute.side_effect = PostgrestAPIError(
        {"message": 'relation "public.t_nope" does not exist', "code": "42P01"}
    )
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table("t_nope")

    assert result == {"ok": False, "table": "t_nope", "error": 'relation "public.t_nope" does not exist'}


def test_query_table_unreachable_database():
    sb = MagicMock()
    sb.table.return_value.select.return_value.limit.return_value.execute.side_effect = httpx.ConnectError("refused")
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table("t_projects")

    assert result["ok"] is False
    assert "refused" in result["error"]


# ─── query_table_with_join ───────────────────────────

def test_join_uses_column_hint_first():
    sb = FakeSupabase(rows=[{"material_id": 1}])
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table_with_join("t_materials", "t_material_prices", "material_id")

    assert result["ok"] is True
    assert result["join"] == "t_material_prices!material_id(*)"


def test_join_falls_back_to_other_patterns():
    sb = FakeSupabase(
        rows=[{"material_id": 1}],
        failing_selects={"*, t_material_prices(*)"},
    )
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table_with_join("t_materials", "t_material_prices")

    assert result["ok"] is True
    assert result["join"] == "material_prices(*)"


def test_join_reports_all_attempts_when_nothing_works():
    candidates = db_tools._join_candidates("prices", None)
    sb = FakeSupabase(failing_selects={f"*, {c}" for c in candidates})
    with patch.object(db_tools, "get_supabase", return_value=sb):
        result = db_tools.query_table_with_join("t_materials", "prices")

    assert result["ok"] is False
    assert [a["join"] for a in result["attempts"]] == ["prices(*)", "t_prices(*)"]


# ─── schema helpers ──────────────────────────────────

def _fake_session_factory(rows):
    factory = MagicMock()
    db = factory.return_value.__enter__.return_value
    db.execute.return_value.mappings.return_value.all.return_value = rows
    return factory, db


def test_get_table_names_splits_tables_and_views():
    factory, _ = _fake_session_factory([
        {"table_name": "t_projects", "table_type": "BASE TABLE"},
        {"table_name": "v_morningplan_full", "table_type": "VIEW"},
    ])
    with patch.object(db_tools, "SessionLocal", factory):
        result = db_tools.get_table_names()

    assert result == {"tables": ["t_projects"], "views": ["v_morningplan_full"]}
    factory.return_value.__exit__.assert_called_once()


def test_get_table_structure():
    factory, db = _fake_session_factory([
        {"column_name": "employee_id", "data_type": "uuid", "is_nullable": "NO"},
        {"column_name": "hourly_rate", "data_type": "numeric", "is_nullable": "YES"},
    ])
    with patch.object(db_tools, "SessionLocal", factory):
        result = db_tools.get_table_structure("public.t_employees")

    assert result == {
        "table": "t_employees",
        "columns": [
            {"name": "employee_id", "type": "uuid", "nullable": False},
            {"name": "hourly_rate", "type": "numeric", "nullable": True},
        ],
    }
    assert db.execute.call_args.args[1] == {"table": "t_employees"}
    factory.return_value.__exit__.assert_called_once()


def test_get_table_structure_unknown_table():
    factory, _ = _fake_session_factory([])
    with patch.object(db_tools, "SessionLocal", factory):
        result = db_tools.get_table_structure("t_nope")

    assert result == {"ok": False, "error": "Table 't_nope' not found"}


def test_schema_lookup_failure_is_returned_to_model():
    factory, db = _fake_session_factory([])
    db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    with patch.object(db_tools, "SessionLocal", factory):
        result = db_tools.get_table_names()

    assert result["ok"] is False
    assert "connection refused" in result["error"]


# ─── get_current_datetime ────────────────────────────

def test_current_datetime_uses_berlin_time():
    # 23:30 UTC on Dec 9th is already Dec 10th in Berlin
    now = datetime(2025, 12, 9, 23, 30, 5, tzinfo=timezone.utc)
    result = db_tools.get_current_datetime(now)

    assert result == {
        "fullDateTime": "Mittwoch, 10. Dezember 2025, 00:30:05",
        "date": "10.12.2025",
        "time": "00:30",
        "dayOfWeek": "Mittwoch",
        "isoDate": "2025-12-10",
    }


# ─── dispatch ────────────────────────────────────────

def _call(name, arguments="{}", id="call_1"):
    return {"id": id, "type": "function", "function": {"name": name, "arguments": arguments}}


def test_execute_tool_call_returns_json_string_tool_message():
    with patch.object(db_tools, "get_table_structure", return_value={"table": "t_vehicles", "columns": []}) as m:
        msg = db_tools.execute_tool_call(_call("get_table_structure", '{"table_name": "t_vehicles"}'))

    m.assert_called_once_with("t_vehicles")
    assert msg["role"] == "tool"
    assert msg["tool_call_id"] == "call_1"
    assert msg["name"] == "get_table_structure"
    assert json.loads(msg["content"]) == {"table": "t_vehicles", "columns": []}


def test_execute_tool_call_unknown_tool():
    msg = db_tools.execute_tool_call(_call("drop_everything"))
    assert json.loads(msg["content"]) == {"error": "Unknown tool: drop_everything"}


def test_execute_tool_call_invalid_arguments():
    msg = db_tools.execute_tool_call(_call("query_table", '{"table_name": '))
    assert "Invalid arguments for query_table" in json.loads(msg["content"])["error"]


def test_execute_tool_call_serializes_non_json_values():
    rows = {"ok": True, "rows": [{"plan_date": datetime(2025, 12, 10).date()}]}
    with patch.object(db_tools, "query_table", return_value=rows):
        msg = db_tools.execute_tool_call(_call("query_table", '{"table_name": "v_morningplan_full"}'))

    assert json.loads(msg["content"])["rows"] == [{"plan_date": "2025-12-10"}]


def test_every_declared_tool_is_dispatched():
    names = [t["function"]["name"] for t in db_tools.TOOLS]
    assert names == [
        "query_table",
        "query_table_with_join",
        "get_table_names",
        "get_table_structure",
        "get_current_datetime",
    ]
    for name in ["get_table_names", "get_table_structure", "query_table", "query_table_with_join"]:
        with patch.object(db_tools, name, return_value={"ok": True}):
            msg = db_tools.execute_tool_call(_call(name, '{"table_name": "t_projects", "join_table": "t_x"}'))
        assert json.loads(msg["content"]) == {"ok": True}
