# backend/app/ai/assistant/db_tools.py

import re
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ... import config
from ...database import SessionLocal, get_supabase

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# Tools exposed to the LLM
# ─────────────────────────────────────────

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "query_table",
            "description": (
                "Query one table or view with optional filters. Use this for simple queries "
                "and for the pre-built views (v_morningplan_full, v_project_full, ...)."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "table_name": {
                        "type": "string",
                        "description": "Name of the table or view, e.g. \"v_morningplan_full\"",
                    },
                    "filters": {
                        "type": "object",
                        "description": (
                            "Optional equality filters (column → value). A list value means "
                            "\"one of\", null means \"is null\"."
                        ),
                        "additionalProperties": True,
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of rows to return (default: 100)",
                        "default": 100,
                    },
                    "joins": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": (
                            "Optional related tables to embed, in Supabase syntax, "
                            "e.g. [\"t_material_prices(*)\"]"
                        ),
                    },
                },
                "required": ["table_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "query_table_with_join",
            "description": (
                "Query a table together with a related table. For \"Einkaufspreise der "
                "Materialien\" use t_materials with t_material_prices. Several join patterns "
                "are tried automatically, so the structure does not need to be checked first."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "table_name": {
                        "type": "string",
                        "description": "Main table, e.g. \"t_materials\"",
                    },
                    "join_table": {
                        "type": "string",
                        "description": "Related table, e.g. \"t_material_prices\"",
                    },
                    "join_column": {
                        "type": "string",
                        "description": "Optional foreign key column, e.g. \"material_id\"",
                    },
                    "filters": {
                        "type": "object",
                        "description": "Optional equality filters on the main table",
                        "additionalProperties": True,
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of rows to return (default: 100)",
                        "default": 100,
                    },
                },
                "required": ["table_name", "join_table"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_table_names",
            "description": "List the tables and views available in the database.",
            "parameters": {
                "type": "object",
                "properties": {},
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_table_structure",
            "description": (
                "Get the columns of a table or view. Many pre-built views exist "
                "(v_morningplan_full, v_project_full, v_employee_kpi, ...); check these "
                "before joining tables by hand."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "table_name": {
                        "type": "string",
                        "description": "e.g. \"v_morningplan_full\" or \"t_employees\"",
                    },
                },
                "required": ["table_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_current_datetime",
            "description": (
                "Current date and time in Berlin (Europe/Berlin). Call this before answering "
                "anything about \"heute\", \"morgen\", \"gestern\", \"diese Woche\", etc. "
                "Use isoDate in filters."
            ),
            "parameters": {
                "type": "object",
                "properties": {},
                "required": [],
            },
        },
    },
]


# ─────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _clean_identifier(name: Any) -> str:
    """
    "public.t_projects" → "t_projects". Raises ValueError for anything that is
    not a plain identifier.
    """
    if not isinstance(name, str):
        raise ValueError(f"Invalid identifier: {name!r}")
    ident = name.strip().strip('"')
    if ident.lower().startswith("public."):
        ident = ident[len("public."):]
    if not _IDENT_RE.match(ident):
        raise ValueError(f"Invalid identifier: {name!r}")
    return ident


def _clamp_limit(limit: Any) -> int:
    try:
        n = int(limit)
    except (TypeError, ValueError):
        n = config.DEFAULT_QUERY_LIMIT
    return max(1, min(n, config.MAX_QUERY_LIMIT))


def _filter_value(value: Any) -> Any:
    # PostgREST expects lowercase booleans
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _apply_filters(query, filters: Optional[Dict[str, Any]]):
    for column, value in (filters or {}).items():
        col = _clean_identifier(column)
        if value is None:
            query = query.is_(col, "null")
        elif isinstance(value, (list, tuple)):
            query = query.in_(col, [_filter_value(v) for v in value])
        else:
            query = query.eq(col, _filter_value(value))
    return query


def _describe_error(e: Exception) -> str:
    if isinstance(e, PostgrestAPIError):
        return e.message or str(e)
    return str(e)


def _run_select(table: str, select: str, filters: Optional[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    query = get_supabase().table(table).select(select)
    query = _apply_filters(query, filters)
    resp = query.limit(limit).execute()
    return resp.data or []


# ─────────────────────────────────────────
# Query helpers
# ─────────────────────────────────────────

def query_table(
    table_name: str,
    filters: Optional[Dict[str, Any]] = None,
    limit: int = config.DEFAULT_QUERY_LIMIT,
    joins: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Read rows from one table or view through the hosted database client.

    - On success: {"ok": True, "table": ..., "rows": [...], "row_count": n}
    - On failure: {"ok": False, "table": ..., "error": ...}
    """
    try:
        table = _clean_identifier(table_name)
        select = ", ".join(["*", *[j.strip() for j in (joins or []) if j and j.strip()]])
        rows = _run_select(table, select, filters, _clamp_limit(limit))
    except (ValueError, PostgrestAPIError, httpx.HTTPError) as e:
        logger.warning("[query_table] %s failed: %s", table_name, _describe_error(e))
        return {"ok": False, "table": table_name, "error": _describe_error(e)}

    logger.info("[query_table] %s → %d row(s)", table, len(rows))
    return {"ok": True, "table": table, "rows": rows, "row_count": len(rows)}


def _join_candidates(join_table: str, join_column: Optional[str]) -> List[str]:
    """
    Embed expressions to try, most specific first:

      ("t_material_prices", "material_id")
    -> ["t_material_prices!material_id(*)", "t_material_prices(*)", "material_prices(*)"]
    """
    names = [join_table]
    if join_table.startswith("t_"):
        names.append(join_table[2:])
    else:
        names.append(f"t_{join_table}")

    out: List[str] = []
    for name in names:
        if join_column:
            out.append(f"{name}!{join_column}(*)")
        out.append(f"{name}(*)")
    return out


def query_table_with_join(
    table_name: str,
    join_table: str,
    join_column: Optional[str] = None,
    filters: Optional[Dict[str, Any]] = None,
    limit: int = config.DEFAULT_QUERY_LIMIT,
) -> Dict[str, Any]:
    """
    Read rows of `table_name` with the related rows of `join_table` embedded.
    Tries each candidate join pattern until one is accepted by the database.
    """
    try:
        table = _clean_identifier(table_name)
        related = _clean_identifier(join_table)
        column = _clean_identifier(join_column) if join_column else None
    except ValueError as e:
        return {"ok": False, "table": table_name, "error": str(e)}

    n = _clamp_limit(limit)
    attempts: List[Dict[str, str]] = []

    for embed in _join_candidates(related, column):
        try:
            rows = _run_select(table, f"*, {embed}", filters, n)
        except (ValueError, PostgrestAPIError) as e:
            attempts.append({"join": embed, "error": _describe_error(e)})
            continue
        except httpx.HTTPError as e:
            # database unreachable; other patterns will not fare better
            logger.warning("[query_table_with_join] %s unreachable: %s", table, e)
            return {"ok": False, "table": table, "error": str(e)}

        logger.info("[query_table_with_join] %s + %s → %d row(s)", table, embed, len(rows))
        return {"ok": True, "table": table, "join": embed, "rows": rows, "row_count": len(rows)}

    logger.warning("[query_table_with_join] no join pattern worked for %s + %s", table, related)
    return {
        "ok": False,
        "table": table,
        "error": f"Could not join {table} with {related}",
        "attempts": attempts,
    }


def get_table_names() -> Dict[str, Any]:
    """
    Tables and views of the public schema.
    """
    try:
        with SessionLocal() as db:
            rows = db.execute(
                text(
                    """
                    SELECT table_name, table_type
                    FROM information_schema.tables
                    WHERE table_schema = 'public'
                    ORDER BY table_name
                    """
                )
            ).mappings().all()
    except SQLAlchemyError as e:
        logger.warning("[get_table_names] failed: %s", e)
        return {"ok": False, "error": str(e)}

    return {
        "tables": [r["table_name"] for r in rows if r["table_type"] == "BASE TABLE"],
        "views": [r["table_name"] for r in rows if r["table_type"] == "VIEW"],
    }


def get_table_structure(table_name: str) -> Dict[str, Any]:
    """
    Column name, data type, and nullability for a table or view in public schema.
    """
    try:
        table = _clean_identifier(table_name)
    except ValueError as e:
        return {"ok": False, "error": str(e)}

    try:
        with SessionLocal() as db:
            rows = db.execute(
                text(
                    """
                    SELECT column_name, data_type, is_nullable
                    FROM information_schema.columns
                    WHERE table_schema = 'public'
                      AND table_name = :table
                    ORDER BY ordinal_position
                    """
                ),
                {"table": table},
            ).mappings().all()
    except SQLAlchemyError as e:
        logger.warning("[get_table_structure] %s failed: %s", table, e)
        return {"ok": False, "error": str(e)}

    if not rows:
        return {"ok": False, "error": f"Table '{table}' not found"}

    return {
        "table": table,
        "columns": [
            {
                "name": r["column_name"],
                "type": r["data_type"],
                "nullable": (r["is_nullable"] == "YES"),
            }
            for r in rows
        ],
    }


_WEEKDAYS_DE = ["Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag", "Sonntag"]
_MONTHS_DE = [
    "Januar", "Februar", "März", "April", "Mai", "Juni",
    "Juli", "August", "September", "Oktober", "November", "Dezember",
]


def get_current_datetime(now: Optional[datetime] = None) -> Dict[str, str]:
    """
    Current date/time in the assistant's time zone, in the formats the
    prompt refers to. isoDate is the local date, suitable for SQL filters.
    """
    tz = ZoneInfo(config.ASSISTANT_TIMEZONE)
    local = (now or datetime.now(tz)).astimezone(tz)
    day_name = _WEEKDAYS_DE[local.weekday()]

    return {
        "fullDateTime": (
            f"{day_name}, {local.day}. {_MONTHS_DE[local.month - 1]} {local.year}, "
            f"{local:%H:%M:%S}"
        ),
        "date": f"{local:%d.%m.%Y}",
        "time": f"{local:%H:%M}",
        "dayOfWeek": day_name,
        "isoDate": local.date().isoformat(),
    }


# ─────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────

def execute_tool_call(tool_call: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run the helper for a single tool_call and return a tool message dict
    that can be appended to the messages list.

    tool_call: {"id": ..., "type": "function", "function": {"name": ..., "arguments": "<json>"}}
    """
    fn = tool_call.get("function") or {}
    name = fn.get("name") or ""

    try:
        args = json.loads(fn.get("arguments") or "{}")
        if not isinstance(args, dict):
            raise ValueError("arguments must be a JSON object")
    except ValueError as e:
        logger.warning("[tool] %s: invalid arguments %r", name, fn.get("arguments"))
        result: Any = {"error": f"Invalid arguments for {name}: {e}"}
    else:
        logger.info("[tool] %s %s", name, args)
        if name == "query_table":
            result = query_table(
                args.get("table_name"),
                filters=args.get("filters"),
                limit=args.get("limit", config.DEFAULT_QUERY_LIMIT),
                joins=args.get("joins"),
            )
        elif name == "query_table_with_join":
            result = query_table_with_join(
                args.get("table_name"),
                args.get("join_table"),
                join_column=args.get("join_column"),
                filters=args.get("filters"),
                limit=args.get("limit", config.DEFAULT_QUERY_LIMIT),
            )
        elif name == "get_table_names":
            result = get_table_names()
        elif name == "get_table_structure":
            result = get_table_structure(args.get("table_name"))
        elif name == "get_current_datetime":
            result = get_current_datetime()
        else:
            result = {"error": f"Unknown tool: {name}"}

    return {
        "role": "tool",
        "tool_call_id": tool_call.get("id", ""),
        "name": name,
        "content": json.dumps(result, default=str),
    }
