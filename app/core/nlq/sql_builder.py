import logging
from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import schemas
from app.core.nlq.allowlist import SqlAllowlist, allowlist as default_allowlist
from app.core.nlq.errors import SqlValidationError


# -----------------------------------------------------------------------------
# SQL BUILDER MODULE
# Purpose: turn a declarative {table, columns, filters, sort, limit} request
# into parameterized SQL, refusing anything outside the allowlist.
# Values are always bound, identifiers only ever come from the allowlist.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


def _is_sequence_value(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(
        value, (str, bytes, Mapping)
    )


def build_sql(
    request: schemas.SqlQueryRequest,
    allowlist: Optional[SqlAllowlist] = None,
) -> Tuple[str, Dict[str, Any]]:
    """
    Build a SELECT statement and its parameter map.

    Args:
        request: Table, columns, filters, optional sort and limit
        allowlist: Policy to enforce (process-wide one by default)

    Returns:
        (sql, params) where params maps "p0", "p1", ... to bound values

    Raises:
        SqlValidationError: disallowed table/column/operator, no usable
            columns, or an empty/invalid IN list

    Example:
        SELECT productname, price FROM products WHERE price >= :p0 ORDER BY price ASC LIMIT 50
    """
    policy = allowlist or default_allowlist

    if request is None:
        raise SqlValidationError("A SQL request is required.")

    table = (request.table or "").strip()
    if not table:
        raise SqlValidationError("Table is required.")
    if not policy.is_table_allowed(table):
        raise SqlValidationError(f"Table '{table}' is not allowed.")
    table = table.lower()

    # ---------- SELECT ----------
    requested = request.columns or ["*"]
    select_cols = [
        "*" if c == "*" else c.lower()
        for c in requested
        if c == "*" or policy.is_column_allowed(table, c)
    ]
    if not select_cols:
        raise SqlValidationError("No allowed columns were requested.")

    sql = f"SELECT {', '.join(select_cols)} FROM {table}"

    # ---------- WHERE ----------
    params: Dict[str, Any] = {}
    where_clauses: List[str] = []
    p = 0

    for f in request.filters or []:
        if not f.column or not f.column.strip():
            raise SqlValidationError("Filter column is required.")

        column = f.column.strip()
        if not policy.is_column_allowed(table, column):
            raise SqlValidationError(
                f"Column '{column}' is not allowed in {table}."
            )
        column = column.lower()

        op = (f.operator or "").strip().upper()
        if not op or not policy.is_operator_allowed(op):
            raise SqlValidationError(f"Operator '{f.operator}' is not allowed.")

        # Only rewrite when the policy allows the target operator too
        if (
            op == "LIKE"
            and policy.case_insensitive_like
            and policy.is_operator_allowed("ILIKE")
        ):
            op = "ILIKE"

        if op == "IN":
            if not _is_sequence_value(f.value):
                raise SqlValidationError("IN operator requires an array/list value.")

            placeholders = []
            for item in f.value:
                name = f"p{p}"
                p += 1
                placeholders.append(f":{name}")
                params[name] = item
            if not placeholders:
                raise SqlValidationError("IN requires at least one value.")

            where_clauses.append(f"{column} IN ({', '.join(placeholders)})")
        else:
            name = f"p{p}"
            p += 1
            where_clauses.append(f"{column} {op} :{name}")
            params[name] = f.value

    if where_clauses:
        # AND only, no grouping
        sql += " WHERE " + " AND ".join(where_clauses)

    # ---------- ORDER BY ----------
    if request.sort is not None:
        sort_col = (request.sort.column or "").strip()
        if not sort_col:
            raise SqlValidationError("Sort column is required.")
        if not policy.is_column_allowed(table, sort_col):
            raise SqlValidationError(
                f"Sort column '{sort_col}' is not allowed in {table}."
            )

        direction = (request.sort.direction or "").strip().upper()
        direction = "DESC" if direction == "DESC" else "ASC"
        sql += f" ORDER BY {sort_col.lower()} {direction}"

    # ---------- LIMIT ----------
    limit = request.limit if request.limit is not None else policy.default_limit
    if limit <= 0 or limit > policy.max_limit:
        limit = policy.default_limit

    sql += f" LIMIT {limit}"

    return sql, params


async def run_sql(
    db: AsyncSession,
    request: schemas.SqlQueryRequest,
    allowlist: Optional[SqlAllowlist] = None,
) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Build the statement and run it, returning plain dict rows.

    Nothing is written, the session is never committed.
    """
    sql, params = build_sql(request, allowlist)
    logger.info(f"Running allowlisted SQL: {sql} params={list(params)}")

    result = await db.execute(text(sql), params)
    rows = [dict(row) for row in result.mappings().all()]
    return sql, rows
