"""
SQL Builder - Construct parameterized BigQuery SQL for adapter operations.

SQL construction lives here; the gateway just executes it. Every builder
is a pure function of its inputs: it returns SQL text and appends the
values it binds to a shared ``query_params`` list, so several statements
can be sequenced into one job without parameter name collisions.

Supports:
- find / count / find-by-ids SELECTs with equality, membership and
  OR-combined LIKE search clauses
- INSERT (one or many rows), UPDATE ... SET, DELETE
- Statement batches submitted as a single multi-statement job
- Parameterized queries (no string interpolation of values)
"""

import datetime
import decimal
import json
import re
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from bq_db_adapter.filters import FilterDescriptor


# Engine-assigned name of an unaliased aggregate column
COUNT_FIELD = "f0_"

# BigQuery only accepts OFFSET after LIMIT
MAX_LIMIT = 2**63 - 1


@dataclass
class QueryParam:
    """A single parameterized query parameter for BQ.

    ``array_type`` is set for ARRAY parameters; ``type`` is then the
    element type and ``value`` a list.
    """
    name: str
    type: str
    value: Any
    array_type: bool = False


def quote_identifier(identifier: str) -> str:
    """Quote a (possibly dotted) identifier with backticks, per part."""
    parts = identifier.split(".")
    return ".".join("`" + part.replace("\\", "\\\\").replace("`", "\\`") + "`" for part in parts)


def _bq_type(value: Any) -> str:
    # bool before int, datetime before date: both are subclasses
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT64"
    if isinstance(value, float):
        return "FLOAT64"
    if isinstance(value, decimal.Decimal):
        return "NUMERIC"
    if isinstance(value, datetime.datetime):
        return "TIMESTAMP"
    if isinstance(value, datetime.date):
        return "DATE"
    if isinstance(value, bytes):
        return "BYTES"
    if isinstance(value, (dict, list)):
        return "JSON"
    return "STRING"


def _coerce(value: Any, bq_type: str) -> Any:
    if bq_type == "JSON":
        return json.dumps(value)
    if bq_type == "STRING" and not isinstance(value, str):
        return str(value)
    return value


def _add_param(query_params: list[QueryParam], base: str, value: Any) -> str:
    """Register a value and return its ``@name`` reference.

    A name already bound to the same value is reused; otherwise the name
    gets a numeric suffix until it is unique within the list.
    """
    if isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
        sample = next((v for v in items if v is not None), "")
        bq_type = _bq_type(sample)
        param = QueryParam(
            name="", type=bq_type, value=[_coerce(v, bq_type) for v in items], array_type=True
        )
    else:
        bq_type = _bq_type(value)
        param = QueryParam(name="", type=bq_type, value=_coerce(value, bq_type))

    stem = re.sub(r"\W", "_", base) or "p"
    if stem[0].isdigit():
        stem = f"p_{stem}"

    taken = {p.name: p for p in query_params}
    name, i = stem, 0
    while name in taken:
        existing = taken[name]
        if (existing.type, existing.value, existing.array_type) == (
            param.type, param.value, param.array_type
        ):
            return f"@{name}"
        i += 1
        name = f"{stem}_{i}"

    query_params.append(replace(param, name=name))
    return f"@{name}"


def _equality_clauses(where: Mapping[str, Any], query_params: list[QueryParam]) -> list[str]:
    clauses: list[str] = []
    for col, val in where.items():
        column = quote_identifier(col)
        if val is None:
            clauses.append(f"{column} IS NULL")
        elif isinstance(val, (list, tuple, set, frozenset)):
            if not val:
                # Membership in an empty list matches nothing
                clauses.append("FALSE")
            else:
                clauses.append(f"{column} IN UNNEST({_add_param(query_params, col, val)})")
        else:
            clauses.append(f"{column} = {_add_param(query_params, col, val)}")
    return clauses


def build_where(
    where: Mapping[str, Any],
    query_params: list[QueryParam],
    search: str | None = None,
    search_fields: Iterable[str] = (),
) -> str:
    """Build the WHERE expression (without the keyword).

    Equality clauses are AND-ed. With a search term, LIKE clauses over the
    search fields are OR-ed into one group, and that group is AND-ed with
    the equality group::

        (`age` = @age) AND (`name` LIKE @search OR `tag` LIKE @search)

    An empty filter yields ``TRUE``.
    """
    equality = _equality_clauses(where, query_params)

    like: list[str] = []
    fields = list(search_fields)
    if search and fields:
        ref = _add_param(query_params, "search", f"%{search}%")
        like = [f"{quote_identifier(f)} LIKE {ref}" for f in fields]

    if equality and like:
        return f"({' AND '.join(equality)}) AND ({' OR '.join(like)})"
    if like:
        return f"({' OR '.join(like)})"
    if equality:
        return " AND ".join(equality)
    return "TRUE"


def _order_limit(descriptor: FilterDescriptor) -> str:
    sql = ""
    if descriptor.sort:
        terms = ", ".join(f"{quote_identifier(s.column)} {s.direction}" for s in descriptor.sort)
        sql += f" ORDER BY {terms}"
    if descriptor.limit:
        sql += f" LIMIT {int(descriptor.limit)}"
    elif descriptor.offset:
        sql += f" LIMIT {MAX_LIMIT}"
    if descriptor.offset:
        sql += f" OFFSET {int(descriptor.offset)}"
    return sql


def _where_of(descriptor: FilterDescriptor, query_params: list[QueryParam]) -> str:
    return build_where(
        descriptor.where, query_params, descriptor.search, descriptor.search_fields
    )


def build_find(table: str, descriptor: FilterDescriptor, query_params: list[QueryParam]) -> str:
    """SELECT * with WHERE, ORDER BY, LIMIT and OFFSET from the descriptor."""
    where_sql = _where_of(descriptor, query_params)
    return f"SELECT * FROM {quote_identifier(table)} WHERE {where_sql}{_order_limit(descriptor)}"


def build_find_one(
    table: str, where: Mapping[str, Any], query_params: list[QueryParam]
) -> str:
    """SELECT the first row matching an equality filter."""
    return build_find(table, FilterDescriptor(where=dict(where), limit=1), query_params)


def build_find_by_ids(
    table: str, primary_key: str, ids: Iterable[Any], query_params: list[QueryParam]
) -> str:
    """SELECT the rows whose primary key is in ids."""
    return build_find(table, FilterDescriptor(where={primary_key: list(ids)}), query_params)


def build_count(
    table: str,
    descriptor: FilterDescriptor,
    primary_key: str,
    query_params: list[QueryParam],
) -> str:
    """COUNT over the primary key with the descriptor's filters.

    Sort, limit and offset do not apply to a count. The result column is
    read back as COUNT_FIELD.
    """
    where_sql = _where_of(descriptor, query_params)
    return f"SELECT COUNT({quote_identifier(primary_key)}) FROM {quote_identifier(table)} WHERE {where_sql}"


def build_insert(
    table: str, entities: list[Mapping[str, Any]], query_params: list[QueryParam]
) -> str:
    """INSERT one or many rows.

    The column list is the union of all entity keys in first-seen order;
    an entity missing a column inserts NULL for it.

    Raises:
        ValueError: If there is nothing to insert
    """
    columns: list[str] = []
    for entity in entities:
        for key in entity:
            if key not in columns:
                columns.append(key)
    if not columns:
        raise ValueError("Cannot build INSERT without any entity columns")

    rows = []
    for entity in entities:
        values = []
        for col in columns:
            val = entity.get(col)
            values.append("NULL" if val is None else _add_param(query_params, col, val))
        rows.append(f"({', '.join(values)})")

    col_list = ", ".join(quote_identifier(c) for c in columns)
    return f"INSERT INTO {quote_identifier(table)} ({col_list}) VALUES {', '.join(rows)}"


def build_update(
    table: str,
    where: Mapping[str, Any],
    update: Mapping[str, Any],
    query_params: list[QueryParam],
) -> str:
    """UPDATE ... SET from the update payload, filtered by where.

    Raises:
        ValueError: If the update payload is empty
    """
    if not update:
        raise ValueError("Cannot build UPDATE without any values to set")

    assignments = []
    for col, val in update.items():
        value_sql = "NULL" if val is None else _add_param(query_params, col, val)
        assignments.append(f"{quote_identifier(col)} = {value_sql}")

    where_sql = build_where(where, query_params)
    return f"UPDATE {quote_identifier(table)} SET {', '.join(assignments)} WHERE {where_sql}"


def build_delete(table: str, where: Mapping[str, Any], query_params: list[QueryParam]) -> str:
    """DELETE the rows matching where."""
    return f"DELETE FROM {quote_identifier(table)} WHERE {build_where(where, query_params)}"


class StatementBatch:
    """Ordered statements submitted as one job.

    All statements share one parameter list. The engine runs them in
    order and returns the rows of the last statement only, so a result
    needed from an earlier statement must be fetched by a separate job.

    Usage:
        batch = StatementBatch()
        batch.add(build_update(table, where, update, batch.query_params))
        batch.add(build_find(table, FilterDescriptor(where=where), batch.query_params))
        sql = batch.render()
    """

    def __init__(self):
        self.statements: list[str] = []
        self.query_params: list[QueryParam] = []

    def add(self, sql: str) -> "StatementBatch":
        self.statements.append(sql)
        return self

    def render(self) -> str:
        """Join the statements into one submission body."""
        if not self.statements:
            raise ValueError("Cannot render an empty statement batch")
        if len(self.statements) == 1:
            return self.statements[0]
        return ";\n".join(self.statements) + ";"

    def __len__(self) -> int:
        return len(self.statements)
