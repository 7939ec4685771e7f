"""
Diagnostic rendering of structured queries.

Produces SQL-like text describing what the executor ran. The text is for
logs and diagnostics only and is never executed anywhere.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from query_agent.core.models import (
    AggregationKind,
    FilterCondition,
    FilterOperator,
    QueryOperation,
    StructuredQuery,
)

_SYMBOLS = {
    FilterOperator.EQUAL: "=",
    FilterOperator.NOT_EQUAL: "<>",
    FilterOperator.GREATER_THAN: ">",
    FilterOperator.GREATER_THAN_OR_EQUAL: ">=",
    FilterOperator.LESS_THAN: "<",
    FilterOperator.LESS_THAN_OR_EQUAL: "<=",
}

_AGGREGATES = {
    AggregationKind.COUNT: "COUNT(*)",
    AggregationKind.COUNT_DISTINCT: "COUNT(DISTINCT {field})",
    AggregationKind.SUM: "SUM({field})",
    AggregationKind.AVG: "AVG({field})",
    AggregationKind.MIN: "MIN({field})",
    AggregationKind.MAX: "MAX({field})",
}


def _ident(path: str) -> str:
    return ".".join(f"[{part}]" for part in path.split("."))


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Enum):
        return str(value.value) if isinstance(value.value, int) else f"'{value.value}'"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return f"'{value.isoformat()}'"
    return "'" + str(value).replace("'", "''") + "'"


def _condition(condition: FilterCondition) -> Optional[str]:
    field = _ident(condition.field)
    operator = condition.operator
    value = condition.value
    if operator is FilterOperator.IS_NULL:
        return f"{field} IS NULL"
    if operator is FilterOperator.IS_NOT_NULL:
        return f"{field} IS NOT NULL"
    if operator in _SYMBOLS:
        if value is None and operator is FilterOperator.EQUAL:
            return f"{field} IS NULL"
        if value is None and operator is FilterOperator.NOT_EQUAL:
            return f"{field} IS NOT NULL"
        return f"{field} {_SYMBOLS[operator]} {_literal(value)}"
    if operator is FilterOperator.CONTAINS:
        return f"{field} LIKE {_literal(f'%{value}%')}"
    if operator is FilterOperator.STARTS_WITH:
        return f"{field} LIKE {_literal(f'{value}%')}"
    if operator is FilterOperator.ENDS_WITH:
        return f"{field} LIKE {_literal(f'%{value}')}"
    if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
        items = value if isinstance(value, (list, tuple)) else [value]
        if not items:
            return "1 = 0" if operator is FilterOperator.IN else "1 = 1"
        keyword = "IN" if operator is FilterOperator.IN else "NOT IN"
        return f"{field} {keyword} ({', '.join(_literal(item) for item in items)})"
    if operator is FilterOperator.BETWEEN and isinstance(value, (list, tuple)) and len(value) == 2:
        return f"{field} BETWEEN {_literal(value[0])} AND {_literal(value[1])}"
    return None


def render_where(filters: List[FilterCondition]) -> str:
    """Render filters with the same left-to-right grouping the executor applies."""
    text = ""
    link = "AND"
    for condition in filters:
        clause = _condition(condition)
        if clause is None:
            continue
        text = clause if not text else f"({text} {link} {clause})"
        link = condition.logical_operator.value
    return text


def render_query(query: StructuredQuery, max_rows: Optional[int] = None) -> str:
    """
    Render a structured query as SQL-like diagnostic text.

    Args:
        query: The query as executed (after validation and scoping)
        max_rows: Row cap applied on top of the query's own limit

    Returns:
        Single-line diagnostic text
    """
    table = _ident(query.target_entity)
    where = render_where(query.filters)
    where_sql = f" WHERE {where}" if where else ""

    if query.operation is QueryOperation.INSERT:
        columns = ", ".join(_ident(name) for name in query.update_values)
        values = ", ".join(_literal(value) for value in query.update_values.values())
        return f"INSERT INTO {table} ({columns}) VALUES ({values})"
    if query.operation is QueryOperation.UPDATE:
        assignments = ", ".join(
            f"{_ident(name)} = {_literal(value)}" for name, value in query.update_values.items()
        )
        return f"UPDATE {table} SET {assignments}{where_sql}"
    if query.operation is QueryOperation.DELETE:
        return f"DELETE FROM {table}{where_sql}"

    joins = "".join(
        f" {join.join_type.upper()} JOIN {_ident(join.entity)}"
        + (f" AS [{join.alias}]" if join.alias else "")
        + (f" ON {join.on}" if join.on else "")
        for join in query.joins
    )

    if query.aggregation is not None:
        template = _AGGREGATES[query.aggregation]
        aggregate = template.format(field=_ident(query.aggregation_field or "*"))
        group_columns = ", ".join(_ident(name) for name in query.group_by_fields)
        if group_columns:
            return (
                f"SELECT {group_columns}, {aggregate} FROM {table}{joins}{where_sql}"
                f" GROUP BY {group_columns}"
            )
        return f"SELECT {aggregate} FROM {table}{joins}{where_sql}"

    columns = ", ".join(_ident(name) for name in query.select_fields) or "*"
    sql = f"SELECT {columns} FROM {table}{joins}{where_sql}"
    if query.order_by:
        keys = ", ".join(
            f"{_ident(clause.field)} {'DESC' if clause.descending else 'ASC'}"
            for clause in query.order_by
        )
        sql += f" ORDER BY {keys}"
    take = query.limit if max_rows is None else min(query.limit, max_rows)
    return f"{sql} OFFSET {query.offset} ROWS FETCH NEXT {take} ROWS ONLY"
