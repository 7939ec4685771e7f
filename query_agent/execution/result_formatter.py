"""
Result formatting utilities.

Turns a QueryResult into the short text reply shown to the user.
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic.alias_generators import to_pascal

from query_agent.core.models import AggregationKind, QueryOperation, QueryResult, StructuredQuery

AGGREGATION_NAMES = {
    AggregationKind.COUNT: "数量",
    AggregationKind.COUNT_DISTINCT: "去重数量",
    AggregationKind.SUM: "总和",
    AggregationKind.AVG: "平均值",
    AggregationKind.MIN: "最小值",
    AggregationKind.MAX: "最大值",
}

OPERATION_NAMES = {
    QueryOperation.INSERT: "新增",
    QueryOperation.UPDATE: "更新",
    QueryOperation.DELETE: "删除",
}


class ResultFormatter:
    """Formats query results as plain-text summaries."""

    MAX_DISPLAY_ROWS = 20
    MAX_RULE_WIDTH = 80

    @staticmethod
    def format_value(value: Any) -> str:
        if value is None:
            return "-"
        if isinstance(value, bool):
            return "是" if value else "否"
        if isinstance(value, Enum):
            return to_pascal(value.name.lower())
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M")
        if isinstance(value, date):
            return value.strftime("%Y-%m-%d")
        if isinstance(value, time):
            return value.strftime("%H:%M")
        if isinstance(value, (Decimal, float)):
            return f"{value:,.2f}"
        return str(value)

    @classmethod
    def summarize(cls, result: QueryResult, query: Optional[StructuredQuery] = None) -> str:
        """
        Render a successful result as a reply.

        Args:
            result: Executor output
            query: The query that produced it; used to name the aggregation

        Returns:
            Human readable summary
        """
        if result.is_aggregation:
            kind = query.aggregation if query is not None else None
            name = AGGREGATION_NAMES.get(kind, "结果")
            return f"查询结果 - {name}: {cls.format_value(result.aggregation_value)}"

        if result.operation is not QueryOperation.SELECT:
            lines = [f"{OPERATION_NAMES.get(result.operation, '操作')}成功，影响 {result.affected_rows} 条记录"]
            if result.inserted_id is not None:
                lines.append(f"新记录ID: {result.inserted_id}")
            return "\n".join(lines)

        if not result.rows:
            return "未找到符合条件的数据"

        return "\n".join(cls._table(result))

    @classmethod
    def _table(cls, result: QueryResult) -> List[str]:
        lines = [f"查询结果（共 {result.row_count} 条记录）：", ""]
        if result.columns:
            headers = [column.display_name or column.name for column in result.columns]
            lines.append(" | ".join(headers))
            lines.append("-" * min(cls.MAX_RULE_WIDTH, sum(len(header) + 3 for header in headers)))

        shown = result.rows[: cls.MAX_DISPLAY_ROWS]
        for row in shown:
            if result.columns:
                values = [row.get(column.name) for column in result.columns]
            else:
                values = list(row.values())
            lines.append(" | ".join(cls.format_value(value) for value in values))

        hidden = len(result.rows) - len(shown)
        if hidden > 0:
            lines.append(f"... 还有 {hidden} 条记录未显示")

        lines.append("")
        lines.append(f"查询耗时: {result.execution_ms}ms")
        return lines
