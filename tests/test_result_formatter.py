from datetime import date, datetime, time
from decimal import Decimal

import pytest

from query_agent.adapters.entities import LeaveStatus
from query_agent.core.models import (
    AggregationKind,
    ColumnInfo,
    QueryOperation,
    QueryResult,
    StructuredQuery,
)
from query_agent.execution.result_formatter import ResultFormatter


class TestFormatValue:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "-"),
            (True, "是"),
            (False, "否"),
            (LeaveStatus.APPROVED, "Approved"),
            (datetime(2024, 5, 6, 9, 10), "2024-05-06 09:10"),
            (date(2024, 5, 6), "2024-05-06"),
            (time(8, 5), "08:05"),
            (Decimal("15300"), "15,300.00"),
            (2.5, "2.50"),
            (7, "7"),
            ("张伟", "张伟"),
        ],
    )
    def test_values(self, value, expected):
        assert ResultFormatter.format_value(value) == expected


class TestSummarize:
    def test_aggregation(self):
        query = StructuredQuery(target_entity="LeaveRequest", aggregation=AggregationKind.SUM,
                                aggregation_field="TotalDays")
        result = QueryResult.ok_aggregation(Decimal("6.5"))

        assert ResultFormatter.summarize(result, query) == "查询结果 - 总和: 6.50"

    def test_aggregation_without_query(self):
        assert ResultFormatter.summarize(QueryResult.ok_aggregation(3)) == "查询结果 - 结果: 3"

    def test_insert(self):
        result = QueryResult.ok_modified(QueryOperation.INSERT, 1, inserted_id="abc")

        assert ResultFormatter.summarize(result) == "新增成功，影响 1 条记录\n新记录ID: abc"

    def test_delete(self):
        result = QueryResult.ok_modified(QueryOperation.DELETE, 2)

        assert ResultFormatter.summarize(result) == "删除成功，影响 2 条记录"

    def test_empty_select(self):
        assert ResultFormatter.summarize(QueryResult.ok_rows([])) == "未找到符合条件的数据"

    def test_table(self):
        columns = [
            ColumnInfo(name="EmployeeNumber", display_name="员工编号", data_type="string"),
            ColumnInfo(name="HireDate", display_name="入职日期", data_type="date"),
        ]
        rows = [
            {"EmployeeNumber": "E001", "HireDate": date(2020, 3, 1)},
            {"EmployeeNumber": "E002", "HireDate": None},
        ]
        result = QueryResult.ok_rows(rows, columns)
        result.execution_ms = 12

        lines = ResultFormatter.summarize(result).split("\n")

        assert lines[0] == "查询结果（共 2 条记录）："
        assert lines[2] == "员工编号 | 入职日期"
        assert lines[4] == "E001 | 2020-03-01"
        assert lines[5] == "E002 | -"
        assert lines[-1] == "查询耗时: 12ms"

    def test_long_tables_are_truncated(self):
        rows = [{"Code": f"C{i}"} for i in range(25)]

        text = ResultFormatter.summarize(QueryResult.ok_rows(rows))

        assert "C19" in text
        assert "C20" not in text
        assert "... 还有 5 条记录未显示" in text
