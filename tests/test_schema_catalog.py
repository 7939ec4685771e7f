from datetime import date
from uuid import UUID

import pytest

from query_agent.core.models import JoinClause
from query_agent.schema.type_mappings import NumericKind, TypeMapper


class TestSchemaCatalog:
    @pytest.mark.parametrize(
        "alias, expected",
        [
            ("Employee", "Employee"),
            ("employee", "Employee"),
            ("员工", "Employee"),
            ("考勤", "AttendanceRecord"),
            ("请假申请", "LeaveRequest"),
            ("Spaceship", None),
        ],
    )
    def test_find_entity_by_alias(self, catalog, alias, expected):
        assert catalog.find_entity_by_alias(alias) == expected

    @pytest.mark.parametrize(
        "alias, expected",
        [("EmployeeNumber", "EmployeeNumber"), ("hiredate", "HireDate"), ("工号", "EmployeeNumber"),
         ("入职日期", "HireDate"), ("身高", None)],
    )
    def test_find_field_by_alias(self, catalog, alias, expected):
        assert catalog.find_field_by_alias("Employee", alias) == expected

    def test_field_lookups(self, catalog):
        assert catalog.field_exists("leaverequest", "TotalDays")
        assert not catalog.field_exists("LeaveRequest", "Salary")
        assert catalog.find_field_by_alias("Spaceship", "Id") is None
        assert catalog.get_field("Employee", "IdCardNumber").is_sensitive

    def test_resolve_path(self, catalog):
        entity, field = catalog.resolve_path("Employee.FirstName", "AttendanceRecord")
        assert (entity, field.name) == ("Employee", "FirstName")

        entity, field = catalog.resolve_path("LateMinutes", "AttendanceRecord")
        assert (entity, field.name) == ("AttendanceRecord", "LateMinutes")

        assert catalog.resolve_path("Employee.Nickname", "AttendanceRecord") is None

    def test_scope_limits_qualifiers(self, catalog):
        joins = [JoinClause(entity="Employee", on="EmployeeId = e.Id", alias="e")]
        scope = catalog.scope_for("AttendanceRecord", joins)

        assert scope == {"attendancerecord": "AttendanceRecord", "employee": "Employee", "e": "Employee"}
        assert catalog.resolve_path("e.LastName", "AttendanceRecord", scope)[0] == "Employee"
        assert catalog.resolve_path("LeaveType.Name", "AttendanceRecord", scope) is None

    def test_prompt_description(self, catalog):
        text = catalog.prompt_description()

        assert "### Employee (员工)" in text
        assert "- EmployeeNumber (员工编号): string, 必填 (别名: 工号, 编号)" in text
        assert "OnLeave=休假中" in text
        assert "IdCardNumber" not in text
        assert catalog.prompt_description() is text

    def test_examples_are_copies(self, catalog):
        examples = catalog.examples()
        examples.clear()

        assert len(catalog.examples()) == 5


class TestTypeMapper:
    @pytest.mark.parametrize(
        "declared, expected",
        [("DateOnly", date), ("uuid", UUID), ("Guid", UUID), ("integer", int), ("whatever", str)],
    )
    def test_python_types(self, declared, expected):
        assert TypeMapper.get_python_type(declared) is expected

    def test_numeric_kinds(self):
        assert TypeMapper.numeric_kind("long") is NumericKind.INT
        assert TypeMapper.numeric_kind("number") is NumericKind.DECIMAL
        assert TypeMapper.is_numeric("double")
        assert not TypeMapper.is_numeric("string")
        assert TypeMapper.is_text(" String ")
