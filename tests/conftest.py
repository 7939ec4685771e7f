import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from query_agent.adapters.entities import (
    ENTITY_MODELS,
    AttendanceRecord,
    AttendanceStatus,
    Employee,
    EmploymentStatus,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    OrganizationUnit,
    PayrollRecord,
)
from query_agent.adapters.memory import InMemoryEntityStore
from query_agent.config import QuerySettings
from query_agent.core.identity import Capabilities, Identity
from query_agent.execution.executor import DynamicQueryExecutor
from query_agent.execution.registry import FieldRegistry
from query_agent.schema.catalog import SchemaCatalog
from query_agent.validation.permission import PermissionValidator
from query_agent.validation.security import SecurityValidator

TENANT_ID = uuid.UUID("00000000-0000-0000-0000-00000000a001")
OTHER_TENANT_ID = uuid.UUID("00000000-0000-0000-0000-00000000b002")


class FakeModelClient:
    """Model client returning canned replies and recording every call."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    async def complete(self, messages, cancel_event=None):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0] if self.replies else ""


@pytest.fixture
def catalog():
    return SchemaCatalog()


@pytest.fixture
def query_settings():
    return QuerySettings()


@pytest.fixture
def security(catalog, query_settings):
    return SecurityValidator(catalog, query_settings)


@pytest.fixture
def permission(catalog, query_settings):
    return PermissionValidator(catalog, query_settings)


@pytest.fixture
def registry(catalog):
    return FieldRegistry(catalog, ENTITY_MODELS)


@pytest.fixture
def hr_data():
    """A small tenant: two units, three employees, leave, payroll and attendance."""
    rd = OrganizationUnit(tenant_id=TENANT_ID, name="研发部", code="RD")
    sales = OrganizationUnit(tenant_id=TENANT_ID, name="销售部", code="SALES")

    alice = Employee(
        tenant_id=TENANT_ID, employee_number="E001", first_name="伟", last_name="张",
        email="zhang.wei@example.com", id_card_number="110101199001011234",
        status=EmploymentStatus.ACTIVE, hire_date=date(2020, 3, 1), organization_unit_id=rd.id,
    )
    bob = Employee(
        tenant_id=TENANT_ID, employee_number="E002", first_name="芳", last_name="李",
        email="li.fang@example.com", status=EmploymentStatus.ACTIVE,
        hire_date=date(2021, 6, 15), organization_unit_id=rd.id,
    )
    carol = Employee(
        tenant_id=TENANT_ID, employee_number="E003", first_name="强", last_name="王",
        email="wang.qiang@example.com", status=EmploymentStatus.ON_LEAVE,
        hire_date=date(2019, 1, 10), organization_unit_id=sales.id,
    )
    outsider = Employee(
        tenant_id=OTHER_TENANT_ID, employee_number="X001", first_name="六", last_name="赵",
        email="zhao.liu@example.com", hire_date=date(2022, 1, 1),
    )

    annual = LeaveType(tenant_id=TENANT_ID, name="年假", code="ANNUAL", is_paid=True)
    leave_requests = [
        LeaveRequest(
            tenant_id=TENANT_ID, employee_id=alice.id, leave_type_id=annual.id,
            start_date=date(2024, 5, 6), end_date=date(2024, 5, 7),
            total_days=Decimal("2"), reason="旅行", status=LeaveStatus.APPROVED,
        ),
        LeaveRequest(
            tenant_id=TENANT_ID, employee_id=bob.id, leave_type_id=annual.id,
            start_date=date(2024, 5, 10), end_date=date(2024, 5, 11),
            total_days=Decimal("1.5"), reason="家中有事", status=LeaveStatus.PENDING,
        ),
        LeaveRequest(
            tenant_id=TENANT_ID, employee_id=carol.id, leave_type_id=annual.id,
            start_date=date(2024, 5, 20), end_date=date(2024, 5, 22),
            total_days=Decimal("3"), reason="休养", status=LeaveStatus.APPROVED,
        ),
    ]
    payroll = [
        PayrollRecord(tenant_id=TENANT_ID, employee_id=alice.id, base_salary=Decimal("12000"),
                      net_salary=Decimal("15000.00")),
        PayrollRecord(tenant_id=TENANT_ID, employee_id=bob.id, base_salary=Decimal("10000"),
                      net_salary=Decimal("12000.50")),
    ]
    attendance = [
        AttendanceRecord(
            tenant_id=TENANT_ID, employee_id=alice.id, attendance_date=date(2024, 5, 6),
            check_in_time=datetime(2024, 5, 6, 9, 10, tzinfo=timezone.utc),
            status=AttendanceStatus.LATE, late_minutes=10,
        ),
        AttendanceRecord(
            tenant_id=TENANT_ID, employee_id=bob.id, attendance_date=date(2024, 5, 6),
            check_in_time=datetime(2024, 5, 6, 8, 55, tzinfo=timezone.utc),
            status=AttendanceStatus.NORMAL,
        ),
    ]

    store = InMemoryEntityStore()
    store.seed("OrganizationUnit", [rd, sales])
    store.seed("Employee", [alice, bob, carol, outsider])
    store.seed("LeaveType", [annual])
    store.seed("LeaveRequest", leave_requests)
    store.seed("PayrollRecord", payroll)
    store.seed("AttendanceRecord", attendance)

    return SimpleNamespace(
        store=store, rd=rd, sales=sales, alice=alice, bob=bob, carol=carol,
        outsider=outsider, annual=annual, leave_requests=leave_requests,
    )


@pytest.fixture
def executor(hr_data, catalog, registry, query_settings, security, permission):
    return DynamicQueryExecutor(
        hr_data.store, catalog, registry, query_settings, security=security, permission=permission
    )


def make_identity(permissions, employee_id=None, organization_unit_id=None, tenant_id=TENANT_ID):
    return Identity(
        user_id=uuid.uuid4(),
        employee_id=employee_id,
        tenant_id=tenant_id,
        organization_unit_id=organization_unit_id,
        permissions=permissions,
    )


@pytest.fixture
def admin(hr_data):
    return make_identity([Capabilities.SYSTEM_ADMIN], employee_id=hr_data.alice.id)


@pytest.fixture
def hr_admin(hr_data):
    return make_identity([Capabilities.HR_ADMIN], employee_id=hr_data.alice.id)


@pytest.fixture
def employee(hr_data):
    return make_identity([Capabilities.HR_READ], employee_id=hr_data.alice.id)


@pytest.fixture
def hr_writer(hr_data):
    return make_identity([Capabilities.HR_READ, Capabilities.HR_WRITE], employee_id=hr_data.alice.id)


@pytest.fixture
def manager(hr_data):
    return make_identity(
        [Capabilities.HR_READ, Capabilities.DEPARTMENT_MANAGER],
        employee_id=hr_data.alice.id,
        organization_unit_id=hr_data.rd.id,
    )


@pytest.fixture
def anonymous():
    return Identity.anonymous()


@pytest.fixture
def identity_factory():
    return make_identity


@pytest.fixture
def fake_model():
    return FakeModelClient
