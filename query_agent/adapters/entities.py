"""
Entity record models for the HR data store.

Attributes are snake_case in Python and PascalCase on the wire and in the
schema catalog (`hire_date` <-> `HireDate`). Enum fields hold IntEnum members
whose ordinals match the catalog's enum tables.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import IntEnum
from typing import Dict, Optional, Type
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal


class Gender(IntEnum):
    MALE = 0
    FEMALE = 1
    OTHER = 2


class EmploymentStatus(IntEnum):
    ACTIVE = 0
    ON_LEAVE = 1
    SUSPENDED = 2
    TERMINATED = 3


class EmploymentType(IntEnum):
    FULL_TIME = 0
    PART_TIME = 1
    CONTRACT = 2
    INTERN = 3
    CONSULTANT = 4


class CheckMethod(IntEnum):
    APP = 0
    WIFI = 1
    DEVICE = 2
    MANUAL = 3
    WEB = 4


class AttendanceStatus(IntEnum):
    PENDING = 0
    NORMAL = 1
    LATE = 2
    EARLY_LEAVE = 3
    ABSENT = 4
    INCOMPLETE = 5
    LEAVE = 6
    BUSINESS_TRIP = 7


class DayPart(IntEnum):
    FULL_DAY = 0
    MORNING = 1
    AFTERNOON = 2


class LeaveStatus(IntEnum):
    PENDING = 0
    APPROVED = 1
    REJECTED = 2
    CANCELLED = 3


class PayrollStatus(IntEnum):
    DRAFT = 0
    CALCULATED = 1
    APPROVED = 2
    PAID = 3


class UnitType(IntEnum):
    COMPANY = 0
    DIVISION = 1
    DEPARTMENT = 2
    TEAM = 3
    GROUP = 4


class EntityRecord(BaseModel):
    """Base for stored records: primary key, tenant and UTC-normalised timestamps."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    id: UUID = Field(default_factory=uuid4)
    tenant_id: Optional[UUID] = None

    @field_validator("*", mode="after")
    @classmethod
    def _utc_datetimes(cls, value):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Employee(EntityRecord):
    employee_number: str = ""
    first_name: str = ""
    last_name: str = ""
    english_name: Optional[str] = None
    gender: Gender = Gender.MALE
    date_of_birth: Optional[date] = None
    email: str = ""
    phone: Optional[str] = None
    id_card_number: Optional[str] = None
    personal_email: Optional[str] = None
    address: Optional[str] = None
    status: EmploymentStatus = EmploymentStatus.ACTIVE
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    hire_date: Optional[date] = None
    termination_date: Optional[date] = None
    probation_end_date: Optional[date] = None
    organization_unit_id: Optional[UUID] = None
    direct_manager_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AttendanceRecord(EntityRecord):
    employee_id: Optional[UUID] = None
    attendance_date: Optional[date] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    check_in_method: Optional[CheckMethod] = None
    check_out_method: Optional[CheckMethod] = None
    check_in_location: Optional[str] = None
    check_out_location: Optional[str] = None
    status: AttendanceStatus = AttendanceStatus.PENDING
    late_minutes: int = 0
    early_leave_minutes: int = 0
    actual_hours: Decimal = Decimal("0")
    overtime_hours: Decimal = Decimal("0")
    remarks: Optional[str] = None
    is_approved: bool = False
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None


class LeaveRequest(EntityRecord):
    employee_id: Optional[UUID] = None
    leave_type_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_day_part: DayPart = DayPart.FULL_DAY
    end_day_part: DayPart = DayPart.FULL_DAY
    total_days: Decimal = Decimal("0")
    reason: str = ""
    attachments: Optional[str] = None
    status: LeaveStatus = LeaveStatus.PENDING
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class LeaveBalance(EntityRecord):
    employee_id: Optional[UUID] = None
    leave_type_id: Optional[UUID] = None
    year: int = 0
    entitlement: Decimal = Decimal("0")
    carried_over: Decimal = Decimal("0")
    used: Decimal = Decimal("0")
    pending: Decimal = Decimal("0")


class LeaveType(EntityRecord):
    name: str = ""
    code: str = ""
    description: Optional[str] = None
    is_paid: bool = False
    requires_approval: bool = True
    allow_half_day: bool = False
    min_unit: Decimal = Decimal("1")
    max_days_per_request: Optional[int] = None
    requires_attachment: bool = False
    color: Optional[str] = None
    is_active: bool = True


class PayrollRecord(EntityRecord):
    employee_id: Optional[UUID] = None
    payroll_period_id: Optional[UUID] = None
    base_salary: Decimal = Decimal("0")
    gross_salary: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    net_salary: Decimal = Decimal("0")
    income_tax: Decimal = Decimal("0")
    social_insurance_employee: Decimal = Decimal("0")
    housing_fund_employee: Decimal = Decimal("0")
    status: PayrollStatus = PayrollStatus.DRAFT


class OrganizationUnit(EntityRecord):
    name: str = ""
    code: str = ""
    description: Optional[str] = None
    parent_id: Optional[UUID] = None
    path: str = ""
    level: int = 0
    sort_order: int = 0
    type: UnitType = UnitType.DEPARTMENT
    is_active: bool = True
    manager_id: Optional[UUID] = None


class Position(EntityRecord):
    name: str = ""
    code: str = ""
    description: Optional[str] = None
    organization_unit_id: Optional[UUID] = None
    sequence: Optional[str] = None
    level: int = 0
    salary_range_min: Decimal = Decimal("0")
    salary_range_max: Decimal = Decimal("0")
    is_active: bool = True


ENTITY_MODELS: Dict[str, Type[EntityRecord]] = {
    "Employee": Employee,
    "AttendanceRecord": AttendanceRecord,
    "LeaveRequest": LeaveRequest,
    "LeaveBalance": LeaveBalance,
    "LeaveType": LeaveType,
    "PayrollRecord": PayrollRecord,
    "OrganizationUnit": OrganizationUnit,
    "Position": Position,
}
