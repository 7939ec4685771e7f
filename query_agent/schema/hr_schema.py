"""
Built-in HR schema.

Entities, fields, enum tables and relationships of the HR data store, plus
the few-shot examples shown to the translation model.
"""

from typing import List

from query_agent.core.models import (
    AggregationKind,
    FilterCondition,
    FilterOperator,
    JoinClause,
    OrderByClause,
    QueryOperation,
    StructuredQuery,
)
from query_agent.schema.descriptors import (
    EntitySchema,
    EnumValue,
    FieldSchema,
    QueryExample,
    RelationshipSchema,
    SchemaDescriptor,
)


def _field(name: str, display: str, data_type: str, **kwargs) -> FieldSchema:
    return FieldSchema(name=name, display_name=display, data_type=data_type, **kwargs)


def _id(display: str, **kwargs) -> FieldSchema:
    return _field("Id", display, "Guid", is_primary_key=True, is_read_only=True, **kwargs)


def _fk(name: str, display: str, entity: str, **kwargs) -> FieldSchema:
    return _field(name, display, "Guid", is_foreign_key=True, foreign_key_entity=entity, **kwargs)


def _enum(*values) -> List[EnumValue]:
    return [
        EnumValue(name=name, value=index, display_name=display)
        for index, (name, display) in enumerate(values)
    ]


def _many_to_one(name: str, entity: str, key: str, description: str) -> RelationshipSchema:
    return RelationshipSchema(
        name=name, related_entity=entity, relation_type="ManyToOne",
        foreign_key=key, description=description,
    )


def _one_to_many(name: str, entity: str, key: str, description: str) -> RelationshipSchema:
    return RelationshipSchema(
        name=name, related_entity=entity, relation_type="OneToMany",
        foreign_key=key, description=description,
    )


GENDER = _enum(("Male", "男"), ("Female", "女"), ("Other", "其他"))
EMPLOYMENT_STATUS = _enum(
    ("Active", "在职"), ("OnLeave", "休假中"), ("Suspended", "停职"), ("Terminated", "已离职")
)
EMPLOYMENT_TYPE = _enum(
    ("FullTime", "全职"), ("PartTime", "兼职"), ("Contract", "合同工"),
    ("Intern", "实习生"), ("Consultant", "顾问"),
)
CHECK_METHOD = _enum(
    ("App", "APP打卡"), ("WiFi", "WiFi打卡"), ("Device", "设备打卡"),
    ("Manual", "手动补卡"), ("Web", "网页打卡"),
)
ATTENDANCE_STATUS = _enum(
    ("Pending", "待确认"), ("Normal", "正常"), ("Late", "迟到"), ("EarlyLeave", "早退"),
    ("Absent", "缺勤"), ("Incomplete", "打卡不完整"), ("Leave", "请假"), ("BusinessTrip", "出差"),
)
DAY_PART = _enum(("FullDay", "全天"), ("Morning", "上午"), ("Afternoon", "下午"))
LEAVE_STATUS = _enum(
    ("Pending", "待审批"), ("Approved", "已批准"), ("Rejected", "已拒绝"), ("Cancelled", "已取消")
)
PAYROLL_STATUS = _enum(("Draft", "草稿"), ("Calculated", "已计算"), ("Approved", "已审批"), ("Paid", "已发放"))
UNIT_TYPE = _enum(
    ("Company", "公司"), ("Division", "事业部"), ("Department", "部门"), ("Team", "团队"), ("Group", "小组")
)


def build_employee_schema() -> EntitySchema:
    return EntitySchema(
        name="Employee",
        display_name="员工",
        description="员工基本信息表，存储员工的个人信息、联系方式、雇佣状态等",
        aliases=["员工", "职员", "成员", "人员", "员工信息"],
        fields=[
            _id("员工ID"),
            _field("EmployeeNumber", "员工编号", "string", aliases=["工号", "编号"]),
            _field("FirstName", "名字", "string", aliases=["名"]),
            _field("LastName", "姓氏", "string", aliases=["姓"]),
            _field("EnglishName", "英文名", "string", is_nullable=True),
            _field("Gender", "性别", "enum", enum_values=GENDER),
            _field("DateOfBirth", "出生日期", "DateOnly", is_nullable=True, aliases=["生日"]),
            _field("Email", "工作邮箱", "string", aliases=["邮箱", "邮件"]),
            _field("Phone", "工作电话", "string", is_nullable=True, aliases=["电话", "手机"]),
            _field(
                "IdCardNumber", "身份证号", "string", is_nullable=True,
                is_sensitive=True, required_permission="hr:admin",
            ),
            _field("PersonalEmail", "个人邮箱", "string", is_nullable=True, is_sensitive=True),
            _field("Address", "住址", "string", is_nullable=True, aliases=["地址"]),
            _field("Status", "雇佣状态", "enum", aliases=["状态"], enum_values=EMPLOYMENT_STATUS),
            _field("EmploymentType", "雇佣类型", "enum", enum_values=EMPLOYMENT_TYPE),
            _field("HireDate", "入职日期", "DateOnly", aliases=["入职时间"]),
            _field("TerminationDate", "离职日期", "DateOnly", is_nullable=True),
            _field("ProbationEndDate", "试用期结束日期", "DateOnly", is_nullable=True),
            _fk("OrganizationUnitId", "所属组织ID", "OrganizationUnit", is_nullable=True, aliases=["部门ID"]),
            _fk("DirectManagerId", "直属上级ID", "Employee", is_nullable=True),
            _field("CreatedAt", "创建时间", "DateTime", is_read_only=True),
            _field("UpdatedAt", "更新时间", "DateTime", is_nullable=True, is_read_only=True),
        ],
        relationships=[
            _many_to_one("OrganizationUnit", "OrganizationUnit", "OrganizationUnitId", "所属组织"),
            _many_to_one("DirectManager", "Employee", "DirectManagerId", "直属上级"),
            _one_to_many("AttendanceRecords", "AttendanceRecord", "EmployeeId", "考勤记录"),
            _one_to_many("LeaveRequests", "LeaveRequest", "EmployeeId", "请假申请"),
        ],
    )


def build_attendance_record_schema() -> EntitySchema:
    return EntitySchema(
        name="AttendanceRecord",
        display_name="考勤记录",
        description="员工每日考勤打卡记录，包含签到签退时间、迟到早退等信息",
        aliases=["考勤", "打卡记录", "出勤记录", "签到记录"],
        fields=[
            _id("记录ID"),
            _fk("EmployeeId", "员工ID", "Employee"),
            _field("AttendanceDate", "考勤日期", "DateOnly", aliases=["日期", "打卡日期"]),
            _field("CheckInTime", "签到时间", "DateTime", is_nullable=True, aliases=["上班时间", "打卡时间"]),
            _field("CheckOutTime", "签退时间", "DateTime", is_nullable=True, aliases=["下班时间"]),
            _field("CheckInMethod", "签到方式", "enum", is_nullable=True, enum_values=CHECK_METHOD),
            _field("CheckOutMethod", "签退方式", "enum", is_nullable=True, enum_values=CHECK_METHOD),
            _field("CheckInLocation", "签到位置", "string", is_nullable=True),
            _field("CheckOutLocation", "签退位置", "string", is_nullable=True),
            _field("Status", "考勤状态", "enum", aliases=["状态"], enum_values=ATTENDANCE_STATUS),
            _field("LateMinutes", "迟到分钟数", "int", aliases=["迟到时长"]),
            _field("EarlyLeaveMinutes", "早退分钟数", "int", aliases=["早退时长"]),
            _field("ActualHours", "实际工时", "decimal", aliases=["工时", "工作时长"]),
            _field("OvertimeHours", "加班时长", "decimal", aliases=["加班"]),
            _field("Remarks", "备注", "string", is_nullable=True),
            _field("IsApproved", "是否已审核", "bool"),
            _field("ApprovedBy", "审核人ID", "Guid", is_nullable=True),
            _field("ApprovedAt", "审核时间", "DateTime", is_nullable=True),
        ],
        relationships=[_many_to_one("Employee", "Employee", "EmployeeId", "所属员工")],
    )


def build_leave_request_schema() -> EntitySchema:
    return EntitySchema(
        name="LeaveRequest",
        display_name="请假申请",
        description="员工请假申请记录，包含请假类型、起止日期、审批状态等",
        aliases=["请假", "假期申请", "休假申请", "请假记录"],
        fields=[
            _id("申请ID"),
            _fk("EmployeeId", "员工ID", "Employee"),
            _fk("LeaveTypeId", "假期类型ID", "LeaveType"),
            _field("StartDate", "开始日期", "DateOnly", aliases=["起始日期"]),
            _field("EndDate", "结束日期", "DateOnly", aliases=["截止日期"]),
            _field("StartDayPart", "开始时段", "enum", enum_values=DAY_PART),
            _field("EndDayPart", "结束时段", "enum", enum_values=DAY_PART),
            _field("TotalDays", "请假天数", "decimal", aliases=["天数", "请假时长"]),
            _field("Reason", "请假原因", "string", aliases=["原因", "事由"]),
            _field("Attachments", "附件", "string", is_nullable=True),
            _field("Status", "申请状态", "enum", aliases=["状态"], enum_values=LEAVE_STATUS),
            _field("CancelReason", "取消原因", "string", is_nullable=True),
            _field("CreatedAt", "申请时间", "DateTime", is_read_only=True),
        ],
        relationships=[
            _many_to_one("Employee", "Employee", "EmployeeId", "申请人"),
            _many_to_one("LeaveType", "LeaveType", "LeaveTypeId", "假期类型"),
        ],
    )


def build_leave_balance_schema() -> EntitySchema:
    # Balances are computed by the leave module and never edited directly
    return EntitySchema(
        name="LeaveBalance",
        display_name="假期余额",
        description="员工各类假期的年度余额信息",
        aliases=["假期余额", "年假余额", "休假余额"],
        supports_crud=False,
        fields=[
            _id("记录ID"),
            _fk("EmployeeId", "员工ID", "Employee"),
            _fk("LeaveTypeId", "假期类型ID", "LeaveType"),
            _field("Year", "年份", "int"),
            _field("Entitlement", "年度额度", "decimal", aliases=["额度", "总额度"]),
            _field("CarriedOver", "结转额度", "decimal", aliases=["结转"]),
            _field("Used", "已使用", "decimal", aliases=["已用"]),
            _field("Pending", "待审批", "decimal"),
        ],
        relationships=[
            _many_to_one("Employee", "Employee", "EmployeeId", "所属员工"),
            _many_to_one("LeaveType", "LeaveType", "LeaveTypeId", "假期类型"),
        ],
    )


def build_leave_type_schema() -> EntitySchema:
    return EntitySchema(
        name="LeaveType",
        display_name="假期类型",
        description="系统支持的假期类型定义",
        aliases=["假期类型", "假期种类", "假别"],
        fields=[
            _id("类型ID"),
            _field("Name", "类型名称", "string", aliases=["名称"]),
            _field("Code", "类型代码", "string", aliases=["代码"]),
            _field("Description", "描述", "string", is_nullable=True),
            _field("IsPaid", "是否带薪", "bool", aliases=["带薪"]),
            _field("RequiresApproval", "是否需要审批", "bool"),
            _field("AllowHalfDay", "允许半天", "bool"),
            _field("MinUnit", "最小单位", "decimal"),
            _field("MaxDaysPerRequest", "单次最大天数", "int", is_nullable=True),
            _field("RequiresAttachment", "需要附件", "bool"),
            _field("Color", "颜色标识", "string", is_nullable=True),
            _field("IsActive", "是否激活", "bool"),
        ],
    )


def build_payroll_record_schema() -> EntitySchema:
    def payroll(name: str, display: str, data_type: str, **kwargs) -> FieldSchema:
        return _field(
            name, display, data_type, is_sensitive=True, required_permission="payroll:read", **kwargs
        )

    return EntitySchema(
        name="PayrollRecord",
        display_name="薪资记录",
        description="员工月度薪资发放记录，包含基本工资、扣款、实发等",
        aliases=["薪资", "工资", "工资单", "薪酬记录"],
        supports_crud=False,
        fields=[
            payroll("Id", "记录ID", "Guid", is_primary_key=True, is_read_only=True),
            payroll("EmployeeId", "员工ID", "Guid", is_foreign_key=True, foreign_key_entity="Employee"),
            payroll("PayrollPeriodId", "薪资周期ID", "Guid"),
            payroll("BaseSalary", "基本工资", "decimal", aliases=["底薪"]),
            payroll("GrossSalary", "应发工资", "decimal", aliases=["税前工资"]),
            payroll("TotalDeductions", "扣除总额", "decimal", aliases=["扣款"]),
            payroll("NetSalary", "实发工资", "decimal", aliases=["税后工资", "到手工资"]),
            payroll("IncomeTax", "个人所得税", "decimal", aliases=["个税"]),
            payroll("SocialInsuranceEmployee", "社保个人部分", "decimal", aliases=["社保"]),
            payroll("HousingFundEmployee", "公积金个人部分", "decimal", aliases=["公积金"]),
            payroll("Status", "状态", "enum", enum_values=PAYROLL_STATUS),
        ],
        relationships=[_many_to_one("Employee", "Employee", "EmployeeId", "所属员工")],
    )


def build_organization_unit_schema() -> EntitySchema:
    return EntitySchema(
        name="OrganizationUnit",
        display_name="组织单元",
        description="公司组织架构，包含公司、部门、团队等层级",
        aliases=["组织", "部门", "团队", "组织架构"],
        fields=[
            _id("组织ID"),
            _field("Name", "组织名称", "string", aliases=["名称", "部门名称"]),
            _field("Code", "组织代码", "string", aliases=["代码", "部门代码"]),
            _field("Description", "描述", "string", is_nullable=True),
            _fk("ParentId", "父级组织ID", "OrganizationUnit", is_nullable=True),
            _field("Path", "路径", "string", aliases=["组织路径"]),
            _field("Level", "层级", "int"),
            _field("SortOrder", "排序", "int"),
            _field("Type", "组织类型", "enum", enum_values=UNIT_TYPE),
            _field("IsActive", "是否激活", "bool"),
            _fk("ManagerId", "负责人ID", "Employee", is_nullable=True),
        ],
        relationships=[
            _many_to_one("Parent", "OrganizationUnit", "ParentId", "父级组织"),
            _one_to_many("Children", "OrganizationUnit", "ParentId", "子组织"),
            _many_to_one("Manager", "Employee", "ManagerId", "负责人"),
        ],
    )


def build_position_schema() -> EntitySchema:
    return EntitySchema(
        name="Position",
        display_name="职位",
        description="职位定义，包含职位名称、职级、薪资范围等",
        aliases=["职位", "岗位", "职务"],
        fields=[
            _id("职位ID"),
            _field("Name", "职位名称", "string", aliases=["名称"]),
            _field("Code", "职位代码", "string", aliases=["代码"]),
            _field("Description", "描述", "string", is_nullable=True),
            _fk("OrganizationUnitId", "所属组织ID", "OrganizationUnit"),
            _field("Sequence", "序号", "string", is_nullable=True),
            _field("Level", "职级", "int"),
            _field("SalaryRangeMin", "薪资下限", "decimal", is_sensitive=True, required_permission="hr:admin"),
            _field("SalaryRangeMax", "薪资上限", "decimal", is_sensitive=True, required_permission="hr:admin"),
            _field("IsActive", "是否激活", "bool"),
        ],
        relationships=[_many_to_one("OrganizationUnit", "OrganizationUnit", "OrganizationUnitId", "所属组织")],
    )


def build_hr_schema() -> SchemaDescriptor:
    return SchemaDescriptor(
        entities=[
            build_employee_schema(),
            build_attendance_record_schema(),
            build_leave_request_schema(),
            build_leave_balance_schema(),
            build_leave_type_schema(),
            build_payroll_record_schema(),
            build_organization_unit_schema(),
            build_position_schema(),
        ]
    )


def build_query_examples() -> List[QueryExample]:
    employee_join = JoinClause(entity="Employee", on="EmployeeId = Employee.Id")
    return [
        QueryExample(
            input="查询张三的考勤记录",
            description="按姓名查询员工的考勤记录",
            expected_output=StructuredQuery(
                operation=QueryOperation.SELECT,
                target_entity="AttendanceRecord",
                joins=[employee_join],
                filters=[
                    FilterCondition(field="Employee.LastName", operator=FilterOperator.CONTAINS, value="张")
                ],
                select_fields=["AttendanceDate", "CheckInTime", "CheckOutTime", "Status", "LateMinutes"],
                order_by=[OrderByClause(field="AttendanceDate", descending=True)],
                limit=100,
            ),
        ),
        QueryExample(
            input="显示销售部门的所有员工",
            description="按部门名称查询员工列表",
            expected_output=StructuredQuery(
                operation=QueryOperation.SELECT,
                target_entity="Employee",
                joins=[JoinClause(entity="OrganizationUnit", on="OrganizationUnitId = OrganizationUnit.Id")],
                filters=[
                    FilterCondition(field="OrganizationUnit.Name", operator=FilterOperator.CONTAINS, value="销售")
                ],
                select_fields=["EmployeeNumber", "FirstName", "LastName", "Email", "Phone", "Status"],
                order_by=[OrderByClause(field="EmployeeNumber")],
                limit=100,
            ),
        ),
        QueryExample(
            input="统计本月请假人数",
            description="聚合查询统计请假人数",
            expected_output=StructuredQuery(
                operation=QueryOperation.SELECT,
                target_entity="LeaveRequest",
                aggregation=AggregationKind.COUNT_DISTINCT,
                aggregation_field="EmployeeId",
                filters=[
                    FilterCondition(
                        field="StartDate",
                        operator=FilterOperator.GREATER_THAN_OR_EQUAL,
                        value="@CurrentMonthStart",
                    ),
                    FilterCondition(field="Status", operator=FilterOperator.EQUAL, value="Approved"),
                ],
            ),
        ),
        QueryExample(
            input="查询本周迟到的员工",
            description="查询本周有迟到记录的员工",
            expected_output=StructuredQuery(
                operation=QueryOperation.SELECT,
                target_entity="AttendanceRecord",
                joins=[employee_join],
                filters=[
                    FilterCondition(
                        field="AttendanceDate",
                        operator=FilterOperator.GREATER_THAN_OR_EQUAL,
                        value="@CurrentWeekStart",
                    ),
                    FilterCondition(field="Status", operator=FilterOperator.EQUAL, value="Late"),
                ],
                select_fields=[
                    "Employee.EmployeeNumber",
                    "Employee.FirstName",
                    "Employee.LastName",
                    "AttendanceDate",
                    "LateMinutes",
                ],
                order_by=[OrderByClause(field="AttendanceDate", descending=True)],
                limit=100,
            ),
        ),
        QueryExample(
            input="查询所有在职员工的年假余额",
            description="关联查询员工和假期余额",
            expected_output=StructuredQuery(
                operation=QueryOperation.SELECT,
                target_entity="LeaveBalance",
                joins=[
                    employee_join,
                    JoinClause(entity="LeaveType", on="LeaveTypeId = LeaveType.Id"),
                ],
                filters=[
                    FilterCondition(field="Employee.Status", operator=FilterOperator.EQUAL, value="Active"),
                    FilterCondition(field="LeaveType.Code", operator=FilterOperator.EQUAL, value="ANNUAL"),
                    FilterCondition(field="Year", operator=FilterOperator.EQUAL, value="@CurrentYear"),
                ],
                select_fields=[
                    "Employee.EmployeeNumber",
                    "Employee.FirstName",
                    "Employee.LastName",
                    "Entitlement",
                    "Used",
                    "Pending",
                ],
                limit=500,
            ),
        ),
    ]
