"""
Example usage of the query agent with an in-memory HR store.

Configure the model backend in .env (AI_PROVIDER, AI_ENDPOINT, AI_MODEL, ...).
Without a reachable backend every purpose falls back to the offline responder.
"""

import asyncio
import uuid
from datetime import date
from decimal import Decimal

from dotenv import load_dotenv

from query_agent import QueryAgent
from query_agent.adapters.entities import Employee, EmploymentStatus, LeaveRequest, LeaveStatus, OrganizationUnit
from query_agent.adapters.memory import InMemoryEntityStore
from query_agent.config import get_settings
from query_agent.core.identity import Capabilities, Identity
from query_agent.logging_config import configure_logging
from query_agent.metrics import PrometheusMetrics

load_dotenv()

TENANT_ID = uuid.uuid4()

EXAMPLE_MESSAGES = [
    "你好，你能做什么？",
    "统计一下研发部有多少在职员工",
    "查询本月所有已批准的请假记录",
]


def build_store() -> InMemoryEntityStore:
    """Seed a small HR dataset."""
    store = InMemoryEntityStore()
    unit = OrganizationUnit(tenant_id=TENANT_ID, name="研发部", code="RD")
    store.seed("OrganizationUnit", [unit])

    employees = [
        Employee(
            tenant_id=TENANT_ID,
            employee_number=f"E{index:03d}",
            first_name=first,
            last_name=last,
            email=f"e{index}@example.com",
            status=status,
            hire_date=date(2023, index, 1),
            organization_unit_id=unit.id,
        )
        for index, (first, last, status) in enumerate(
            [("伟", "张", EmploymentStatus.ACTIVE), ("芳", "李", EmploymentStatus.ACTIVE), ("强", "王", EmploymentStatus.ON_LEAVE)],
            start=1,
        )
    ]
    store.seed("Employee", employees)
    store.seed(
        "LeaveRequest",
        [
            LeaveRequest(
                tenant_id=TENANT_ID,
                employee_id=employees[2].id,
                start_date=date.today().replace(day=1),
                end_date=date.today().replace(day=1),
                total_days=Decimal("1"),
                reason="家中有事",
                status=LeaveStatus.APPROVED,
            )
        ],
    )
    return store


async def main():
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    metrics = PrometheusMetrics()
    agent = QueryAgent.create(build_store(), settings=settings, metrics=metrics)
    identity = Identity(
        user_id=uuid.uuid4(),
        employee_id=uuid.uuid4(),
        tenant_id=TENANT_ID,
        permissions=[Capabilities.HR_ADMIN],
    )

    try:
        for message in EXAMPLE_MESSAGES:
            envelope = await agent.chat("demo-user", message, identity)
            print(f"\n> {message}")
            print(f"[{envelope.route.value}] {envelope.reply}")
            if envelope.diagnostics is not None:
                print(f"diagnostics: {envelope.diagnostics.model_dump(by_alias=True, exclude_none=True)}")
    finally:
        await agent.aclose()


if __name__ == "__main__":
    asyncio.run(main())
