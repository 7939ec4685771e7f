"""Deterministic offline responder used as the last-resort model candidate."""

import asyncio
from typing import Optional, Sequence

from query_agent.core.errors import ensure_not_cancelled
from query_agent.core.models import ChatMessage

_REPLIES = [
    (("假期", "年假"), "您好！我来帮您查询假期余额。根据系统记录，您当前的年假余额为5天，病假余额为10天。如需请假，请告诉我具体的日期和原因。"),
    (("薪资", "工资"), "您好！本月薪资已于15日发放，实发金额为15,300元。如需查看详细明细，请告诉我。"),
    (("考勤", "打卡"), "您好！今日您已于09:02完成签到。如需查看历史考勤记录，请告诉我查询的时间范围。"),
    (("请假",), "好的，我来帮您提交请假申请。请告诉我：1. 请假类型（年假/病假/事假）2. 开始日期 3. 结束日期 4. 请假原因"),
    (("组织", "部门"), "我来为您查询组织架构信息。请问您想了解哪个部门的信息？"),
]

DEFAULT_REPLY = "您好！我是Hrevolve HR助手，可以帮您查询假期余额、薪资信息、考勤记录，也可以协助您提交请假申请。请问有什么可以帮您的？"


def offline_reply(text: Optional[str]) -> str:
    lowered = (text or "").lower()
    for keywords, reply in _REPLIES:
        if any(keyword in lowered for keyword in keywords):
            return reply
    return DEFAULT_REPLY


class OfflineResponder:
    """
    IModelClient that answers from a fixed keyword table.

    Never returns JSON, so translation through it always fails over to a
    clarifying question.
    """

    provider = "offline"
    model = "offline-responder"

    def __init__(self, delay_seconds: float = 0.25):
        self.delay_seconds = delay_seconds

    async def complete(self, messages: Sequence[ChatMessage], cancel_event=None) -> str:
        ensure_not_cancelled(cancel_event)
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        ensure_not_cancelled(cancel_event)
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        return offline_reply(last_user)
