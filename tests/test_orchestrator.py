import asyncio
import json

import pytest

from query_agent.config import AgentSettings, ModelSettings, QuerySettings
from query_agent.core.errors import Messages, ModelCallError, RequestCancelled
from query_agent.core.models import Route
from query_agent.llm.offline_responder import DEFAULT_REPLY
from query_agent.metrics import PrometheusMetrics
from query_agent.orchestrator import (
    CHAT_SYSTEM_PROMPT,
    CLARIFY_SYSTEM_PROMPT,
    CONVERT_FAILED,
    EXECUTE_FAILED,
    QueryAgent,
)
from query_agent.query.translator import QueryTranslator
from query_agent.routing.router import SemanticRouter

USER = "user-1"
TEXT2SQL_ROUTE = '{"route": "text2sql", "confidence": 0.9}'
APPROVED_LEAVE_COUNT = json.dumps(
    {
        "operation": "Select",
        "targetEntity": "LeaveRequest",
        "filters": [{"field": "Status", "operator": "Equal", "value": "Approved"}],
        "aggregation": "Count",
    }
)


@pytest.fixture
def build_agent(catalog, security, executor, fake_model):
    """Wire an agent from fake model clients, one per purpose."""

    def build(router_replies=None, translator_replies=None, chat_replies=None, chat_error=None,
              router_error=None, settings=None, metrics=None):
        settings = settings or AgentSettings()
        clients = {
            "router": fake_model(router_replies, error=router_error),
            "text2sql": fake_model(translator_replies),
            "chat": fake_model(chat_replies, error=chat_error),
        }
        agent = QueryAgent(
            router=SemanticRouter(clients["router"], settings.models),
            translator=QueryTranslator(clients["text2sql"], catalog, security, settings.query),
            executor=executor,
            chat_client=clients["chat"],
            metrics=metrics,
            settings=settings,
        )
        return agent, clients

    return build


class TestDataQueries:
    @pytest.mark.asyncio
    async def test_count_is_answered_from_data(self, build_agent, admin):
        metrics = PrometheusMetrics()
        agent, clients = build_agent([TEXT2SQL_ROUTE], [APPROVED_LEAVE_COUNT], metrics=metrics)

        envelope = await agent.chat(USER, "统计本月请假人数", admin)

        assert envelope.reply == "查询结果 - 数量: 2"
        assert envelope.route is Route.TEXT2SQL
        assert envelope.diagnostics.execution_millis is not None
        assert envelope.diagnostics.generated_query_text is None
        assert envelope.diagnostics.warnings is None
        assert clients["chat"].calls == []
        assert metrics.sample("agent_route_total", route="text2sql", strategy="model") == 1.0

    @pytest.mark.asyncio
    async def test_generated_query_is_reported_when_enabled(self, build_agent, admin):
        settings = AgentSettings(query=QuerySettings(include_generated_query_in_response=True))
        agent, _ = build_agent([TEXT2SQL_ROUTE], [APPROVED_LEAVE_COUNT], settings=settings)

        envelope = await agent.chat(USER, "统计本月请假人数", admin)

        assert envelope.diagnostics.generated_query_text.startswith("SELECT COUNT(*) FROM [LeaveRequest]")

    @pytest.mark.asyncio
    async def test_summary_is_kept_in_history(self, build_agent, admin):
        agent, _ = build_agent([TEXT2SQL_ROUTE], [APPROVED_LEAVE_COUNT])

        await agent.chat(USER, "统计本月请假人数", admin)
        history = await agent.history(USER)

        assert [(turn.role, turn.content) for turn in history] == [
            ("user", "统计本月请假人数"),
            ("assistant", "查询结果 - 数量: 2"),
        ]

    @pytest.mark.asyncio
    async def test_translation_failure_asks_for_clarification(self, build_agent, admin):
        agent, clients = build_agent([TEXT2SQL_ROUTE], ["抱歉，我不理解"], ["请问您想查询哪个时间段？"])

        envelope = await agent.chat(USER, "统计本月请假人数", admin)

        assert envelope.route is Route.CHAT
        assert envelope.reply == "请问您想查询哪个时间段？"
        assert envelope.diagnostics.warnings == [CONVERT_FAILED]
        system, prompt = clients["chat"].calls[0]
        assert system.content == CLARIFY_SYSTEM_PROMPT
        assert "统计本月请假人数" in prompt.content
        assert Messages.UNPARSEABLE_QUERY in prompt.content

    @pytest.mark.asyncio
    async def test_execution_failure_asks_for_clarification(self, build_agent, employee):
        agent, _ = build_agent([TEXT2SQL_ROUTE], ['{"targetEntity": "PayrollRecord"}'], ["您想查询谁的薪资？"])

        envelope = await agent.chat(USER, "统计本月请假人数", employee)

        assert envelope.route is Route.CHAT
        assert envelope.diagnostics.warnings == [EXECUTE_FAILED]

    @pytest.mark.asyncio
    async def test_empty_clarification_uses_fallback_text(self, build_agent, admin):
        agent, _ = build_agent([TEXT2SQL_ROUTE], ["not json"], [""])

        envelope = await agent.chat(USER, "统计本月请假人数", admin)

        assert envelope.reply == Messages.CLARIFY_FALLBACK

    @pytest.mark.asyncio
    async def test_anonymous_caller_is_refused(self, build_agent):
        agent, _ = build_agent([TEXT2SQL_ROUTE], [APPROVED_LEAVE_COUNT], ["请先登录"])

        envelope = await agent.chat(USER, "统计本月请假人数")

        assert envelope.diagnostics.warnings == [EXECUTE_FAILED]


class TestConversation:
    @pytest.mark.asyncio
    async def test_chat_route_sends_history_with_system_prompt(self, build_agent, admin):
        agent, clients = build_agent(chat_replies=["第一条回复", "第二条回复"])

        first = await agent.chat(USER, "abc", admin)
        second = await agent.chat(USER, "xyz", admin)

        assert first.route is Route.CHAT
        assert first.diagnostics is None
        assert second.reply == "第二条回复"
        messages = clients["chat"].calls[1]
        assert messages[0].content == CHAT_SYSTEM_PROMPT
        assert [m.content for m in messages[1:]] == ["abc", "第一条回复", "xyz"]
        assert clients["router"].calls == []

    @pytest.mark.asyncio
    async def test_empty_model_reply(self, build_agent):
        agent, _ = build_agent(chat_replies=[""])

        envelope = await agent.chat(USER, "abc")

        assert envelope.reply == Messages.NO_REPLY

    @pytest.mark.asyncio
    async def test_model_failure_becomes_apology(self, build_agent):
        agent, _ = build_agent(chat_error=ModelCallError())

        envelope = await agent.chat(USER, "abc")

        assert envelope.reply == Messages.GENERIC_APOLOGY
        assert envelope.route is Route.CHAT
        assert envelope.correlation_id

    @pytest.mark.asyncio
    async def test_clear_history(self, build_agent):
        agent, _ = build_agent(chat_replies=["好的"])
        await agent.chat(USER, "abc")

        await agent.clear_history(USER)

        assert await agent.history(USER) == []


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, build_agent):
        agent, clients = build_agent()
        cancel_event = asyncio.Event()
        cancel_event.set()

        envelope = await agent.chat(USER, "统计本月请假人数", cancel_event=cancel_event)

        assert envelope.reply == Messages.CANCELLED
        assert envelope.route is Route.CHAT
        assert all(client.calls == [] for client in clients.values())
        assert await agent.history(USER) == []

    @pytest.mark.asyncio
    async def test_cancelled_while_routing(self, build_agent):
        agent, _ = build_agent(router_error=RequestCancelled())

        envelope = await agent.chat(USER, "统计本月请假人数", cancel_event=asyncio.Event())

        assert envelope.reply == Messages.CANCELLED


class TestCreate:
    @pytest.mark.asyncio
    async def test_offline_deployment_still_answers(self, hr_data):
        settings = AgentSettings(models=ModelSettings(provider="offline", offline_delay_seconds=0))
        agent = QueryAgent.create(hr_data.store, settings)

        envelope = await agent.chat(USER, "你好")

        assert envelope.reply == DEFAULT_REPLY
        await agent.aclose()

    @pytest.mark.asyncio
    async def test_offline_translation_falls_back_to_clarification(self, hr_data, admin):
        settings = AgentSettings(models=ModelSettings(provider="offline", offline_delay_seconds=0))
        agent = QueryAgent.create(hr_data.store, settings)

        envelope = await agent.chat(USER, "统计本月请假人数", admin)

        assert envelope.route is Route.CHAT
        assert envelope.diagnostics.warnings == [CONVERT_FAILED]
        await agent.aclose()
