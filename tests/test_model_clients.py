import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic_ai.messages import ModelRequest, ModelResponse, SystemPromptPart, TextPart, UserPromptPart
from pydantic_ai.models.function import FunctionModel
from pydantic_ai.models.openai import OpenAIModel

from query_agent.config import ModelSettings
from query_agent.core.errors import ModelCallError, RequestCancelled
from query_agent.core.models import ChatMessage, ModelCandidate, ModelPurpose
from query_agent.llm.client_factory import LLMClientFactory, PydanticAIChatClient, to_model_messages
from query_agent.llm.offline_responder import DEFAULT_REPLY, OfflineResponder, offline_reply
from query_agent.llm.resilient_client import ModelClientProvider, ResilientModelClient
from query_agent.metrics import PrometheusMetrics

MESSAGES = [ChatMessage.system("你是助手"), ChatMessage.user("你好")]


class SlowClient:
    async def complete(self, messages, cancel_event=None):
        await asyncio.sleep(5)
        return "too late"


def _candidate(provider, client, model="m"):
    return ModelCandidate(provider=provider, model=model, factory=lambda: client)


class TestResilientModelClient:
    @pytest.mark.asyncio
    async def test_primary_success(self, fake_model):
        metrics = PrometheusMetrics()
        client = ResilientModelClient("chat", [_candidate("primary", fake_model(["你好！"]))], metrics=metrics)

        assert await client.complete(MESSAGES) == "你好！"
        assert metrics.sample("model_latency_ms_count", purpose="chat", provider="primary", model="m") == 1.0
        assert metrics.sample("fallback_total", **{"from": "primary", "to": "primary", "reason": "exception"}) == 0.0

    @pytest.mark.asyncio
    async def test_fallback_after_retries_is_recorded_once(self, fake_model):
        metrics = PrometheusMetrics()
        primary = fake_model(error=RuntimeError("connection refused"))
        secondary = fake_model(["来自备用模型"])
        client = ResilientModelClient(
            "chat",
            [_candidate("primary", primary), _candidate("secondary", secondary)],
            retry_count=1,
            retry_backoff_ms=0,
            metrics=metrics,
        )

        reply = await client.complete(MESSAGES)

        assert reply == "来自备用模型"
        assert len(primary.calls) == 2
        assert len(secondary.calls) == 1
        assert metrics.sample("model_errors_total", purpose="chat", provider="primary") == 2.0
        assert metrics.sample(
            "fallback_total", **{"from": "primary", "to": "secondary", "reason": "exception"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self, fake_model):
        client = ResilientModelClient(
            "router",
            [
                _candidate("a", fake_model(error=RuntimeError("a down"))),
                _candidate("b", fake_model(error=RuntimeError("b down"))),
            ],
            retry_count=1,
            retry_backoff_ms=0,
        )

        with pytest.raises(ModelCallError) as excinfo:
            await client.complete(MESSAGES)
        assert len(excinfo.value.errors) == 4

    @pytest.mark.asyncio
    async def test_timeout_moves_to_next_candidate(self, fake_model):
        client = ResilientModelClient(
            "text2sql",
            [_candidate("slow", SlowClient()), _candidate("fast", fake_model(["{}"]))],
            timeout_seconds=0.05,
            retry_count=0,
        )

        assert await client.complete(MESSAGES) == "{}"

    @pytest.mark.asyncio
    async def test_timeout_with_cancel_event(self, fake_model):
        client = ResilientModelClient(
            "text2sql",
            [_candidate("slow", SlowClient()), _candidate("fast", fake_model(["{}"]))],
            timeout_seconds=0.05,
            retry_count=0,
        )

        assert await client.complete(MESSAGES, cancel_event=asyncio.Event()) == "{}"

    @pytest.mark.asyncio
    async def test_cancel_before_start_builds_nothing(self):
        factory = MagicMock()
        client = ResilientModelClient("chat", [ModelCandidate(provider="p", model="m", factory=factory)])
        cancel_event = asyncio.Event()
        cancel_event.set()

        with pytest.raises(RequestCancelled):
            await client.complete(MESSAGES, cancel_event)
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_during_call(self, fake_model):
        fallback = fake_model(["不应到达"])
        client = ResilientModelClient(
            "chat",
            [_candidate("slow", SlowClient()), _candidate("fallback", fallback)],
            timeout_seconds=5,
        )
        cancel_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel_event.set)

        with pytest.raises(RequestCancelled):
            await client.complete(MESSAGES, cancel_event)
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self, fake_model):
        client = ResilientModelClient(
            "chat",
            [_candidate("flaky", fake_model(error=RuntimeError("503")))],
            retry_count=3,
            retry_backoff_ms=5000,
        )
        cancel_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel_event.set)

        with pytest.raises(RequestCancelled):
            await asyncio.wait_for(client.complete(MESSAGES, cancel_event), 2)

    @pytest.mark.asyncio
    async def test_instances_are_created_once(self, fake_model):
        factory = MagicMock(return_value=fake_model(["ok"]))
        client = ResilientModelClient("chat", [ModelCandidate(provider="p", model="m", factory=factory)])

        await asyncio.gather(client.complete(MESSAGES), client.complete(MESSAGES))
        await client.complete(MESSAGES)

        assert factory.call_count == 1

    @pytest.mark.asyncio
    async def test_aclose_disposes_instances(self):
        instance = MagicMock()
        instance.complete = AsyncMock(return_value="ok")
        instance.aclose = AsyncMock()
        client = ResilientModelClient("chat", [_candidate("p", instance)])

        await client.complete(MESSAGES)
        await client.aclose()

        instance.aclose.assert_awaited_once()

    def test_candidates_are_required(self):
        with pytest.raises(ValueError):
            ResilientModelClient("chat", [])


class TestModelClientProvider:
    def test_configured_provider_then_offline(self):
        provider = ModelClientProvider(ModelSettings(provider="ollama", text2sql_model="sqlcoder7b"))

        candidates = provider.candidates_for(ModelPurpose.TEXT2SQL)

        assert [(c.provider, c.model) for c in candidates] == [
            ("ollama", "sqlcoder7b"),
            ("offline", "offline-responder"),
        ]

    def test_purpose_without_model_uses_default(self):
        settings = ModelSettings(provider="ollama", model="llama3", router_model=None)

        assert ModelClientProvider(settings).get_model_name("router") == "llama3"

    def test_unknown_provider_uses_offline_only(self):
        provider = ModelClientProvider(ModelSettings(provider="mystery"))

        assert [c.provider for c in provider.candidates_for("chat")] == ["offline"]

    def test_clients_are_cached_per_purpose(self):
        provider = ModelClientProvider(ModelSettings(provider="ollama"))

        assert provider.get_client(ModelPurpose.CHAT) is provider.get_client("chat")
        assert provider.get_client("chat") is not provider.get_client("router")

    @pytest.mark.asyncio
    async def test_offline_only_deployment_answers(self):
        provider = ModelClientProvider(ModelSettings(provider="mystery", offline_delay_seconds=0))

        reply = await provider.get_client("chat").complete([ChatMessage.user("我的年假还剩几天")])

        assert "年假" in reply
        await provider.aclose()


class TestOfflineResponder:
    @pytest.mark.parametrize(
        "text, expected",
        [("查一下工资", "薪资"), ("我要请假", "请假申请"), ("今天打卡了吗", "签到"), ("讲个故事", DEFAULT_REPLY)],
    )
    def test_keyword_replies(self, text, expected):
        assert expected in offline_reply(text)

    def test_never_returns_json(self):
        assert "{" not in offline_reply("统计部门人数")

    @pytest.mark.asyncio
    async def test_answers_last_user_message(self):
        responder = OfflineResponder(delay_seconds=0)
        messages = [ChatMessage.user("工资"), ChatMessage.assistant("..."), ChatMessage.user("部门")]

        assert "组织架构" in await responder.complete(messages)

    @pytest.mark.asyncio
    async def test_respects_cancellation(self):
        cancel_event = asyncio.Event()
        cancel_event.set()

        with pytest.raises(RequestCancelled):
            await OfflineResponder(delay_seconds=0).complete(MESSAGES, cancel_event)


class TestToModelMessages:
    def test_single_turn(self):
        system, history, prompt = to_model_messages(MESSAGES)

        assert system == ["你是助手"]
        assert history == []
        assert prompt == "你好"

    def test_history_carries_system_prompt(self):
        messages = [
            ChatMessage.system("sys"),
            ChatMessage.user("u1"),
            ChatMessage.assistant("a1"),
            ChatMessage.user("u2"),
        ]
        _, history, prompt = to_model_messages(messages)

        assert prompt == "u2"
        assert isinstance(history[0], ModelRequest)
        assert [type(part) for part in history[0].parts] == [SystemPromptPart, UserPromptPart]
        assert isinstance(history[1], ModelResponse)
        assert history[1].parts[0].content == "a1"

    def test_consecutive_user_turns(self):
        messages = [ChatMessage.user("u1"), ChatMessage.assistant("a1"), ChatMessage.user("u2"), ChatMessage.user("u3")]
        _, history, prompt = to_model_messages(messages)

        assert prompt == "u2\n\nu3"
        assert len(history) == 2


class TestPydanticAIChatClient:
    @pytest.mark.asyncio
    async def test_complete_runs_agent(self):
        seen = []

        def respond(messages, info):
            seen.extend(messages)
            return ModelResponse(parts=[TextPart(content="好的")])

        client = PydanticAIChatClient(FunctionModel(respond))
        reply = await client.complete(
            [ChatMessage.system("sys"), ChatMessage.user("u1"), ChatMessage.assistant("a1"), ChatMessage.user("u2")]
        )

        assert reply == "好的"
        assert isinstance(seen[0].parts[0], SystemPromptPart)
        assert seen[0].parts[0].content == "sys"
        assert isinstance(seen[1], ModelResponse)
        assert any(
            isinstance(part, UserPromptPart) and part.content == "u2" for part in seen[-1].parts
        )


class TestLLMClientFactory:
    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            LLMClientFactory(provider="watsonx", model_name="m")

    def test_model_name_required(self, monkeypatch):
        monkeypatch.delenv("LLM_MODEL", raising=False)
        with pytest.raises(ValueError):
            LLMClientFactory(provider="ollama", base_url="http://localhost:11434")

    def test_openai_compatible_base_url_gets_v1(self):
        factory = LLMClientFactory(
            provider="ollama", model_name="qwen3:4b", api_key="test-key", base_url="http://localhost:11434/"
        )

        assert factory.base_url == "http://localhost:11434/v1"
        assert isinstance(factory.model, OpenAIModel)
        assert isinstance(factory.create_client(), PydanticAIChatClient)

    def test_hosted_provider_requires_key(self, monkeypatch):
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            LLMClientFactory(provider="anthropic", model_name="claude-3-5-haiku-latest")

    def test_hosted_provider_model_string(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "placeholder")

        factory = LLMClientFactory(provider="anthropic", model_name="claude-3-5-haiku-latest", api_key="test-key")

        assert factory.model == "anthropic:claude-3-5-haiku-latest"


class TestPrometheusMetrics:
    def test_route_counter(self):
        metrics = PrometheusMetrics()
        metrics.record_route("text2sql", "heuristic")
        metrics.record_route("text2sql", "heuristic")

        assert metrics.sample("agent_route_total", route="text2sql", strategy="heuristic") == 2.0
        assert metrics.sample("agent_route_total", route="chat", strategy="model") == 0.0

    def test_instances_do_not_share_series(self):
        first, second = PrometheusMetrics(), PrometheusMetrics()
        first.record_model_error("chat", "ollama")

        assert second.sample("model_errors_total", purpose="chat", provider="ollama") == 0.0
