"""
Query agent orchestrator - main entry point.

Routes each message, then either runs the data-query pipeline (translate,
validate, execute, summarize) or hands the conversation to the chat model.
Every outcome, including cancellation and unexpected failures, comes back
as a ChatEnvelope.
"""

import asyncio
import logging
import uuid
from typing import List, Optional, Tuple

from query_agent.adapters.entities import ENTITY_MODELS
from query_agent.config import AgentSettings, get_settings
from query_agent.core.errors import Messages, RequestCancelled
from query_agent.core.identity import Identity
from query_agent.core.interfaces import IEntityStore, IMetricsSink, IModelClient, ISessionStore
from query_agent.core.models import (
    ChatEnvelope,
    ChatMessage,
    Diagnostics,
    ModelPurpose,
    Route,
)
from query_agent.execution.executor import DynamicQueryExecutor
from query_agent.execution.registry import FieldRegistry
from query_agent.execution.result_formatter import ResultFormatter
from query_agent.llm.resilient_client import ModelClientProvider
from query_agent.metrics import NullMetrics
from query_agent.query.translator import QueryTranslator
from query_agent.routing.router import SemanticRouter
from query_agent.schema.catalog import SchemaCatalog
from query_agent.session import InMemorySessionStore
from query_agent.validation.permission import PermissionValidator
from query_agent.validation.security import SecurityValidator

logger = logging.getLogger(__name__)

ROUTING_TURNS = 8
CONVERT_FAILED = "text2sql-convert-failed"
EXECUTE_FAILED = "text2sql-execute-failed"

CHAT_SYSTEM_PROMPT = """你是Hrevolve HR助手，一个专业、友好的人力资源AI助手。

你的职责包括：
1. 回答员工关于公司政策、规章制度的问题
2. 帮助员工查询假期余额、薪资信息、考勤记录
3. 协助员工提交请假申请、报销申请等
4. 提供组织架构、同事联系方式等信息查询

注意事项：
- 始终保持专业、友好的态度
- 涉及敏感信息（如薪资）时，只能查询员工本人的信息
- 如果不确定答案，请诚实告知并建议联系HR部门
- 使用简洁清晰的中文回复
- 如果需要执行操作（如请假），请先确认所有必要信息"""

CLARIFY_SYSTEM_PROMPT = """你是 Hrevolve HR 助手。用户的输入更像是在做数据查询，但当前系统无法安全地直接执行。
你的目标是提出1-2个澄清问题，帮助用户把查询说清楚（例如时间范围、部门、人员范围、指标口径）。
回复要简短、具体，不要提及内部实现细节。"""


class QueryAgent:
    """
    Coordinates routing, translation, validation, execution and chat.

    Components are injected; `create` wires the default set for a store.
    """

    def __init__(
        self,
        router: SemanticRouter,
        translator: QueryTranslator,
        executor: DynamicQueryExecutor,
        chat_client: IModelClient,
        sessions: Optional[ISessionStore] = None,
        metrics: Optional[IMetricsSink] = None,
        settings: Optional[AgentSettings] = None,
        model_provider: Optional[ModelClientProvider] = None,
    ):
        """
        Initialize the agent.

        Args:
            router: Decides text2sql vs chat per message
            translator: Natural language to structured query
            executor: Validates and runs structured queries
            chat_client: Model client for conversation and clarifying questions
            sessions: Conversation history store
            metrics: Sink for route metrics
            settings: Agent settings (history limit, diagnostics)
            model_provider: Owner of the model clients, closed by `aclose`
        """
        self.settings = settings or get_settings()
        self.router = router
        self.translator = translator
        self.executor = executor
        self.chat_client = chat_client
        self.sessions = sessions or InMemorySessionStore(self.settings.history_limit)
        self.metrics = metrics or NullMetrics()
        self.model_provider = model_provider

    @classmethod
    def create(
        cls,
        store: IEntityStore,
        settings: Optional[AgentSettings] = None,
        metrics: Optional[IMetricsSink] = None,
        catalog: Optional[SchemaCatalog] = None,
        sessions: Optional[ISessionStore] = None,
    ) -> "QueryAgent":
        """
        Build an agent with the default components.

        Args:
            store: Entity store the queries run against
            settings: Agent settings; loaded from the environment if omitted
            metrics: Metrics sink shared by routing and model clients
            catalog: Schema catalog; defaults to the built-in HR schema
            sessions: Conversation history store

        Returns:
            Ready to use QueryAgent
        """
        settings = settings or get_settings()
        metrics = metrics or NullMetrics()
        catalog = catalog or SchemaCatalog()

        provider = ModelClientProvider(settings.models, metrics)
        security = SecurityValidator(catalog, settings.query)
        permission = PermissionValidator(catalog, settings.query)
        registry = FieldRegistry(catalog, ENTITY_MODELS)

        return cls(
            router=SemanticRouter(provider.get_client(ModelPurpose.ROUTER), settings.models),
            translator=QueryTranslator(
                provider.get_client(ModelPurpose.TEXT2SQL), catalog, security, settings.query
            ),
            executor=DynamicQueryExecutor(
                store, catalog, registry, settings.query, security=security, permission=permission
            ),
            chat_client=provider.get_client(ModelPurpose.CHAT),
            sessions=sessions or InMemorySessionStore(settings.history_limit),
            metrics=metrics,
            settings=settings,
            model_provider=provider,
        )

    async def chat(
        self,
        user_key: str,
        message: str,
        identity: Optional[Identity] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChatEnvelope:
        """
        Answer one user message.

        Args:
            user_key: Conversation owner (usually the employee or user id)
            message: The user's message
            identity: Caller identity used for permission checks and scoping
            cancel_event: Cooperative cancellation signal

        Returns:
            ChatEnvelope with the reply, the route used and diagnostics
        """
        correlation_id = uuid.uuid4().hex
        if cancel_event is not None and cancel_event.is_set():
            return ChatEnvelope(reply=Messages.CANCELLED, route=Route.CHAT, correlation_id=correlation_id)

        identity = identity or Identity.anonymous()
        logger.info(f"[{correlation_id}] Handling message for {user_key}")

        try:
            await self.sessions.append(user_key, ChatMessage.user(message))
            recent = await self.sessions.recent(user_key, ROUTING_TURNS)

            decision = await self.router.route(message, recent, cancel_event)
            self.metrics.record_route(decision.route.value, decision.strategy.value)
            logger.info(
                f"[{correlation_id}] Routed to {decision.route.value} "
                f"({decision.strategy.value}, {decision.confidence:.2f}, {decision.reason})"
            )

            if decision.route is Route.TEXT2SQL:
                route, reply, diagnostics = await self._handle_data_query(
                    user_key, message, recent, identity, cancel_event
                )
                return ChatEnvelope(
                    reply=reply, route=route, correlation_id=correlation_id, diagnostics=diagnostics
                )

            reply = await self._handle_chat(user_key, cancel_event)
            return ChatEnvelope(reply=reply, route=Route.CHAT, correlation_id=correlation_id)
        except RequestCancelled:
            logger.info(f"[{correlation_id}] Request cancelled")
            return ChatEnvelope(reply=Messages.CANCELLED, route=Route.CHAT, correlation_id=correlation_id)
        except Exception:
            logger.exception(f"[{correlation_id}] Failed to handle message")
            return ChatEnvelope(
                reply=Messages.GENERIC_APOLOGY, route=Route.CHAT, correlation_id=correlation_id
            )

    async def _handle_data_query(
        self,
        user_key: str,
        message: str,
        recent: List[ChatMessage],
        identity: Identity,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[Route, str, Optional[Diagnostics]]:
        turns = self.settings.models.context_messages_for_disambiguation
        context = "\n".join(f"{turn.role}: {turn.content}" for turn in recent[-turns:]) or None

        translation = await self.translator.translate(message, context, cancel_event)
        if not translation.success or translation.query is None:
            logger.info(f"Translation failed: {translation.error_message}")
            reply = await self._ask_for_clarification(user_key, message, translation.error_message, cancel_event)
            return Route.CHAT, reply, Diagnostics(warnings=[CONVERT_FAILED])

        result = await self.executor.execute(translation.query, identity, cancel_event)
        if not result.success:
            logger.info(f"Execution failed: {result.error_code} {result.error_message}")
            reply = await self._ask_for_clarification(user_key, message, result.error_message, cancel_event)
            return Route.CHAT, reply, Diagnostics(warnings=[EXECUTE_FAILED])

        summary = ResultFormatter.summarize(result, translation.query)
        await self.sessions.append(user_key, ChatMessage.assistant(summary))
        diagnostics = Diagnostics(
            generated_query_text=(
                result.generated_query if self.settings.query.include_generated_query_in_response else None
            ),
            execution_millis=result.execution_ms,
            warnings=list(result.warnings) or None,
        )
        return Route.TEXT2SQL, summary, diagnostics

    async def _ask_for_clarification(
        self,
        user_key: str,
        message: str,
        reason: Optional[str],
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        prompt = f"用户输入：\n{message}\n\n失败原因（可为空）：\n{reason or '(空)'}"
        reply = await self.chat_client.complete(
            [ChatMessage.system(CLARIFY_SYSTEM_PROMPT), ChatMessage.user(prompt)],
            cancel_event=cancel_event,
        )
        reply = reply or Messages.CLARIFY_FALLBACK
        await self.sessions.append(user_key, ChatMessage.assistant(reply))
        return reply

    async def _handle_chat(self, user_key: str, cancel_event: Optional[asyncio.Event]) -> str:
        history = await self.sessions.recent(user_key, self.settings.history_limit)
        messages = [ChatMessage.system(CHAT_SYSTEM_PROMPT), *history]
        reply = await self.chat_client.complete(messages, cancel_event=cancel_event)
        reply = reply or Messages.NO_REPLY
        await self.sessions.append(user_key, ChatMessage.assistant(reply))
        return reply

    async def history(self, user_key: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Most recent turns for a user, oldest first."""
        return await self.sessions.recent(user_key, limit or self.settings.history_limit)

    async def clear_history(self, user_key: str) -> None:
        await self.sessions.clear(user_key)

    async def aclose(self) -> None:
        if self.model_provider is not None:
            await self.model_provider.aclose()
