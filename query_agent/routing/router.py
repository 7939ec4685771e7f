"""
Semantic routing between the data-query pipeline and free chat.

A keyword heuristic decides clear cases. Ambiguous input escalates to the
router-purpose model; if that fails or is unsure, the higher heuristic score
wins.
"""

import asyncio
import json
import logging
from typing import List, Optional, Sequence, Tuple

from query_agent.config import ModelSettings
from query_agent.core.errors import RequestCancelled
from query_agent.core.interfaces import IModelClient
from query_agent.core.models import ChatMessage, Route, RouteDecision, RouteStrategy
from query_agent.query.translator import extract_json_object

logger = logging.getLogger(__name__)

DATA_KEYWORDS = [
    "查询", "统计", "筛选", "列出", "展示", "多少", "总数", "人数", "数量", "平均", "最大", "最小", "top", "排名",
    "本月", "上月", "本周", "上周", "今年", "去年", "最近", "截止", "从", "到",
    "员工", "考勤", "打卡", "请假", "假期", "薪资", "工资", "部门", "组织", "入职", "离职", "加班", "迟到", "早退",
    "employee", "attendance", "leave", "salary", "department", "organization", "count", "sum", "avg",
]

CHAT_KEYWORDS = [
    "你好", "您好", "在吗", "你是谁", "你能做什么", "帮我", "谢谢", "再见",
    "怎么", "为什么", "解释", "介绍", "建议", "推荐", "流程", "规定", "政策", "制度", "规则", "假期政策", "报销政策",
    "聊天", "闲聊", "讲个", "笑话",
]

HR_INTENT_KEYWORDS = [
    "员工", "考勤", "打卡", "请假", "假期", "薪资", "工资", "部门", "组织",
    "入职", "离职", "迟到", "早退", "加班", "休假", "年假", "病假",
    "employee", "attendance", "leave", "salary", "department", "organization",
]

ROUTE_MARGIN = 0.15
MIN_MODEL_CONFIDENCE = 0.6
CONTEXT_TURNS = 6

ROUTER_SYSTEM_PROMPT = """你是一个意图路由器。你的任务是判断用户输入应当路由到：
- text2sql：当用户要查询/统计 HR 系统数据（员工、考勤、请假、薪资、部门等），需要生成/执行查询
- chat：当用户在闲聊、问候、解释性问题、政策咨询、流程说明、建议类问题

只输出 JSON，不要任何额外文字。JSON 格式如下：
{"route":"text2sql|chat","confidence":0.0,"reason":"一句话原因"}"""


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def is_data_intent(text: Optional[str]) -> bool:
    """True when the text mentions any HR data keyword."""
    if not text or not text.strip():
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in HR_INTENT_KEYWORDS)


def score_heuristic(message: Optional[str]) -> Tuple[float, float, str]:
    """
    Score an utterance for data intent and chat intent.

    Returns:
        (data_score, chat_score, reason), both scores in [0, 1]
    """
    text = (message or "").strip()
    if not text:
        return 0.0, 1.0, "empty"

    lowered = text.lower()
    data_hits = sum(1 for keyword in DATA_KEYWORDS if keyword in lowered)
    chat_hits = sum(1 for keyword in CHAT_KEYWORDS if keyword in lowered)

    has_question_mark = "?" in text or "？" in text
    has_number_or_date = any(ch.isdigit() for ch in text) or "yyyy" in lowered or "202" in lowered

    data_score = _clamp(
        data_hits / 6.0 + (0.15 if has_number_or_date else 0.0) + (0.05 if has_question_mark else 0.0)
    )
    chat_score = _clamp(chat_hits / 5.0 + (0.10 if has_question_mark else 0.0))
    return data_score, chat_score, f"dataHits={data_hits},chatHits={chat_hits}"


class SemanticRouter:
    """Decides whether an utterance goes to text2sql or to chat."""

    def __init__(self, client: IModelClient, settings: Optional[ModelSettings] = None):
        """
        Initialize the router.

        Args:
            client: Model client for the router purpose
            settings: Heuristic thresholds
        """
        self.client = client
        self.settings = settings or ModelSettings()

    async def route(
        self,
        utterance: str,
        recent_turns: Optional[Sequence[ChatMessage]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RouteDecision:
        """
        Route an utterance.

        Args:
            utterance: Current user message
            recent_turns: Prior conversation turns used by the model for disambiguation
            cancel_event: Cooperative cancellation signal

        Returns:
            RouteDecision with route, confidence, strategy and reason
        """
        data_score, chat_score, reason = score_heuristic(utterance)
        threshold = self.settings.heuristic_route_threshold

        if data_score >= threshold and data_score >= chat_score + ROUTE_MARGIN:
            return RouteDecision(
                route=Route.TEXT2SQL, confidence=data_score, strategy=RouteStrategy.HEURISTIC, reason=reason
            )
        if chat_score >= threshold and chat_score >= data_score + ROUTE_MARGIN:
            return RouteDecision(
                route=Route.CHAT, confidence=chat_score, strategy=RouteStrategy.HEURISTIC, reason=reason
            )
        if max(data_score, chat_score) <= self.settings.heuristic_ignore_threshold:
            return RouteDecision(
                route=Route.CHAT, confidence=0.5, strategy=RouteStrategy.HEURISTIC, reason="low-signal"
            )

        decision = await self._route_with_model(utterance, recent_turns or [], cancel_event)
        if decision is not None:
            return decision

        route = Route.TEXT2SQL if data_score > chat_score else Route.CHAT
        return RouteDecision(
            route=route,
            confidence=max(data_score, chat_score),
            strategy=RouteStrategy.FALLBACK,
            reason="llm-route-failed",
        )

    async def _route_with_model(
        self,
        utterance: str,
        recent_turns: Sequence[ChatMessage],
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[RouteDecision]:
        user_prompt = (
            f"对话上下文（用于消歧，可为空）：\n{self._context_snippet(recent_turns)}\n\n"
            f"用户输入：\n{utterance}"
        )
        try:
            text = await self.client.complete(
                [ChatMessage.system(ROUTER_SYSTEM_PROMPT), ChatMessage.user(user_prompt)],
                cancel_event=cancel_event,
            )
        except (RequestCancelled, asyncio.CancelledError):
            raise
        except Exception as exc:
            logger.warning(f"Router model call failed: {exc}")
            return None

        return self._parse_decision(text)

    @staticmethod
    def _parse_decision(text: Optional[str]) -> Optional[RouteDecision]:
        payload = extract_json_object(text)
        if payload is None:
            logger.warning(f"Router model returned no JSON object: {text!r}")
            return None
        data = json.loads(payload)

        lowered = {str(key).lower(): value for key, value in data.items()}
        route_name = str(lowered.get("route") or "").strip().lower()
        if route_name not in (Route.TEXT2SQL.value, Route.CHAT.value):
            logger.warning(f"Router model returned unknown route: {route_name!r}")
            return None
        try:
            confidence = _clamp(float(lowered.get("confidence") or 0.0))
        except (TypeError, ValueError):
            return None
        if confidence < MIN_MODEL_CONFIDENCE:
            return None

        return RouteDecision(
            route=Route(route_name),
            confidence=confidence,
            strategy=RouteStrategy.MODEL,
            reason=str(lowered.get("reason") or ""),
        )

    @staticmethod
    def _context_snippet(recent_turns: Sequence[ChatMessage]) -> str:
        if not recent_turns:
            return "(空)"
        return "\n".join(f"{turn.role}: {turn.content}" for turn in list(recent_turns)[-CONTEXT_TURNS:])
