"""
Resilient model clients.

A ResilientModelClient wraps an ordered list of model candidates for one
purpose (chat, text2sql, router). Each candidate gets `1 + retry_count`
tries under a per-try timeout with linear backoff between tries; the first
success wins. The offline responder is always the last candidate, so a
configured deployment answers even when every real backend is down.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from query_agent.config import ModelSettings
from query_agent.core.errors import ModelCallError, RequestCancelled, ensure_not_cancelled
from query_agent.core.interfaces import IMetricsSink, IModelClient
from query_agent.core.models import ChatMessage, ModelCandidate, ModelPurpose
from query_agent.llm.client_factory import SUPPORTED_PROVIDERS, LLMClientFactory
from query_agent.llm.offline_responder import OfflineResponder
from query_agent.metrics import NullMetrics

logger = logging.getLogger(__name__)

FALLBACK_REASON = "exception"


class ResilientModelClient:
    """IModelClient with per-candidate retry, timeout and ordered fallback."""

    def __init__(
        self,
        purpose: str,
        candidates: Sequence[ModelCandidate],
        timeout_seconds: float = 60,
        retry_count: int = 1,
        retry_backoff_ms: int = 250,
        metrics: Optional[IMetricsSink] = None,
    ):
        """
        Initialize the client.

        Args:
            purpose: Metric label for the calls made through this client
            candidates: Ordered candidates; the first one is primary
            timeout_seconds: Limit for a single try
            retry_count: Extra tries per candidate after the first
            retry_backoff_ms: Base backoff; try n waits `retry_backoff_ms * n`
            metrics: Sink for latency, error and fallback metrics
        """
        if not candidates:
            raise ValueError("At least one model candidate is required")
        self.purpose = purpose
        self.candidates = list(candidates)
        self.timeout_seconds = timeout_seconds
        self.retry_count = max(0, retry_count)
        self.retry_backoff_ms = max(0, retry_backoff_ms)
        self.metrics = metrics or NullMetrics()
        self._instances: List[Optional[IModelClient]] = [None] * len(self.candidates)
        self._locks = [asyncio.Lock() for _ in self.candidates]

    async def complete(
        self, messages: Sequence[ChatMessage], cancel_event: Optional[asyncio.Event] = None
    ) -> str:
        """
        Return the first successful reply across candidates and retries.

        Raises:
            RequestCancelled: The cancel event was set
            ModelCallError: Every candidate and retry failed
        """
        errors: List[Exception] = []
        primary = self.candidates[0]

        for index, candidate in enumerate(self.candidates):
            for attempt in range(self.retry_count + 1):
                ensure_not_cancelled(cancel_event)
                started = time.perf_counter()
                try:
                    client = await self._instance(index)
                    reply = await self._call(client, messages, cancel_event)
                except (RequestCancelled, asyncio.CancelledError):
                    raise
                except Exception as exc:
                    self.metrics.record_model_latency(
                        self.purpose, candidate.provider, candidate.model, _elapsed_ms(started)
                    )
                    self.metrics.record_model_error(self.purpose, candidate.provider)
                    logger.warning(
                        f"Model call failed ({self.purpose}, {candidate.provider}/{candidate.model}, "
                        f"attempt {attempt + 1}): {exc!r}"
                    )
                    errors.append(exc)
                    if attempt < self.retry_count:
                        await self._backoff(attempt, cancel_event)
                    continue

                self.metrics.record_model_latency(
                    self.purpose, candidate.provider, candidate.model, _elapsed_ms(started)
                )
                if index > 0:
                    self.metrics.record_fallback(primary.provider, candidate.provider, FALLBACK_REASON)
                    logger.info(
                        f"Model fallback ({self.purpose}): {primary.provider} -> {candidate.provider}"
                    )
                return reply

        raise ModelCallError(errors=errors)

    async def _instance(self, index: int) -> IModelClient:
        instance = self._instances[index]
        if instance is not None:
            return instance
        async with self._locks[index]:
            if self._instances[index] is None:
                self._instances[index] = self.candidates[index].factory()
            return self._instances[index]

    async def _call(
        self,
        client: IModelClient,
        messages: Sequence[ChatMessage],
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        call = asyncio.ensure_future(client.complete(messages, cancel_event=cancel_event))
        if cancel_event is None:
            return await asyncio.wait_for(call, self.timeout_seconds)

        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {call, cancelled}, timeout=self.timeout_seconds, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancelled.cancel()
            if not call.done():
                call.cancel()

        if call in done:
            return call.result()
        if cancel_event.is_set():
            raise RequestCancelled()
        raise asyncio.TimeoutError(f"Model call timed out after {self.timeout_seconds}s")

    async def _backoff(self, attempt: int, cancel_event: Optional[asyncio.Event]) -> None:
        delay = self.retry_backoff_ms * (attempt + 1) / 1000
        if delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), delay)
        except asyncio.TimeoutError:
            return
        raise RequestCancelled()

    async def aclose(self) -> None:
        """Dispose every candidate instance created so far."""
        for index, instance in enumerate(self._instances):
            if instance is None:
                continue
            closer = getattr(instance, "aclose", None)
            if closer is not None:
                await closer()
            elif hasattr(instance, "close"):
                instance.close()
            self._instances[index] = None


class ModelClientProvider:
    """
    Builds and caches one resilient client per model purpose.

    Candidates per purpose: the configured provider (when supported), then
    the offline responder.
    """

    def __init__(self, settings: Optional[ModelSettings] = None, metrics: Optional[IMetricsSink] = None):
        self.settings = settings or ModelSettings()
        self.metrics = metrics or NullMetrics()
        self._clients: Dict[str, ResilientModelClient] = {}

    def get_model_name(self, purpose: Any) -> str:
        return self.settings.name_for_purpose(_purpose_value(purpose))

    def candidates_for(self, purpose: Any) -> List[ModelCandidate]:
        purpose_name = _purpose_value(purpose)
        model_name = self.get_model_name(purpose_name)
        provider = self.settings.provider.lower()
        candidates: List[ModelCandidate] = []

        if provider in SUPPORTED_PROVIDERS:
            settings = self.settings

            def build_client() -> IModelClient:
                factory = LLMClientFactory(
                    provider=provider,
                    model_name=model_name,
                    api_key=settings.api_key,
                    base_url=settings.endpoint,
                    model_settings={
                        "temperature": settings.temperature,
                        "timeout": settings.timeout_seconds,
                    },
                )
                return factory.create_client()

            candidates.append(ModelCandidate(provider=provider, model=model_name, factory=build_client))
        else:
            logger.warning(f"Unknown model provider '{self.settings.provider}', using offline responder only")

        delay = self.settings.offline_delay_seconds
        candidates.append(
            ModelCandidate(
                provider=OfflineResponder.provider,
                model=OfflineResponder.model,
                factory=lambda: OfflineResponder(delay_seconds=delay),
            )
        )
        return candidates

    def get_client(self, purpose: Any) -> ResilientModelClient:
        purpose_name = _purpose_value(purpose)
        client = self._clients.get(purpose_name)
        if client is None:
            client = ResilientModelClient(
                purpose=purpose_name,
                candidates=self.candidates_for(purpose_name),
                timeout_seconds=self.settings.timeout_seconds,
                retry_count=self.settings.retry_count,
                retry_backoff_ms=self.settings.retry_backoff_ms,
                metrics=self.metrics,
            )
            self._clients[purpose_name] = client
        return client

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()


def _purpose_value(purpose: Any) -> str:
    return purpose.value if isinstance(purpose, ModelPurpose) else str(purpose)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
