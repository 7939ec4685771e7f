"""
Collaborator interfaces consumed by the query agent core.

These protocols describe what the core expects from its surroundings:
a data store, language-model clients, a metrics sink and a session store.
Concrete implementations live in `adapters/`, `llm/`,
`metrics.py` and `session.py`.
"""

import asyncio
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence
from uuid import UUID

from query_agent.core.models import ChatMessage


class IEntityStore(Protocol):
    """
    Typed collections per entity.

    Records are the pydantic entity models registered for each entity name.
    Reads are scoped to a tenant when one is given.
    """

    def find(
        self,
        entity: str,
        predicate: Optional[Callable[[Any], bool]] = None,
        tenant_id: Optional[UUID] = None,
        equals: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        """
        Return the records of `entity` that satisfy `predicate`.

        Args:
            entity: Entity name as declared in the schema catalog
            predicate: Compiled filter; None selects every record
            tenant_id: Restrict to records of this tenant when set
            equals: Field name to required value; stores may apply these while
                loading instead of after

        Returns:
            Matching records in storage order
        """
        ...

    def add(self, entity: str, record: Any) -> None:
        """Persist a new record."""
        ...

    def update(self, entity: str, records: Iterable[Any]) -> None:
        """Persist field changes already applied to `records`."""
        ...

    def remove(self, entity: str, records: Iterable[Any]) -> None:
        """Delete `records`."""
        ...


class IModelClient(Protocol):
    """A chat-style language model backend."""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Send a system/user/assistant message list and return the reply text.

        Args:
            messages: Ordered prompt messages
            cancel_event: Cooperative cancellation signal

        Returns:
            The model's reply as plain text
        """
        ...


class IMetricsSink(Protocol):
    """Counters and histograms for routing and model calls."""

    def record_route(self, route: str, strategy: str) -> None: ...

    def record_model_latency(
        self, purpose: str, provider: str, model: str, elapsed_ms: float
    ) -> None: ...

    def record_model_error(self, purpose: str, provider: str) -> None: ...

    def record_fallback(self, from_provider: str, to_provider: str, reason: str) -> None: ...


class ISessionStore(Protocol):
    """Per-user conversation history."""

    async def append(self, key: str, message: ChatMessage) -> None: ...

    async def recent(self, key: str, limit: int) -> List[ChatMessage]: ...

    async def clear(self, key: str) -> None: ...
