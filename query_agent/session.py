"""In-memory conversation history keyed by user."""

import asyncio
from collections import defaultdict
from typing import DefaultDict, Dict, List

from query_agent.core.models import ChatMessage

DEFAULT_HISTORY_LIMIT = 20


class InMemorySessionStore:
    """
    ISessionStore holding the most recent turns per user.

    Each key has its own lock, so concurrent requests for the same user
    append in order while different users never wait on each other.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.history_limit = history_limit
        self._histories: Dict[str, List[ChatMessage]] = {}
        self._locks: DefaultDict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def append(self, key: str, message: ChatMessage) -> None:
        async with self._locks[key]:
            history = self._histories.setdefault(key, [])
            history.append(message)
            if len(history) > self.history_limit:
                del history[: len(history) - self.history_limit]

    async def recent(self, key: str, limit: int) -> List[ChatMessage]:
        async with self._locks[key]:
            history = self._histories.get(key, [])
            if limit <= 0:
                return []
            return list(history[-limit:])

    async def clear(self, key: str) -> None:
        async with self._locks[key]:
            self._histories.pop(key, None)
