import asyncio

import pytest

from query_agent.core.models import ChatMessage
from query_agent.session import InMemorySessionStore


class TestInMemorySessionStore:
    @pytest.mark.asyncio
    async def test_history_is_trimmed_to_limit(self):
        sessions = InMemorySessionStore(history_limit=3)
        for i in range(5):
            await sessions.append("u1", ChatMessage.user(f"m{i}"))

        recent = await sessions.recent("u1", 10)

        assert [m.content for m in recent] == ["m2", "m3", "m4"]

    @pytest.mark.asyncio
    async def test_recent_limit(self):
        sessions = InMemorySessionStore()
        await sessions.append("u1", ChatMessage.user("问题"))
        await sessions.append("u1", ChatMessage.assistant("回答"))

        assert [m.content for m in await sessions.recent("u1", 1)] == ["回答"]
        assert await sessions.recent("u1", 0) == []
        assert await sessions.recent("nobody", 5) == []

    @pytest.mark.asyncio
    async def test_recent_returns_a_copy(self):
        sessions = InMemorySessionStore()
        await sessions.append("u1", ChatMessage.user("a"))

        snapshot = await sessions.recent("u1", 5)
        snapshot.clear()

        assert len(await sessions.recent("u1", 5)) == 1

    @pytest.mark.asyncio
    async def test_users_are_isolated_and_clearable(self):
        sessions = InMemorySessionStore()
        await sessions.append("u1", ChatMessage.user("a"))
        await sessions.append("u2", ChatMessage.user("b"))

        await sessions.clear("u1")

        assert await sessions.recent("u1", 5) == []
        assert [m.content for m in await sessions.recent("u2", 5)] == ["b"]

    @pytest.mark.asyncio
    async def test_concurrent_appends(self):
        sessions = InMemorySessionStore(history_limit=100)

        await asyncio.gather(*(sessions.append("u1", ChatMessage.user(str(i))) for i in range(50)))

        recent = await sessions.recent("u1", 100)
        assert sorted(int(m.content) for m in recent) == list(range(50))
