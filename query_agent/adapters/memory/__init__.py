"""In-memory entity store."""

from query_agent.adapters.memory.store import InMemoryEntityStore

__all__ = ["InMemoryEntityStore"]
