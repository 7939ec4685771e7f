"""MongoDB adapter for the query agent."""

from query_agent.adapters.mongodb.store import MongoEntityStore

__all__ = ["MongoEntityStore"]
