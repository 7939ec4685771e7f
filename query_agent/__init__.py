"""
Query Agent - natural-language data questions over an HR entity store.

Main entry point for creating agents; see `QueryAgent.create`.
"""

from query_agent.orchestrator import QueryAgent

__all__ = ["QueryAgent"]
