"""Routing between the data-query pipeline and chat."""

from query_agent.routing.router import SemanticRouter, is_data_intent, score_heuristic

__all__ = ["SemanticRouter", "is_data_intent", "score_heuristic"]
