"""Core interfaces, identity and models for the query agent."""

from query_agent.core.identity import Capabilities, Identity, Roles
from query_agent.core.interfaces import (
    IEntityStore,
    IMetricsSink,
    IModelClient,
    ISessionStore,
)
from query_agent.core.models import (
    AggregationKind,
    ChatEnvelope,
    ChatMessage,
    FilterCondition,
    FilterOperator,
    JoinClause,
    OrderByClause,
    QueryOperation,
    QueryResult,
    Route,
    RouteDecision,
    StructuredQuery,
    ValidationResult,
)

__all__ = [
    "Capabilities",
    "Identity",
    "Roles",
    "IEntityStore",
    "IMetricsSink",
    "IModelClient",
    "ISessionStore",
    "AggregationKind",
    "ChatEnvelope",
    "ChatMessage",
    "FilterCondition",
    "FilterOperator",
    "JoinClause",
    "OrderByClause",
    "QueryOperation",
    "QueryResult",
    "Route",
    "RouteDecision",
    "StructuredQuery",
    "ValidationResult",
]
