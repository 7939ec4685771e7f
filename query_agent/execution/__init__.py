"""Query execution and result formatting."""

from query_agent.execution.executor import DynamicQueryExecutor
from query_agent.execution.registry import FieldRegistry
from query_agent.execution.result_formatter import ResultFormatter

__all__ = ["DynamicQueryExecutor", "FieldRegistry", "ResultFormatter"]
