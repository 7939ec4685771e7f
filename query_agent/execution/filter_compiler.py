"""
Compile filter conditions into predicate closures.

Each FilterCondition becomes a function over a joined row (a mapping of row
key to record). Conditions fold strictly left to right: the logical operator
on a condition decides how it combines with the next included condition, so
`A OR B AND C` evaluates as `(A OR B) AND C`.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from query_agent.core.errors import CoercionError, ErrorCodes
from query_agent.core.models import FilterCondition, FilterOperator, LogicalOperator
from query_agent.execution.coercion import coerce_value
from query_agent.execution.registry import FieldAccessor

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Predicate = Callable[[Row], bool]
FieldResolver = Callable[[str], Optional[Tuple[str, FieldAccessor]]]


def always_true(_row: Row) -> bool:
    return True


def _safe_compare(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def wrapped(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            return compare(left, right)
        except TypeError:
            return False

    return wrapped


_COMPARISONS: Dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.GREATER_THAN: _safe_compare(lambda a, b: a > b),
    FilterOperator.GREATER_THAN_OR_EQUAL: _safe_compare(lambda a, b: a >= b),
    FilterOperator.LESS_THAN: _safe_compare(lambda a, b: a < b),
    FilterOperator.LESS_THAN_OR_EQUAL: _safe_compare(lambda a, b: a <= b),
}

_TEXT_MATCHERS: Dict[FilterOperator, Callable[[str, str], bool]] = {
    FilterOperator.CONTAINS: lambda text, part: part in text,
    FilterOperator.STARTS_WITH: lambda text, part: text.startswith(part),
    FilterOperator.ENDS_WITH: lambda text, part: text.endswith(part),
}


class SkippedClause(Exception):
    """A condition that cannot be evaluated and is left out of the predicate."""


class FilterCompiler:
    """
    Turns a filter list into one predicate.

    Clauses whose field cannot be resolved, or whose value cannot be coerced
    to the field's type, are skipped; a warning is collected for each.
    """

    def compile(
        self, filters: Sequence[FilterCondition], resolve: FieldResolver
    ) -> Tuple[Predicate, List[str]]:
        """
        Compile filters into a single predicate.

        Args:
            filters: Conditions in query order
            resolve: Maps a field path to (row key, accessor)

        Returns:
            (predicate, warnings); the predicate accepts every row when no
            clause survives compilation
        """
        warnings: List[str] = []
        combined: Optional[Predicate] = None
        link = LogicalOperator.AND

        for condition in filters:
            try:
                clause = self.compile_condition(condition, resolve)
            except SkippedClause as exc:
                warnings.append(f"{ErrorCodes.INVALID_FILTER}: {exc}")
                logger.info(f"Skipping filter on {condition.field}: {exc}")
                # A skipped clause still decides how the next clause joins the chain
                if combined is not None:
                    link = condition.logical_operator
                continue
            if combined is None:
                combined = clause
            elif link is LogicalOperator.OR:
                combined = _either(combined, clause)
            else:
                combined = _both(combined, clause)
            link = condition.logical_operator

        return combined or always_true, warnings

    def compile_condition(self, condition: FilterCondition, resolve: FieldResolver) -> Predicate:
        resolved = resolve(condition.field)
        if resolved is None:
            raise SkippedClause(f"无法解析过滤字段 '{condition.field}'")
        key, accessor = resolved
        operator = condition.operator

        def read(row: Row) -> Any:
            record = row.get(key)
            return None if record is None else accessor.get(record)

        if operator is FilterOperator.IS_NULL:
            return lambda row: read(row) is None
        if operator is FilterOperator.IS_NOT_NULL:
            return lambda row: read(row) is not None

        if operator in (FilterOperator.EQUAL, FilterOperator.NOT_EQUAL):
            expected = self._coerce(accessor, condition.value)
            if operator is FilterOperator.EQUAL:
                return lambda row: read(row) == expected
            return lambda row: read(row) != expected

        if operator in _COMPARISONS:
            if condition.value is None:
                raise SkippedClause(f"字段 '{condition.field}' 的比较条件缺少值")
            bound = self._coerce(accessor, condition.value)
            compare = _COMPARISONS[operator]
            return lambda row: compare(read(row), bound)

        if operator in _TEXT_MATCHERS:
            if not accessor.is_text:
                raise SkippedClause(f"字段 '{condition.field}' 不是文本类型，不支持 {operator.value}")
            if condition.value is None:
                raise SkippedClause(f"字段 '{condition.field}' 的文本条件缺少值")
            part = str(condition.value).lower()
            match = _TEXT_MATCHERS[operator]

            def text_clause(row: Row) -> bool:
                value = read(row)
                return value is not None and match(str(value).lower(), part)

            return text_clause

        if operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            values = condition.value
            if values is None:
                raise SkippedClause(f"字段 '{condition.field}' 的 {operator.value} 条件缺少值")
            if not isinstance(values, (list, tuple, set)):
                values = [values]
            members = [self._coerce(accessor, item) for item in values]
            if operator is FilterOperator.IN:
                return lambda row: read(row) in members
            return lambda row: read(row) not in members

        if operator is FilterOperator.BETWEEN:
            values = condition.value
            if not isinstance(values, (list, tuple)) or len(values) != 2:
                raise SkippedClause(f"字段 '{condition.field}' 的 Between 条件需要两个值")
            low = self._coerce(accessor, values[0])
            high = self._coerce(accessor, values[1])
            at_least = _COMPARISONS[FilterOperator.GREATER_THAN_OR_EQUAL]
            at_most = _COMPARISONS[FilterOperator.LESS_THAN_OR_EQUAL]
            return lambda row: at_least(read(row), low) and at_most(read(row), high)

        raise SkippedClause(f"不支持的操作符 {operator.value}")

    @staticmethod
    def _coerce(accessor: FieldAccessor, value: Any) -> Any:
        try:
            return coerce_value(accessor.schema, value, accessor.enum_class)
        except CoercionError as exc:
            raise SkippedClause(f"字段 '{accessor.name}' 的值 {value!r} 无法转换为 {accessor.schema.data_type}") from exc


def _both(left: Predicate, right: Predicate) -> Predicate:
    return lambda row: left(row) and right(row)


def _either(left: Predicate, right: Predicate) -> Predicate:
    return lambda row: left(row) or right(row)
