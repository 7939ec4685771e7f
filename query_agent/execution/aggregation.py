"""
Aggregation plans.

An aggregation request resolves once, against the field registry, into one
variant of a closed union. Each variant knows how to reduce the matched
rows. Sum and Avg exist only for numeric fields; a non-numeric field
resolves to `Unresolved`, which yields null.
"""

from decimal import Decimal
from typing import Any, Callable, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from query_agent.core.models import AggregationKind
from query_agent.execution.registry import FieldAccessor
from query_agent.schema.type_mappings import NumericKind

Reader = Callable[[Any], Any]


class _Plan(BaseModel):
    model_config = ConfigDict(frozen=True)


class CountPlan(_Plan):
    kind: Literal[AggregationKind.COUNT] = AggregationKind.COUNT

    def reduce(self, rows: List[Any], read: Optional[Reader]) -> int:
        return len(rows)


class CountDistinctPlan(_Plan):
    kind: Literal[AggregationKind.COUNT_DISTINCT] = AggregationKind.COUNT_DISTINCT

    def reduce(self, rows: List[Any], read: Reader) -> int:
        return len({value for value in _present(rows, read)})


class SumPlan(_Plan):
    kind: Literal[AggregationKind.SUM] = AggregationKind.SUM
    numeric: NumericKind

    def reduce(self, rows: List[Any], read: Reader) -> Any:
        return _total(self.numeric, _present(rows, read))


class AvgPlan(_Plan):
    kind: Literal[AggregationKind.AVG] = AggregationKind.AVG
    numeric: NumericKind

    def reduce(self, rows: List[Any], read: Reader) -> Any:
        values = list(_present(rows, read))
        if not values:
            return None
        total = _total(self.numeric, values)
        if self.numeric is NumericKind.DECIMAL:
            return total / Decimal(len(values))
        # Integer averages are fractional
        return float(total) / len(values)


class ExtremumPlan(_Plan):
    kind: Literal[AggregationKind.MIN, AggregationKind.MAX]

    def reduce(self, rows: List[Any], read: Reader) -> Any:
        values = list(_present(rows, read))
        if not values:
            return None
        try:
            return min(values) if self.kind == AggregationKind.MIN else max(values)
        except TypeError:
            return None


class Unresolved(_Plan):
    kind: Optional[AggregationKind] = None
    reason: str = ""

    def reduce(self, rows: List[Any], read: Optional[Reader]) -> None:
        return None


AggregationPlan = Union[CountPlan, CountDistinctPlan, SumPlan, AvgPlan, ExtremumPlan, Unresolved]


def _present(rows: Iterable[Any], read: Reader) -> Iterable[Any]:
    for row in rows:
        value = read(row)
        if value is not None:
            yield value


def _total(numeric: NumericKind, values: Iterable[Any]) -> Any:
    if numeric is NumericKind.DECIMAL:
        return sum(values, Decimal("0"))
    if numeric is NumericKind.FLOAT:
        return float(sum(values, 0.0))
    return sum(int(value) for value in values)


def plan_aggregation(kind: AggregationKind, accessor: Optional[FieldAccessor]) -> AggregationPlan:
    """
    Resolve an aggregation kind and target field into a plan.

    Args:
        kind: Requested aggregation
        accessor: Registry accessor for the aggregation field, or None

    Returns:
        The matching plan; `Unresolved` when the field is missing or has the
        wrong type for the aggregation
    """
    if kind is AggregationKind.COUNT:
        return CountPlan()
    if accessor is None:
        return Unresolved(kind=kind, reason="aggregation field is required")
    if kind is AggregationKind.COUNT_DISTINCT:
        return CountDistinctPlan()
    if kind in (AggregationKind.MIN, AggregationKind.MAX):
        return ExtremumPlan(kind=kind)
    if accessor.numeric_kind is None:
        return Unresolved(kind=kind, reason=f"{accessor.name} is not numeric")
    if kind is AggregationKind.SUM:
        return SumPlan(numeric=accessor.numeric_kind)
    return AvgPlan(numeric=accessor.numeric_kind)
