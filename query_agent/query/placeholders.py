"""
Relative-date placeholders.

The translation prompt tells the model to write `@Today`, `@CurrentWeekStart`,
`@CurrentMonthStart`, `@CurrentYear` or `@Now` instead of concrete dates.
They are replaced here, in UTC, before the query is validated.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from query_agent.core.models import StructuredQuery


def _resolvers(now: datetime) -> Dict[str, Callable[[], Any]]:
    today = now.date()
    return {
        "@today": lambda: today,
        "@currentweekstart": lambda: today - timedelta(days=today.weekday()),
        "@currentmonthstart": lambda: date(today.year, today.month, 1),
        "@currentyear": lambda: today.year,
        "@now": lambda: now,
    }


def resolve_value(value: Any, now: Optional[datetime] = None) -> Any:
    """
    Replace a placeholder value, recursing into lists.

    Args:
        value: A filter or update value as produced by the model
        now: Reference time; defaults to the current UTC time

    Returns:
        The resolved value, or `value` unchanged when it is not a placeholder
    """
    now = _utc(now)
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, now) for item in value]
    if isinstance(value, str):
        resolver = _resolvers(now).get(value.strip().lower())
        if resolver is not None:
            return resolver()
    return value


def resolve_placeholders(query: StructuredQuery, now: Optional[datetime] = None) -> StructuredQuery:
    """Return a copy of `query` with every placeholder in filters and update values resolved."""
    now = _utc(now)
    filters = [
        condition.model_copy(update={"value": resolve_value(condition.value, now)})
        for condition in query.filters
    ]
    update_values = {name: resolve_value(value, now) for name, value in query.update_values.items()}
    return query.model_copy(update={"filters": filters, "update_values": update_values})


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)
