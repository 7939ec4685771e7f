"""
Coercion of wire values to declared field types.

Filter and mutation values arrive as JSON scalars (strings, numbers,
booleans). Before they reach a comparison or an assignment they are
converted to the field's static type. Failures raise CoercionError so the
caller can skip the clause or reject the field.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type
from uuid import UUID

from query_agent.core.errors import CoercionError
from query_agent.schema.descriptors import FieldSchema
from query_agent.schema.type_mappings import TypeMapper

_TRUE = {"true", "1", "yes", "y", "是", "t"}
_FALSE = {"false", "0", "no", "n", "否", "f"}


def _to_guid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value).strip())


def _parse_datetime(text: str) -> datetime:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return _parse_datetime(text).date()


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if len(text) == 10:
            result = datetime.combine(date.fromisoformat(text), time.min)
        else:
            result = _parse_datetime(text)
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    number = _to_decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"{value!r} is not integral")
    return int(number)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"{value!r} is not a number") from exc


def _to_float(value: Any) -> float:
    return float(_to_decimal(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{value!r} is not a boolean")


def _to_string(value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ValueError("structured values are not strings")
    if isinstance(value, Enum):
        return value.name
    return str(value)


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "guid": _to_guid,
    "dateonly": _to_date,
    "datetime": _to_datetime,
    "int": _to_int,
    "long": _to_int,
    "decimal": _to_decimal,
    "double": _to_float,
    "float": _to_float,
    "bool": _to_bool,
    "string": _to_string,
}


def _to_enum(field: FieldSchema, value: Any, enum_class: Optional[Type[Enum]]) -> Any:
    if enum_class is not None and isinstance(value, enum_class):
        return value
    ordinal: Optional[int] = None
    if isinstance(value, bool):
        ordinal = None
    elif isinstance(value, int):
        ordinal = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            ordinal = int(text)
        else:
            lowered = text.lower()
            for member in field.enum_values:
                if member.name.lower() == lowered or member.display_name.lower() == lowered:
                    ordinal = member.value
                    break
            if ordinal is None and enum_class is not None:
                # Record enums use UPPER_SNAKE names ("ON_LEAVE" for "OnLeave")
                compact = lowered.replace("_", "")
                for member in enum_class:
                    if member.name.lower().replace("_", "") == compact:
                        ordinal = member.value
                        break
    if ordinal is None:
        raise ValueError(f"{value!r} is not a member of {field.name}")
    if field.enum_values and ordinal not in {member.value for member in field.enum_values}:
        raise ValueError(f"{ordinal} is out of range for {field.name}")
    return enum_class(ordinal) if enum_class is not None else ordinal


def coerce_value(field: FieldSchema, value: Any, enum_class: Optional[Type[Enum]] = None) -> Any:
    """
    Convert a wire value to the declared type of `field`.

    Args:
        field: Target field schema
        value: Raw value from the structured query
        enum_class: Record enum type for enum fields, if any

    Returns:
        The converted value; None stays None

    Raises:
        CoercionError: If the value cannot be represented in the field's type
    """
    if value is None:
        return None
    declared = TypeMapper.normalize(field.data_type)
    try:
        if declared == "enum":
            return _to_enum(field, value, enum_class)
        converter = _CONVERTERS.get(declared, _to_string)
        return converter(value)
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise CoercionError(field.name, value, field.data_type) from exc
