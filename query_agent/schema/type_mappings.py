"""
Type mapping utilities for declared schema field types.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Type
from uuid import UUID


class NumericKind(str, Enum):
    """Numeric families that have their own summation semantics."""

    INT = "int"
    DECIMAL = "decimal"
    FLOAT = "float"


class TypeMapper:
    """Maps declared field types (as written in the schema catalog) to Python types."""

    DECLARED_TYPE_MAP: Dict[str, Type] = {
        "guid": UUID,
        "string": str,
        "enum": Enum,
        "dateonly": date,
        "datetime": datetime,
        "int": int,
        "long": int,
        "decimal": Decimal,
        "double": float,
        "float": float,
        "bool": bool,
    }

    NUMERIC_KIND_MAP: Dict[str, NumericKind] = {
        "int": NumericKind.INT,
        "long": NumericKind.INT,
        "decimal": NumericKind.DECIMAL,
        "double": NumericKind.FLOAT,
        "float": NumericKind.FLOAT,
    }

    # Loose names a model or an operator might use for the same types
    ALIASES: Dict[str, str] = {
        "uuid": "guid",
        "str": "string",
        "text": "string",
        "date": "dateonly",
        "timestamp": "datetime",
        "integer": "int",
        "number": "decimal",
        "boolean": "bool",
    }

    @classmethod
    def normalize(cls, declared_type: str) -> str:
        key = declared_type.strip().lower()
        return cls.ALIASES.get(key, key)

    @classmethod
    def get_python_type(cls, declared_type: str) -> Type:
        """
        Get the Python type for a declared field type.

        Args:
            declared_type: Type name from the schema catalog (e.g. "DateOnly")

        Returns:
            Python type; unknown names map to str
        """
        return cls.DECLARED_TYPE_MAP.get(cls.normalize(declared_type), str)

    @classmethod
    def numeric_kind(cls, declared_type: str) -> Optional[NumericKind]:
        return cls.NUMERIC_KIND_MAP.get(cls.normalize(declared_type))

    @classmethod
    def is_numeric(cls, declared_type: str) -> bool:
        return cls.numeric_kind(declared_type) is not None

    @classmethod
    def is_text(cls, declared_type: str) -> bool:
        return cls.normalize(declared_type) == "string"
