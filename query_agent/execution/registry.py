"""
Per-entity field registry.

Maps every catalog field to an accessor/mutator pair on the entity record
model, so the executor reads and writes records by catalog field name
without inspecting record types at query time.
"""

import typing
from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from query_agent.schema.catalog import SchemaCatalog
from query_agent.schema.descriptors import EntitySchema, FieldSchema
from query_agent.schema.type_mappings import NumericKind, TypeMapper


def _enum_class(annotation: Any) -> Optional[Type[Enum]]:
    candidates = typing.get_args(annotation) or (annotation,)
    for candidate in candidates:
        if isinstance(candidate, type) and issubclass(candidate, Enum):
            return candidate
    return None


class FieldAccessor:
    """Typed read/write access to one field of one entity."""

    def __init__(self, schema: FieldSchema, attribute: str, enum_class: Optional[Type[Enum]] = None):
        self.schema = schema
        self.attribute = attribute
        self.enum_class = enum_class
        self.numeric_kind: Optional[NumericKind] = TypeMapper.numeric_kind(schema.data_type)
        self._getter: Callable[[Any], Any] = attrgetter(attribute)

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def is_text(self) -> bool:
        return TypeMapper.is_text(self.schema.data_type)

    def get(self, record: Any) -> Any:
        return self._getter(record)

    def set(self, record: Any, value: Any) -> None:
        setattr(record, self.attribute, value)


class EntityAccessors:
    """Accessors for every catalog field of one entity, plus record construction."""

    def __init__(self, schema: EntitySchema, model: Type[BaseModel], fields: Dict[str, FieldAccessor]):
        self.schema = schema
        self.model = model
        self._fields = fields
        pk = schema.primary_key
        self.primary_key: Optional[FieldAccessor] = fields.get(pk.name.lower()) if pk else None

    @property
    def name(self) -> str:
        return self.schema.name

    def field(self, name: str) -> Optional[FieldAccessor]:
        return self._fields.get(name.lower())

    def fields(self) -> List[FieldAccessor]:
        return list(self._fields.values())

    def new_record(self) -> Any:
        return self.model()

    def primary_key_of(self, record: Any) -> Any:
        if self.primary_key is None:
            return None
        return self.primary_key.get(record)


class FieldRegistry:
    """
    Field accessors for all registered entities, built once at startup.

    Every catalog field must map to a record attribute whose alias equals the
    catalog field name; a mismatch fails construction.
    """

    def __init__(self, catalog: SchemaCatalog, models: Dict[str, Type[BaseModel]]):
        self._entities: Dict[str, EntityAccessors] = {}
        for entity_name, model in models.items():
            schema = catalog.get_entity(entity_name)
            if schema is None:
                raise ValueError(f"Entity model '{entity_name}' has no schema in the catalog")
            self._entities[schema.name.lower()] = self._build(schema, model)

    @staticmethod
    def _build(schema: EntitySchema, model: Type[BaseModel]) -> EntityAccessors:
        by_alias = {
            (info.alias or attribute).lower(): (attribute, info)
            for attribute, info in model.model_fields.items()
        }
        fields: Dict[str, FieldAccessor] = {}
        for field in schema.fields:
            entry = by_alias.get(field.name.lower())
            if entry is None:
                raise ValueError(f"{model.__name__} has no attribute for field {schema.name}.{field.name}")
            attribute, info = entry
            fields[field.name.lower()] = FieldAccessor(field, attribute, _enum_class(info.annotation))
        return EntityAccessors(schema, model, fields)

    def get(self, entity_name: str) -> Optional[EntityAccessors]:
        if not entity_name:
            return None
        return self._entities.get(entity_name.lower())

    def __contains__(self, entity_name: str) -> bool:
        return self.get(entity_name) is not None

    def entity_names(self) -> List[str]:
        return [accessors.name for accessors in self._entities.values()]
