"""Schema catalog and descriptors for the queryable entities."""

from query_agent.schema.catalog import SchemaCatalog
from query_agent.schema.descriptors import (
    EntitySchema,
    EnumValue,
    FieldSchema,
    QueryExample,
    RelationshipSchema,
    SchemaDescriptor,
)
from query_agent.schema.type_mappings import NumericKind, TypeMapper

__all__ = [
    "SchemaCatalog",
    "EntitySchema",
    "EnumValue",
    "FieldSchema",
    "QueryExample",
    "RelationshipSchema",
    "SchemaDescriptor",
    "NumericKind",
    "TypeMapper",
]
