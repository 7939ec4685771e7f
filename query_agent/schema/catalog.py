"""
Schema catalog.

Read-only lookups over the queryable entities: by name, by alias, field
metadata, the prompt-ready schema description and few-shot examples.
"""

from typing import Dict, List, Optional, Tuple

from query_agent.schema.descriptors import (
    EntitySchema,
    FieldSchema,
    QueryExample,
    SchemaDescriptor,
)
from query_agent.schema.hr_schema import build_hr_schema, build_query_examples


class SchemaCatalog:
    """
    Process-wide description of the queryable schema.

    Built once and shared read-only by the translator, the validators and
    the execution engine.
    """

    def __init__(
        self,
        schema: Optional[SchemaDescriptor] = None,
        examples: Optional[List[QueryExample]] = None,
    ):
        """
        Initialize the catalog.

        Args:
            schema: Entity descriptors; defaults to the built-in HR schema
            examples: Few-shot examples; defaults to the built-in HR examples
        """
        self._schema = schema or build_hr_schema()
        self._examples = list(examples) if examples is not None else build_query_examples()
        self._entities: Dict[str, EntitySchema] = {
            entity.name.lower(): entity for entity in self._schema.entities
        }
        self._entity_aliases = self._build_entity_alias_map()
        self._prompt_description: Optional[str] = None

    @property
    def schema(self) -> SchemaDescriptor:
        return self._schema

    def _build_entity_alias_map(self) -> Dict[str, str]:
        aliases: Dict[str, str] = {}
        for entity in self._schema.entities:
            aliases[entity.display_name.lower()] = entity.name
            for alias in entity.aliases:
                aliases[alias.lower()] = entity.name
        return aliases

    def entity_names(self) -> List[str]:
        return [entity.name for entity in self._schema.entities]

    def get_entity(self, name: Optional[str]) -> Optional[EntitySchema]:
        if not name:
            return None
        return self._entities.get(name.lower())

    def entity_exists(self, name: Optional[str]) -> bool:
        return self.get_entity(name) is not None

    def get_field(self, entity_name: str, field_name: str) -> Optional[FieldSchema]:
        entity = self.get_entity(entity_name)
        if entity is None:
            return None
        return entity.get_field(field_name)

    def field_exists(self, entity_name: str, field_name: str) -> bool:
        return self.get_field(entity_name, field_name) is not None

    def find_entity_by_alias(self, alias: str) -> Optional[str]:
        """Resolve an entity name or alias to the canonical entity name."""
        entity = self.get_entity(alias)
        if entity is not None:
            return entity.name
        return self._entity_aliases.get(alias.lower())

    def find_field_by_alias(self, entity_name: str, alias: str) -> Optional[str]:
        """Resolve a field name, alias or display name to the canonical field name."""
        entity = self.get_entity(entity_name)
        if entity is None:
            return None
        exact = entity.get_field(alias)
        if exact is not None:
            return exact.name
        for field in entity.fields:
            if field.matches(alias):
                return field.name
        return None

    def resolve_path(
        self, path: str, target_entity: str, scope: Optional[Dict[str, str]] = None
    ) -> Optional[Tuple[str, FieldSchema]]:
        """
        Resolve a field path to (entity name, field schema).

        `path` is either a bare field of the target entity or
        `Qualifier.Field` where the qualifier is an entity name or a join
        alias present in `scope` (qualifier -> entity name, lower-cased keys).

        Args:
            path: Field path as written in the query
            target_entity: Entity bare fields belong to
            scope: Qualifiers allowed in this query; None allows any entity

        Returns:
            The owning entity name and field schema, or None if unresolvable
        """
        if "." in path:
            qualifier, field_name = path.split(".", 1)
            if scope is not None:
                entity_name = scope.get(qualifier.lower())
            else:
                entity_name = self.find_entity_by_alias(qualifier)
            if entity_name is None:
                return None
        else:
            entity_name, field_name = target_entity, path
        field = self.get_field(entity_name, field_name)
        if field is None:
            return None
        entity = self.get_entity(entity_name)
        return entity.name, field

    def scope_for(self, target_entity: str, joins) -> Dict[str, str]:
        """Qualifiers usable in a query: the target, joined entities and join aliases."""
        scope: Dict[str, str] = {}
        target = self.find_entity_by_alias(target_entity)
        if target is not None:
            scope[target.lower()] = target
        for join in joins:
            entity = self.find_entity_by_alias(join.entity)
            if entity is None:
                continue
            scope[join.entity.lower()] = entity
            scope[entity.lower()] = entity
            if join.alias:
                scope[join.alias.lower()] = entity
        return scope

    def prompt_description(self) -> str:
        if self._prompt_description is None:
            self._prompt_description = self._schema.to_prompt_format()
        return self._prompt_description

    def examples(self) -> List[QueryExample]:
        return list(self._examples)
