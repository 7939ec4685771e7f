"""
Schema descriptor models.

Describe the queryable entities, their fields and relationships. Instances
are built once at startup and treated as read-only afterwards.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from query_agent.core.models import StructuredQuery


class EnumValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: int
    display_name: str


class FieldSchema(BaseModel):
    """A single queryable field on an entity."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    data_type: str  # Guid, string, enum, DateOnly, DateTime, int, decimal, bool
    is_nullable: bool = False
    is_primary_key: bool = False
    is_foreign_key: bool = False
    foreign_key_entity: Optional[str] = None
    is_sensitive: bool = False
    required_permission: Optional[str] = None
    is_filterable: bool = True
    is_sortable: bool = True
    is_read_only: bool = False
    aliases: List[str] = Field(default_factory=list)
    enum_values: List[EnumValue] = Field(default_factory=list)

    def matches(self, name: str) -> bool:
        """Exact name, alias or display name, ignoring case."""
        lowered = name.lower()
        if self.name.lower() == lowered or self.display_name.lower() == lowered:
            return True
        return any(alias.lower() == lowered for alias in self.aliases)


class RelationshipSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    related_entity: str
    relation_type: str  # ManyToOne, OneToMany
    foreign_key: str
    description: str = ""


class EntitySchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    description: str = ""
    aliases: List[str] = Field(default_factory=list)
    supports_crud: bool = True
    fields: List[FieldSchema] = Field(default_factory=list)
    relationships: List[RelationshipSchema] = Field(default_factory=list)

    def get_field(self, name: str) -> Optional[FieldSchema]:
        lowered = name.lower()
        for field in self.fields:
            if field.name.lower() == lowered:
                return field
        return None

    @property
    def primary_key(self) -> Optional[FieldSchema]:
        for field in self.fields:
            if field.is_primary_key:
                return field
        return None


class QueryExample(BaseModel):
    """A few-shot example pairing an utterance with its structured query."""

    model_config = ConfigDict(frozen=True)

    input: str
    description: str
    expected_output: StructuredQuery


class SchemaDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    entities: List[EntitySchema] = Field(default_factory=list)

    def to_prompt_format(self) -> str:
        """Render the schema as the text block embedded in translation prompts."""
        lines: List[str] = ["## 可用实体和字段", ""]
        for entity in self.entities:
            lines.append(f"### {entity.name} ({entity.display_name})")
            if entity.description:
                lines.append(f"描述: {entity.description}")
            if entity.aliases:
                lines.append(f"别名: {', '.join(entity.aliases)}")
            lines.append("")
            lines.append("字段:")
            for field in entity.fields:
                if field.is_sensitive:
                    continue
                nullable = "可空" if field.is_nullable else "必填"
                aliases = f" (别名: {', '.join(field.aliases)})" if field.aliases else ""
                lines.append(
                    f"- {field.name} ({field.display_name}): {field.data_type}, {nullable}{aliases}"
                )
                if field.enum_values:
                    values = ", ".join(f"{v.name}={v.display_name}" for v in field.enum_values)
                    lines.append(f"  可选值: {values}")
            if entity.relationships:
                lines.append("")
                lines.append("关系:")
                for rel in entity.relationships:
                    lines.append(f"- {rel.name} -> {rel.related_entity} ({rel.relation_type})")
            lines.append("")
        return "\n".join(lines)
