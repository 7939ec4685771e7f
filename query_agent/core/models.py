"""
Shared data models for the query agent.

Everything that crosses a component boundary (structured queries, results,
validation outcomes, routing decisions, chat envelopes) is a pydantic model.
Wire-facing models accept and emit camelCase keys so they match the JSON the
language model produces and the envelope returned to callers.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _match_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Resolve an enum member case-insensitively by value or name."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        for member in enum_cls:
            if member.value.lower() == lowered or member.name.lower() == lowered:
                return member
    return value


class WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class QueryOperation(str, Enum):
    SELECT = "Select"
    INSERT = "Insert"
    UPDATE = "Update"
    DELETE = "Delete"

    @property
    def is_mutation(self) -> bool:
        return self is not QueryOperation.SELECT


class AggregationKind(str, Enum):
    COUNT = "Count"
    COUNT_DISTINCT = "CountDistinct"
    SUM = "Sum"
    AVG = "Avg"
    MIN = "Min"
    MAX = "Max"


class FilterOperator(str, Enum):
    EQUAL = "Equal"
    NOT_EQUAL = "NotEqual"
    GREATER_THAN = "GreaterThan"
    GREATER_THAN_OR_EQUAL = "GreaterThanOrEqual"
    LESS_THAN = "LessThan"
    LESS_THAN_OR_EQUAL = "LessThanOrEqual"
    CONTAINS = "Contains"
    STARTS_WITH = "StartsWith"
    ENDS_WITH = "EndsWith"
    IN = "In"
    NOT_IN = "NotIn"
    IS_NULL = "IsNull"
    IS_NOT_NULL = "IsNotNull"
    BETWEEN = "Between"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class FilterCondition(WireModel):
    """
    A single filter clause.

    `logical_operator` links this condition to the NEXT one in the list.
    Conditions are folded strictly left to right.
    """

    field: str
    operator: FilterOperator = FilterOperator.EQUAL
    value: Any = None
    logical_operator: LogicalOperator = LogicalOperator.AND

    @field_validator("operator", mode="before")
    @classmethod
    def _operator(cls, value: Any) -> Any:
        return _match_enum(FilterOperator, value)

    @field_validator("logical_operator", mode="before")
    @classmethod
    def _logical(cls, value: Any) -> Any:
        if value is None or value == "":
            return LogicalOperator.AND
        return _match_enum(LogicalOperator, value)


class JoinClause(WireModel):
    entity: str
    on: str = ""
    join_type: str = "Inner"
    alias: Optional[str] = None


class OrderByClause(WireModel):
    field: str
    descending: bool = False


class StructuredQuery(WireModel):
    """Whitelisted intermediate representation between text and the data store."""

    operation: QueryOperation = QueryOperation.SELECT
    target_entity: str
    select_fields: List[str] = Field(default_factory=list)
    filters: List[FilterCondition] = Field(default_factory=list)
    joins: List[JoinClause] = Field(default_factory=list)
    aggregation: Optional[AggregationKind] = None
    aggregation_field: Optional[str] = None
    group_by_fields: List[str] = Field(default_factory=list)
    order_by: List[OrderByClause] = Field(default_factory=list)
    limit: int = 100
    offset: int = 0
    update_values: Dict[str, Any] = Field(default_factory=dict)
    original_text: str = ""

    @field_validator("operation", mode="before")
    @classmethod
    def _operation(cls, value: Any) -> Any:
        if value is None or value == "":
            return QueryOperation.SELECT
        return _match_enum(QueryOperation, value)

    @field_validator("aggregation", mode="before")
    @classmethod
    def _aggregation(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return _match_enum(AggregationKind, value)

    @field_validator("limit", "offset", mode="before")
    @classmethod
    def _non_null_int(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator(
        "select_fields", "filters", "joins", "group_by_fields", "order_by", mode="before"
    )
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("update_values", mode="before")
    @classmethod
    def _null_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_wire(self) -> Dict[str, Any]:
        """Serialize as the camelCase JSON shape used in prompts and logs."""
        return self.model_dump(
            mode="json", by_alias=True, exclude={"original_text"}, exclude_none=True
        )


class ColumnInfo(WireModel):
    name: str
    display_name: str
    data_type: str
    is_nullable: bool = False


class QueryResult(WireModel):
    """
    Outcome of executing a structured query.

    Exactly one of `rows`, `aggregation_value` or `affected_rows` carries the
    payload, depending on the operation and whether an aggregation was asked for.
    """

    success: bool = True
    operation: QueryOperation = QueryOperation.SELECT
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[ColumnInfo] = Field(default_factory=list)
    row_count: int = 0
    aggregation_value: Any = None
    is_aggregation: bool = False
    affected_rows: int = 0
    inserted_id: Any = None
    generated_query: Optional[str] = None
    execution_ms: int = 0
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def ok_rows(
        cls, rows: List[Dict[str, Any]], columns: Optional[List[ColumnInfo]] = None
    ) -> "QueryResult":
        return cls(rows=rows, columns=columns or [], row_count=len(rows))

    @classmethod
    def ok_aggregation(cls, value: Any) -> "QueryResult":
        return cls(aggregation_value=value, is_aggregation=True, row_count=1)

    @classmethod
    def ok_modified(
        cls, operation: QueryOperation, affected: int, inserted_id: Any = None
    ) -> "QueryResult":
        return cls(operation=operation, affected_rows=affected, inserted_id=inserted_id)

    @classmethod
    def fail(cls, message: str, code: Optional[str] = None) -> "QueryResult":
        return cls(success=False, error_message=message, error_code=code)


class ValidationIssue(BaseModel):
    code: str
    message: str
    field: Optional[str] = None


class ValidationResult(BaseModel):
    """Result of a validator pass; never mutates the caller's query."""

    is_valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    corrected_query: Optional[StructuredQuery] = None

    @classmethod
    def failure(
        cls, code: str, message: str, field: Optional[str] = None
    ) -> "ValidationResult":
        return cls(is_valid=False, errors=[ValidationIssue(code=code, message=message, field=field)])

    def add_error(self, code: str, message: str, field: Optional[str] = None) -> None:
        self.errors.append(ValidationIssue(code=code, message=message, field=field))
        self.is_valid = False

    def add_warning(self, code: str, message: str, field: Optional[str] = None) -> None:
        self.warnings.append(ValidationIssue(code=code, message=message, field=field))

    def combine(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult(
            is_valid=self.is_valid and other.is_valid,
            errors=[*self.errors, *other.errors],
            warnings=[*self.warnings, *other.warnings],
            corrected_query=other.corrected_query or self.corrected_query,
        )

    @property
    def error_text(self) -> str:
        return "; ".join(error.message for error in self.errors)


class PermissionValidationResult(ValidationResult):
    removed_fields: List[str] = Field(default_factory=list)
    scope_filters: List[FilterCondition] = Field(default_factory=list)


class TranslationResult(BaseModel):
    success: bool
    query: Optional[StructuredQuery] = None
    error_message: Optional[str] = None
    raw_response: Optional[str] = None
    processing_ms: int = 0


class Route(str, Enum):
    TEXT2SQL = "text2sql"
    CHAT = "chat"


class RouteStrategy(str, Enum):
    HEURISTIC = "heuristic"
    MODEL = "model"
    FALLBACK = "fallback"


class RouteDecision(BaseModel):
    route: Route
    confidence: float = Field(ge=0.0, le=1.0)
    strategy: RouteStrategy
    reason: str = ""


class ModelPurpose(str, Enum):
    CHAT = "chat"
    TEXT2SQL = "text2sql"
    ROUTER = "router"


class ChatMessage(BaseModel):
    """One conversational turn, also used as a model prompt message."""

    role: str
    content: str
    timestamp: Optional[datetime] = None

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content, timestamp=datetime.now(timezone.utc))

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role="assistant", content=content, timestamp=datetime.now(timezone.utc))


class ModelCandidate(BaseModel):
    """One backend/model pairing in a purpose's ordered preference list."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: str
    model: str
    factory: Callable[[], Any]


class Diagnostics(WireModel):
    generated_query_text: Optional[str] = None
    execution_millis: Optional[int] = None
    warnings: Optional[List[str]] = None


class ChatEnvelope(WireModel):
    reply: str
    route: Route
    correlation_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    diagnostics: Optional[Diagnostics] = None
