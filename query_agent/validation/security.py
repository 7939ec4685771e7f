"""
Structural safety checks for structured queries.

Enforces the entity whitelist, join/filter caps, field existence, mutation
rules, the row limit and a complexity ceiling. Also scans raw text for
blocked keywords before anything reaches a model.
"""

import logging
from typing import Dict, Optional

from query_agent.config import QuerySettings
from query_agent.core.errors import ErrorCodes, WarningCodes
from query_agent.core.models import QueryOperation, StructuredQuery, ValidationResult
from query_agent.schema.catalog import SchemaCatalog

logger = logging.getLogger(__name__)

_OPERATION_NAMES = {
    QueryOperation.INSERT: "新增",
    QueryOperation.UPDATE: "更新",
    QueryOperation.DELETE: "删除",
}


class SecurityValidator:
    """
    Validates structured queries against configured safety limits.

    Never mutates the query it is given. When a correction is needed (the
    row limit) the corrected copy is returned in `corrected_query`.
    """

    def __init__(self, catalog: SchemaCatalog, settings: Optional[QuerySettings] = None):
        """
        Initialize the validator.

        Args:
            catalog: Schema catalog used to resolve entities and fields
            settings: Limits, whitelist and blocked keywords
        """
        self.catalog = catalog
        self.settings = settings or QuerySettings()
        self._allowed = {name.lower() for name in self.settings.allowed_entities}

    def validate(self, query: StructuredQuery) -> ValidationResult:
        """
        Run every structural check on a query.

        Entity and operation failures stop validation immediately; the
        remaining checks accumulate errors.

        Args:
            query: Query to validate

        Returns:
            ValidationResult whose `corrected_query` is the query to execute
        """
        entity_check = self._validate_entity(query.target_entity)
        if not entity_check.is_valid:
            return entity_check

        canonical = self.catalog.find_entity_by_alias(query.target_entity)
        if canonical != query.target_entity:
            # Later checks and the executor address entities by canonical name
            query = query.model_copy(update={"target_entity": canonical})

        operation_check = self._validate_operation(query)
        if not operation_check.is_valid:
            return operation_check

        corrected = query.model_copy(deep=True)
        result = ValidationResult()
        scope = self.catalog.scope_for(query.target_entity, query.joins)

        if len(query.joins) > self.settings.max_join_tables:
            result.add_error(
                ErrorCodes.TOO_MANY_JOINS,
                f"JOIN 表数量超过限制，最多允许 {self.settings.max_join_tables} 张表，"
                f"当前为 {len(query.joins)} 张",
            )
        for join in query.joins:
            if not self._is_allowed(join.entity):
                result.add_error(
                    ErrorCodes.ENTITY_NOT_ALLOWED, f"不允许 JOIN 实体 '{join.entity}'", join.entity
                )

        if len(query.filters) > self.settings.max_filters:
            result.add_error(
                ErrorCodes.TOO_MANY_FILTERS,
                f"过滤条件数量超过限制，最多允许 {self.settings.max_filters} 个，"
                f"当前为 {len(query.filters)} 个",
            )
        for condition in query.filters:
            self._validate_filter_field(condition.field, query, scope, result)

        for path in query.select_fields:
            self._validate_field(path, query, scope, result)
        for path in query.group_by_fields:
            self._validate_field(path, query, scope, result)
        for clause in query.order_by:
            resolved = self._validate_field(clause.field, query, scope, result)
            if resolved is not None and not resolved.is_sortable:
                result.add_error(
                    ErrorCodes.FIELD_NOT_ALLOWED, f"字段 '{clause.field}' 不支持排序", clause.field
                )
        if query.aggregation_field:
            self._validate_field(query.aggregation_field, query, scope, result)

        if query.operation in (QueryOperation.UPDATE, QueryOperation.DELETE) and not query.filters:
            result.add_error(
                ErrorCodes.FILTER_REQUIRED,
                f"{_OPERATION_NAMES[query.operation]}操作必须指定过滤条件",
            )

        if query.operation in (QueryOperation.INSERT, QueryOperation.UPDATE):
            self._validate_update_values(query, result)

        if corrected.limit > self.settings.max_result_rows:
            result.add_warning(
                WarningCodes.LIMIT_ADJUSTED,
                f"返回行数已从 {corrected.limit} 调整为最大值 {self.settings.max_result_rows}",
            )
            corrected.limit = self.settings.max_result_rows

        complexity = self.complexity_score(corrected)
        if complexity > self.settings.max_complexity_score:
            result.add_error(
                ErrorCodes.QUERY_TOO_COMPLEX,
                f"查询复杂度 ({complexity}) 超过限制 ({self.settings.max_complexity_score})，请简化查询",
            )

        if not result.is_valid:
            logger.info(
                f"Security validation rejected query on {query.target_entity}: "
                f"{[error.code for error in result.errors]}"
            )
        result.corrected_query = corrected
        return result

    def validate_raw_text(self, text: str) -> ValidationResult:
        """
        Scan free text for blocked keywords (case-insensitive substring match).

        Args:
            text: Any raw text entering the pipeline

        Returns:
            Failure with DANGEROUS_KEYWORD listing every keyword found
        """
        if not text:
            return ValidationResult()
        lowered = text.lower()
        found = [kw for kw in self.settings.blocked_keywords if kw.lower() in lowered]
        if found:
            logger.warning(f"Blocked keywords in raw text: {found}")
            return ValidationResult.failure(
                ErrorCodes.DANGEROUS_KEYWORD, f"查询包含不安全的关键字: {', '.join(found)}"
            )
        return ValidationResult()

    def complexity_score(self, query: StructuredQuery) -> int:
        """Heuristic cost of a query; higher means more expensive."""
        score = 5 * len(query.joins)
        score += 2 * len(query.filters)
        if query.aggregation is not None:
            score += 10
        score += 5 * len(query.group_by_fields)
        score += len(query.order_by)
        if query.operation.is_mutation:
            score += 15
        if query.limit > 500:
            score += 10
        return score

    def _is_allowed(self, entity_name: str) -> bool:
        canonical = self.catalog.find_entity_by_alias(entity_name)
        return canonical is not None and canonical.lower() in self._allowed

    def _validate_entity(self, entity_name: str) -> ValidationResult:
        if not entity_name:
            return ValidationResult.failure(ErrorCodes.ENTITY_NOT_ALLOWED, "未指定目标实体")
        canonical = self.catalog.find_entity_by_alias(entity_name)
        if canonical is None:
            return ValidationResult.failure(
                ErrorCodes.ENTITY_NOT_ALLOWED, f"实体 '{entity_name}' 不存在", entity_name
            )
        if canonical.lower() not in self._allowed:
            return ValidationResult.failure(
                ErrorCodes.ENTITY_NOT_ALLOWED, f"不允许访问实体 '{entity_name}'", entity_name
            )
        return ValidationResult()

    def _validate_operation(self, query: StructuredQuery) -> ValidationResult:
        if not query.operation.is_mutation:
            return ValidationResult()
        if not self.settings.enable_crud:
            return ValidationResult.failure(
                ErrorCodes.OPERATION_NOT_ALLOWED, "CRUD 操作已禁用，仅允许查询操作"
            )
        entity = self.catalog.get_entity(query.target_entity)
        if not entity.supports_crud:
            return ValidationResult.failure(
                ErrorCodes.OPERATION_NOT_ALLOWED,
                f"实体 '{entity.name}' 不支持{_OPERATION_NAMES[query.operation]}操作",
                entity.name,
            )
        return ValidationResult()

    def _validate_field(
        self,
        path: str,
        query: StructuredQuery,
        scope: Dict[str, str],
        result: ValidationResult,
    ):
        resolved = self.catalog.resolve_path(path, query.target_entity, scope)
        if resolved is None:
            result.add_error(
                ErrorCodes.FIELD_NOT_ALLOWED,
                f"字段 '{path}' 不存在于实体 '{query.target_entity}' 或其关联实体",
                path,
            )
            return None
        return resolved[1]

    def _validate_filter_field(
        self,
        path: str,
        query: StructuredQuery,
        scope: Dict[str, str],
        result: ValidationResult,
    ) -> None:
        if "." in path:
            qualifier = path.split(".", 1)[0]
            if qualifier.lower() not in scope:
                result.add_error(
                    ErrorCodes.INVALID_FILTER,
                    f"过滤条件引用的实体 '{qualifier}' 不在查询范围内",
                    path,
                )
                return
        field = self._validate_field(path, query, scope, result)
        if field is not None and not field.is_filterable:
            result.add_error(ErrorCodes.INVALID_FILTER, f"字段 '{path}' 不支持过滤", path)

    def _validate_update_values(self, query: StructuredQuery, result: ValidationResult) -> None:
        entity = self.catalog.get_entity(query.target_entity)
        for name in query.update_values:
            field = entity.get_field(name)
            if field is None:
                result.add_error(
                    ErrorCodes.FIELD_NOT_ALLOWED, f"字段 '{name}' 不存在于实体 '{entity.name}'", name
                )
            elif field.is_read_only:
                result.add_error(ErrorCodes.FIELD_NOT_ALLOWED, f"字段 '{name}' 是只读字段", name)
            elif field.is_primary_key and query.operation is QueryOperation.UPDATE:
                result.add_error(ErrorCodes.FIELD_NOT_ALLOWED, f"不能修改主键字段 '{name}'", name)

