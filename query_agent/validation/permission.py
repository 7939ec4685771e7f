"""
Role and capability based access checks for structured queries.

Runs after the security validator. Rejects unauthenticated callers and
entity/operation access the caller does not hold, strips selected fields
the caller may not see, and injects the row-scope filters that bind a
query to the caller's own rows or unit.
"""

import logging
from typing import Dict, List, Optional

from query_agent.config import QuerySettings
from query_agent.core.errors import ErrorCodes, Messages, WarningCodes
from query_agent.core.identity import Capabilities, Identity
from query_agent.core.models import (
    FilterCondition,
    FilterOperator,
    LogicalOperator,
    PermissionValidationResult,
    QueryOperation,
    StructuredQuery,
)
from query_agent.schema.catalog import SchemaCatalog

logger = logging.getLogger(__name__)

WILDCARD = "*"
UNIT_FIELD = "OrganizationUnitId"
EMPLOYEE_FIELD = "EmployeeId"

_OPERATION_VERBS = {
    QueryOperation.INSERT: "新增",
    QueryOperation.UPDATE: "修改",
    QueryOperation.DELETE: "删除",
}


class PermissionValidator:
    """Applies the caller's roles and capabilities to a structured query."""

    def __init__(
        self,
        catalog: SchemaCatalog,
        settings: Optional[QuerySettings] = None,
        payroll_entity: str = "PayrollRecord",
    ):
        self.catalog = catalog
        self.settings = settings or QuerySettings()
        self.payroll_entity = payroll_entity
        self._sensitive: Dict[str, List[str]] = {
            entity.lower(): [name.lower() for name in names]
            for entity, names in self.settings.sensitive_fields.items()
        }

    def validate(self, query: StructuredQuery, identity: Identity) -> PermissionValidationResult:
        """
        Check a query against the caller's identity.

        Args:
            query: Query that already passed security validation
            identity: The caller

        Returns:
            PermissionValidationResult; `corrected_query` has disallowed
            select fields removed and scope filters merged in
        """
        if not identity.is_authenticated:
            return self._fail(ErrorCodes.INSUFFICIENT_PERMISSION, Messages.UNAUTHENTICATED)

        scope = self.catalog.scope_for(query.target_entity, query.joins)
        target = self.catalog.find_entity_by_alias(query.target_entity) or query.target_entity

        for entity_name in [target, *(join.entity for join in query.joins)]:
            if not self.can_access_entity(identity, entity_name):
                return self._fail(
                    ErrorCodes.INSUFFICIENT_PERMISSION,
                    f"您没有权限访问 '{self._display_name(entity_name)}' 数据",
                )

        if not self.can_perform_operation(identity, query.operation):
            verb = _OPERATION_VERBS.get(query.operation, "执行此")
            return self._fail(ErrorCodes.INSUFFICIENT_PERMISSION, f"您没有权限{verb}数据")

        result = PermissionValidationResult()
        corrected = query.model_copy(deep=True)

        denied = self._denied_references(query, identity, scope, target)
        if denied:
            for path in denied:
                result.add_error(
                    ErrorCodes.SENSITIVE_FIELD_DENIED,
                    f"您没有权限使用敏感字段 '{path}' 作为条件",
                    path,
                )
            return result

        kept: List[str] = []
        for path in query.select_fields:
            entity_name, field_name = self._split(path, target, scope)
            if self.can_access_field(identity, entity_name, field_name):
                kept.append(path)
            else:
                result.removed_fields.append(path)
        corrected.select_fields = kept
        if result.removed_fields:
            result.add_warning(
                WarningCodes.FIELDS_REMOVED,
                f"以下敏感字段已被移除: {', '.join(result.removed_fields)}",
            )
            logger.info(f"Removed sensitive fields from query on {target}: {result.removed_fields}")

        scope_filters = self.scope_filters(identity, query)
        if scope_filters is None:
            return self._fail(ErrorCodes.DATA_SCOPE_EXCEEDED, "无法确定您的数据访问范围")
        result.scope_filters = scope_filters
        self._merge_filters(corrected, scope_filters)

        result.corrected_query = corrected
        return result

    def can_access_entity(self, identity: Identity, entity_name: str) -> bool:
        if identity.is_elevated:
            return True
        if entity_name.lower() == self.payroll_entity.lower():
            return identity.has_capability(Capabilities.PAYROLL_READ)
        return identity.has_capability(Capabilities.HR_READ)

    def can_perform_operation(self, identity: Identity, operation: QueryOperation) -> bool:
        if operation is QueryOperation.SELECT:
            return identity.is_elevated or identity.has_capability(Capabilities.HR_READ)
        if not self.settings.enable_crud:
            return False
        if identity.is_elevated:
            return True
        required = self.settings.crud_permissions.get(operation.value, Capabilities.HR_WRITE)
        return identity.has_capability(required)

    def can_access_field(self, identity: Identity, entity_name: str, field_name: str) -> bool:
        """
        Decide whether the caller may read a field.

        A wildcard sensitivity marker hides every field of the entity; on the
        payroll entity only payroll:read holders are exempt, and that holds
        for hr:admin too. Other sensitive fields need their declared
        capability, or hr:admin when none is declared.
        """
        if identity.has_capability(Capabilities.SYSTEM_ADMIN):
            return True
        configured = self._sensitive.get(entity_name.lower(), [])
        if WILDCARD in configured:
            if entity_name.lower() == self.payroll_entity.lower():
                return identity.has_capability(Capabilities.PAYROLL_READ)
            return identity.is_elevated
        field = self.catalog.get_field(entity_name, field_name)
        sensitive = field_name.lower() in configured or (field is not None and field.is_sensitive)
        if not sensitive:
            return True
        if field is not None and field.required_permission:
            return identity.has_capability(field.required_permission)
        return identity.is_elevated

    def scope_filters(
        self, identity: Identity, query: StructuredQuery
    ) -> Optional[List[FilterCondition]]:
        """
        Row-scope filters for the target and every joined entity.

        Returns None when a scope is required but the identity does not carry
        the id it would bind to.
        """
        if identity.is_elevated:
            return []
        targets = [(query.target_entity, None)]
        targets += [(join.entity, join.alias or join.entity) for join in query.joins]

        filters: List[FilterCondition] = []
        for entity_name, qualifier in targets:
            entity = self.catalog.get_entity(self.catalog.find_entity_by_alias(entity_name) or "")
            if entity is None:
                continue
            field_name, value = self._scope_binding(identity, entity)
            if field_name is None:
                continue
            if value is None:
                logger.warning(f"No scope id for identity {identity.user_id} on {entity.name}")
                return None
            path = f"{qualifier}.{field_name}" if qualifier else field_name
            filters.append(FilterCondition(field=path, operator=FilterOperator.EQUAL, value=value))
        return filters

    def _scope_binding(self, identity: Identity, entity):
        has_unit_field = entity.get_field(UNIT_FIELD) is not None
        if (
            identity.has_capability(Capabilities.DEPARTMENT_MANAGER)
            and identity.organization_unit_id is not None
            and has_unit_field
        ):
            return UNIT_FIELD, identity.organization_unit_id
        if entity.name == "Employee":
            return "Id", identity.employee_id
        if entity.get_field(EMPLOYEE_FIELD) is not None:
            return EMPLOYEE_FIELD, identity.employee_id
        return None, None

    def _merge_filters(self, query: StructuredQuery, scope_filters: List[FilterCondition]) -> None:
        # An existing clause only stands in for the scope when nothing is OR-ed around it
        conjunctive = all(
            existing.logical_operator is LogicalOperator.AND for existing in query.filters[:-1]
        )
        for scope_filter in scope_filters:
            duplicate = conjunctive and any(
                existing.field.lower() == scope_filter.field.lower()
                and existing.operator == scope_filter.operator
                and str(existing.value).lower() == str(scope_filter.value).lower()
                for existing in query.filters
            )
            if duplicate:
                continue
            # The previous last condition had no successor; bind the scope filter with AND
            if query.filters:
                query.filters[-1].logical_operator = LogicalOperator.AND
            query.filters.append(scope_filter)

    def _denied_references(
        self, query: StructuredQuery, identity: Identity, scope: Dict[str, str], target: str
    ) -> List[str]:
        paths = [condition.field for condition in query.filters]
        paths += [clause.field for clause in query.order_by]
        paths += list(query.group_by_fields)
        if query.aggregation_field:
            paths.append(query.aggregation_field)
        denied = []
        for path in paths:
            entity_name, field_name = self._split(path, target, scope)
            if not self.can_access_field(identity, entity_name, field_name):
                denied.append(path)
        return denied

    @staticmethod
    def _split(path: str, target: str, scope: Dict[str, str]):
        if "." in path:
            qualifier, field_name = path.split(".", 1)
            return scope.get(qualifier.lower(), qualifier), field_name
        return target, path

    def _display_name(self, entity_name: str) -> str:
        entity = self.catalog.get_entity(entity_name)
        return entity.display_name if entity else entity_name

    @staticmethod
    def _fail(code: str, message: str) -> PermissionValidationResult:
        result = PermissionValidationResult()
        result.add_error(code, message)
        return result
