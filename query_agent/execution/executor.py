"""
Dynamic query execution.

Runs a structured query against the entity store: security validation,
permission validation and scoping, then a Select (rows, aggregate or grouped
aggregate), Insert, Update or Delete. Expected failures come back as failed
QueryResults; nothing but cancellation escapes `execute`.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from query_agent.config import QuerySettings
from query_agent.core.errors import (
    CoercionError,
    ErrorCodes,
    Messages,
    RequestCancelled,
    ensure_not_cancelled,
)
from query_agent.core.identity import Identity
from query_agent.core.interfaces import IEntityStore
from query_agent.core.models import (
    AggregationKind,
    ColumnInfo,
    FilterCondition,
    FilterOperator,
    JoinClause,
    QueryOperation,
    QueryResult,
    StructuredQuery,
    ValidationResult,
)
from query_agent.execution.aggregation import Unresolved, plan_aggregation
from query_agent.execution.coercion import coerce_value
from query_agent.execution.filter_compiler import FilterCompiler, Row
from query_agent.execution.plan_renderer import render_query
from query_agent.execution.registry import EntityAccessors, FieldAccessor, FieldRegistry
from query_agent.execution.result_formatter import AGGREGATION_NAMES
from query_agent.schema.catalog import SchemaCatalog
from query_agent.validation.permission import PermissionValidator
from query_agent.validation.security import SecurityValidator

logger = logging.getLogger(__name__)

_MUTATION_NAMES = {
    QueryOperation.UPDATE: "更新",
    QueryOperation.DELETE: "删除",
}


class _Join:
    """A resolved join: where its key comes from and where it points."""

    def __init__(
        self,
        key: str,
        entity: EntityAccessors,
        local_key: str,
        local_field: FieldAccessor,
        remote_field: FieldAccessor,
        outer: bool,
    ):
        self.key = key
        self.entity = entity
        self.local_key = local_key
        self.local_field = local_field
        self.remote_field = remote_field
        self.outer = outer


class _Scope:
    """Row keys and qualifiers for one query."""

    def __init__(self, target: EntityAccessors):
        self.target = target
        self.target_key = target.name.lower()
        self.entities: Dict[str, EntityAccessors] = {self.target_key: target}
        self.qualifiers: Dict[str, str] = {self.target_key: self.target_key}
        self.joins: List[_Join] = []

    def resolve(self, path: str) -> Optional[Tuple[str, FieldAccessor]]:
        if "." in path:
            qualifier, field_name = path.split(".", 1)
            key = self.qualifiers.get(qualifier.lower())
            if key is None:
                return None
        else:
            key, field_name = self.target_key, path
        accessor = self.entities[key].field(field_name)
        if accessor is None:
            return None
        return key, accessor

    def reader(self, path: str):
        resolved = self.resolve(path)
        if resolved is None:
            return None, None
        key, accessor = resolved

        def read(row: Row) -> Any:
            record = row.get(key)
            return None if record is None else accessor.get(record)

        return read, accessor


class QueryExecutionError(Exception):
    """An expected execution failure carrying a user-safe message."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


class DynamicQueryExecutor:
    """
    Executes validated structured queries against an entity store.

    Reads, joins, filtering, ordering and aggregation happen in process over
    the records the store returns for the caller's tenant.
    """

    def __init__(
        self,
        store: IEntityStore,
        catalog: SchemaCatalog,
        registry: FieldRegistry,
        settings: Optional[QuerySettings] = None,
        security: Optional[SecurityValidator] = None,
        permission: Optional[PermissionValidator] = None,
    ):
        """
        Initialize the executor.

        Args:
            store: Entity store holding the records
            catalog: Schema catalog
            registry: Field accessors for every stored entity
            settings: Query limits; defaults to environment settings
            security: Security validator; built from catalog/settings if omitted
            permission: Permission validator; built from catalog/settings if omitted
        """
        self.store = store
        self.catalog = catalog
        self.registry = registry
        self.settings = settings or QuerySettings()
        self.security = security or SecurityValidator(catalog, self.settings)
        self.permission = permission or PermissionValidator(catalog, self.settings)
        self.compiler = FilterCompiler()

    async def execute(
        self,
        query: StructuredQuery,
        identity: Identity,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> QueryResult:
        """
        Validate and run a structured query for a caller.

        Args:
            query: Query produced by the translator (or any other source)
            identity: The caller
            cancel_event: Cooperative cancellation signal

        Returns:
            QueryResult; failures carry a user-safe message and an error code

        Raises:
            RequestCancelled: If the cancel signal is set
        """
        started = time.perf_counter()
        try:
            ensure_not_cancelled(cancel_event)

            security = self.security.validate(query)
            if not security.is_valid:
                return self._rejected(security)
            checked = security.corrected_query

            permission = self.permission.validate(checked, identity)
            if not permission.is_valid:
                return self._rejected(permission)
            scoped = permission.corrected_query

            result = await asyncio.to_thread(self._dispatch, scoped, identity, permission.scope_filters)

            notes = [warning.message for warning in [*security.warnings, *permission.warnings]]
            result.warnings = notes + result.warnings
            if result.success:
                result.generated_query = self._render(scoped)
            result.execution_ms = int((time.perf_counter() - started) * 1000)
            return result
        except RequestCancelled:
            raise
        except QueryExecutionError as exc:
            return QueryResult.fail(str(exc), exc.code)
        except Exception:
            logger.exception(f"Query execution failed for entity {query.target_entity}")
            return QueryResult.fail(Messages.EXECUTION_ERROR, ErrorCodes.EXECUTION_FAILED)

    @staticmethod
    def _rejected(validation: ValidationResult) -> QueryResult:
        code = validation.errors[0].code if validation.errors else None
        return QueryResult.fail(validation.error_text, code)

    def _render(self, query: StructuredQuery) -> Optional[str]:
        try:
            return render_query(query, self.settings.max_result_rows)
        except (KeyError, ValueError, TypeError) as exc:
            logger.debug(f"Could not render diagnostic query text: {exc}")
            return None

    def _dispatch(
        self, query: StructuredQuery, identity: Identity, row_scope: Sequence[FilterCondition] = ()
    ) -> QueryResult:
        entity = self.registry.get(self.catalog.find_entity_by_alias(query.target_entity) or "")
        if entity is None:
            raise QueryExecutionError(f"未知的实体类型: {query.target_entity}", ErrorCodes.ENTITY_NOT_ALLOWED)

        if query.operation is QueryOperation.SELECT:
            return self._select(query, entity, identity, row_scope)
        if query.operation is QueryOperation.INSERT:
            return self._insert(query, entity, identity)
        return self._modify(query, entity, identity, row_scope)

    # Reading

    def _scope(self, query: StructuredQuery, entity: EntityAccessors) -> _Scope:
        scope = _Scope(entity)
        for join in query.joins:
            scope.joins.append(self._resolve_join(scope, join))
        return scope

    def _resolve_join(self, scope: _Scope, join: JoinClause) -> _Join:
        joined = self.registry.get(self.catalog.find_entity_by_alias(join.entity) or "")
        if joined is None:
            raise QueryExecutionError(f"未知的关联实体: {join.entity}", ErrorCodes.ENTITY_NOT_ALLOWED)

        key = (join.alias or joined.name).lower()
        if key in scope.entities:
            key = f"{key}#{len(scope.joins) + 1}"
        scope.entities[key] = joined
        names = {joined.name.lower(), join.entity.lower()}
        if join.alias:
            scope.qualifiers[join.alias.lower()] = key
            names.add(join.alias.lower())
        for name in names:
            scope.qualifiers.setdefault(name, key)

        link = self._parse_on(scope, join, key, names) or self._from_relationships(scope, joined)
        if link is None:
            raise QueryExecutionError(f"无法解析关联条件: {join.entity} ON {join.on}", ErrorCodes.INVALID_FILTER)
        local_key, local_field, remote_field = link
        outer = join.join_type.strip().lower().startswith("left")
        return _Join(key, joined, local_key, local_field, remote_field, outer)

    def _parse_on(self, scope: _Scope, join: JoinClause, key: str, names) -> Optional[tuple]:
        """Parse `LocalField = Entity.Field` (either side order) into a join link."""
        if "=" not in join.on:
            return None
        left, right = (side.strip().strip("=").strip() for side in join.on.split("=", 1))
        for remote, local in ((right, left), (left, right)):
            if "." not in remote:
                continue
            qualifier, remote_name = remote.split(".", 1)
            if qualifier.lower() not in names:
                continue
            remote_field = scope.entities[key].field(remote_name)
            if remote_field is None:
                continue
            if "." in local:
                local_qualifier, local_name = local.split(".", 1)
                local_key = scope.qualifiers.get(local_qualifier.lower())
            else:
                local_key, local_name = scope.target_key, local
            if local_key is None or local_key == key:
                continue
            local_field = scope.entities[local_key].field(local_name)
            if local_field is not None:
                return local_key, local_field, remote_field
        return None

    def _from_relationships(self, scope: _Scope, joined: EntityAccessors) -> Optional[tuple]:
        """Fall back to catalog relationships between an in-scope entity and the joined one."""
        for local_key, local in list(scope.entities.items()):
            if local is joined:
                continue
            for relationship in local.schema.relationships:
                if relationship.related_entity.lower() != joined.name.lower():
                    continue
                if relationship.relation_type == "ManyToOne" and joined.primary_key is not None:
                    local_field = local.field(relationship.foreign_key)
                    if local_field is not None:
                        return local_key, local_field, joined.primary_key
                if relationship.relation_type == "OneToMany" and local.primary_key is not None:
                    remote_field = joined.field(relationship.foreign_key)
                    if remote_field is not None:
                        return local_key, local.primary_key, remote_field
        return None

    def _matching_rows(
        self,
        query: StructuredQuery,
        scope: _Scope,
        identity: Identity,
        row_scope: Sequence[FilterCondition] = (),
        strict: bool = False,
    ) -> Tuple[List[Row], List[str]]:
        matches, warnings = self.compiler.compile(query.filters, scope.resolve)
        if strict and warnings:
            # A mutation must never run with fewer conditions than it was given
            raise QueryExecutionError("; ".join(warnings), ErrorCodes.INVALID_FILTER)

        # Row scope is its own group, AND-ed over whatever the caller's filters fold to
        in_scope, scope_warnings = self.compiler.compile(row_scope, scope.resolve)
        if scope_warnings:
            logger.warning(f"Row scope for {query.target_entity} could not be applied: {scope_warnings}")
            raise QueryExecutionError("无法确定您的数据访问范围", ErrorCodes.DATA_SCOPE_EXCEEDED)

        def predicate(row: Row) -> bool:
            return in_scope(row) and matches(row)

        tenant = identity.tenant_id
        target = scope.target
        pushdown = self._pushdown(row_scope, scope)
        if not scope.joins:
            key = scope.target_key
            records = self.store.find(
                target.name, lambda record: predicate({key: record}), tenant, pushdown.get(key)
            )
            return [{key: record} for record in records], warnings

        rows: List[Row] = [
            {scope.target_key: record}
            for record in self.store.find(target.name, None, tenant, pushdown.get(scope.target_key))
        ]
        for join in scope.joins:
            rows = self._join_rows(rows, join, tenant, pushdown.get(join.key))
        return [row for row in rows if predicate(row)], warnings

    @staticmethod
    def _pushdown(row_scope: Sequence[FilterCondition], scope: _Scope) -> Dict[str, Dict[str, Any]]:
        """
        Equality constraints per row key that the store may apply while loading.

        Row-scope conditions are always AND-ed over the whole query, so a store
        that narrows by them never drops a row the predicate would keep. The
        predicate still runs on everything the store returns.
        """
        pushdown: Dict[str, Dict[str, Any]] = {}
        for condition in row_scope:
            resolved = scope.resolve(condition.field)
            if condition.operator is not FilterOperator.EQUAL or resolved is None:
                continue
            key, accessor = resolved
            value = coerce_value(accessor.schema, condition.value, accessor.enum_class)
            pushdown.setdefault(key, {})[accessor.name] = value
        return pushdown

    def _join_rows(
        self, rows: List[Row], join: _Join, tenant, equals: Optional[Dict[str, Any]] = None
    ) -> List[Row]:
        index: Dict[Any, List[Any]] = {}
        for record in self.store.find(join.entity.name, None, tenant, equals):
            value = join.remote_field.get(record)
            if value is not None:
                index.setdefault(value, []).append(record)

        joined: List[Row] = []
        for row in rows:
            local = row.get(join.local_key)
            value = None if local is None else join.local_field.get(local)
            matches = index.get(value, []) if value is not None else []
            for match in matches:
                joined.append({**row, join.key: match})
            if not matches and join.outer:
                joined.append({**row, join.key: None})
        return joined

    def _select(
        self,
        query: StructuredQuery,
        entity: EntityAccessors,
        identity: Identity,
        row_scope: Sequence[FilterCondition] = (),
    ) -> QueryResult:
        scope = self._scope(query, entity)
        rows, warnings = self._matching_rows(query, scope, identity, row_scope)

        if query.aggregation is not None:
            result = self._aggregate(query, scope, rows)
        else:
            rows = self._order(query, scope, rows, warnings)
            take = min(query.limit, self.settings.max_result_rows)
            page = rows[query.offset: query.offset + take] if take > 0 else []
            paths = list(query.select_fields) or self._default_fields(entity)
            readers = [(path, *scope.reader(path)) for path in paths]
            data = [
                {path: read(row) for path, read, _ in readers if read is not None}
                for row in page
            ]
            columns = [
                self._column(path, accessor) for path, read, accessor in readers if accessor is not None
            ]
            result = QueryResult.ok_rows(data, columns)
        result.warnings.extend(warnings)
        return result

    @staticmethod
    def _default_fields(entity: EntityAccessors) -> List[str]:
        return [field.name for field in entity.schema.fields if not field.is_sensitive]

    @staticmethod
    def _column(path: str, accessor: FieldAccessor) -> ColumnInfo:
        return ColumnInfo(
            name=path,
            display_name=accessor.schema.display_name,
            data_type=accessor.schema.data_type,
            is_nullable=accessor.schema.is_nullable,
        )

    @staticmethod
    def _order(query: StructuredQuery, scope: _Scope, rows: List[Row], warnings: List[str]) -> List[Row]:
        ordered = list(rows)
        # Stable sorts applied from the last key to the first give a multi-key order
        for clause in reversed(query.order_by):
            read, _ = scope.reader(clause.field)
            if read is None:
                continue
            try:
                ordered.sort(
                    key=lambda row: (read(row) is not None, read(row)),
                    reverse=clause.descending,
                )
            except TypeError:
                warnings.append(f"无法按字段 '{clause.field}' 排序，已忽略")
        return ordered

    def _aggregate(self, query: StructuredQuery, scope: _Scope, rows: List[Row]) -> QueryResult:
        read, accessor = (None, None)
        if query.aggregation_field:
            read, accessor = scope.reader(query.aggregation_field)
        plan = plan_aggregation(query.aggregation, accessor)
        notes = []
        if isinstance(plan, Unresolved):
            notes.append(f"聚合 {query.aggregation.value} 无法应用于字段 '{query.aggregation_field}'")

        if not query.group_by_fields:
            result = QueryResult.ok_aggregation(plan.reduce(rows, read))
            result.warnings.extend(notes)
            return result

        group_readers = [(path, *scope.reader(path)) for path in query.group_by_fields]
        groups: Dict[tuple, List[Row]] = {}
        for row in rows:
            group_key = tuple(reader(row) if reader else None for _, reader, _ in group_readers)
            groups.setdefault(group_key, []).append(row)

        label = query.aggregation.value
        data = []
        for group_key, members in groups.items():
            item = {path: value for (path, _, _), value in zip(group_readers, group_key)}
            item[label] = plan.reduce(members, read)
            data.append(item)
        take = min(query.limit, self.settings.max_result_rows)
        columns = [self._column(path, accessor) for path, _, accessor in group_readers if accessor]
        counted = query.aggregation in (AggregationKind.COUNT, AggregationKind.COUNT_DISTINCT)
        value_type = "int" if counted or accessor is None else accessor.schema.data_type
        columns.append(
            ColumnInfo(name=label, display_name=AGGREGATION_NAMES[query.aggregation], data_type=value_type)
        )
        result = QueryResult.ok_rows(data[:take], columns)
        result.warnings.extend(notes)
        return result

    # Writing

    def _coerced_values(self, query: StructuredQuery, entity: EntityAccessors) -> List[Tuple[FieldAccessor, Any]]:
        assignments = []
        for name, value in query.update_values.items():
            accessor = entity.field(name)
            if accessor is None or accessor.schema.is_read_only:
                raise QueryExecutionError(f"字段 '{name}' 不可写入", ErrorCodes.FIELD_NOT_ALLOWED)
            try:
                assignments.append((accessor, coerce_value(accessor.schema, value, accessor.enum_class)))
            except CoercionError as exc:
                raise QueryExecutionError(
                    f"字段 '{name}' 的值无法转换为 {accessor.schema.data_type}",
                    ErrorCodes.INVALID_FIELD_TYPE,
                ) from exc
        return assignments

    def _insert(self, query: StructuredQuery, entity: EntityAccessors, identity: Identity) -> QueryResult:
        if not self.settings.enable_crud or not entity.schema.supports_crud:
            raise QueryExecutionError(f"实体 '{entity.name}' 不支持新增操作", ErrorCodes.OPERATION_NOT_ALLOWED)
        assignments = self._coerced_values(query, entity)

        record = entity.new_record()
        if hasattr(record, "tenant_id"):
            record.tenant_id = identity.tenant_id
        _stamp(entity, record, "CreatedAt")
        for accessor, value in assignments:
            accessor.set(record, value)

        self.store.add(entity.name, record)
        logger.info(f"Inserted {entity.name} record {entity.primary_key_of(record)}")
        return QueryResult.ok_modified(QueryOperation.INSERT, 1, entity.primary_key_of(record))

    def _modify(
        self,
        query: StructuredQuery,
        entity: EntityAccessors,
        identity: Identity,
        row_scope: Sequence[FilterCondition] = (),
    ) -> QueryResult:
        if not query.filters:
            raise QueryExecutionError(
                f"{_MUTATION_NAMES[query.operation]}操作必须指定过滤条件", ErrorCodes.FILTER_REQUIRED
            )
        assignments = self._coerced_values(query, entity) if query.operation is QueryOperation.UPDATE else []

        scope = self._scope(query, entity)
        rows, _ = self._matching_rows(query, scope, identity, row_scope, strict=True)
        records = _unique_targets(rows, scope.target_key, entity)
        if not records:
            return QueryResult.ok_modified(query.operation, 0)

        if query.operation is QueryOperation.UPDATE:
            for record in records:
                for accessor, value in assignments:
                    accessor.set(record, value)
                _stamp(entity, record, "UpdatedAt")
            self.store.update(entity.name, records)
        else:
            self.store.remove(entity.name, records)
        logger.info(f"{query.operation.value} affected {len(records)} {entity.name} records")
        return QueryResult.ok_modified(query.operation, len(records))


def _stamp(entity: EntityAccessors, record: Any, field_name: str) -> None:
    accessor = entity.field(field_name)
    if accessor is not None:
        accessor.set(record, datetime.now(timezone.utc))


def _unique_targets(rows: List[Row], key: str, entity: EntityAccessors) -> List[Any]:
    seen = set()
    records = []
    for row in rows:
        record = row[key]
        marker = entity.primary_key_of(record)
        marker = id(record) if marker is None else marker
        if marker in seen:
            continue
        seen.add(marker)
        records.append(record)
    return records
