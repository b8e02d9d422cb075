"""Row filtering policy for tenant-scoped models.

Two layers enforce the same rule, ``tenant_id = <bound tenant>``:

* ORM listeners registered on every ``Session`` (this module). Selects,
  relationship loads and ORM UPDATE/DELETE statements get the tenant
  criteria attached; flushes and ORM INSERT statements populate and check
  ``tenant_id`` on writes.
  A statement that touches a tenant-scoped model on a session with no
  tenant binding and no admin scope raises ``TenantContextMissingError``.
* PostgreSQL row-level security, created by migration 003 from
  ``TablePolicy.ddl()``. Its predicate reads the transaction-local setting
  written by the session binder, so raw SQL is filtered as well.

Rows whose ``tenant_id`` is NULL match neither layer and stay invisible
until the reconciliation job assigns them.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria
from sqlalchemy.sql.elements import BindParameter

from config import get_settings
from models.base import TenantScopedMixin

from .binding import get_admin_scope, get_bound_tenant
from .errors import OwnershipViolation, TenantContextMissingError, TenantImmutableError, TenantOwnershipError
from .registry import kind_for_model, ownable_kinds

logger = logging.getLogger(__name__)

POLICY_NAME_PREFIX = "tenant_isolation"
TENANT_COLUMN = "tenant_id"


def _touches_tenant_scoped(execute_state: ORMExecuteState) -> bool:
    return any(issubclass(mapper.class_, TenantScopedMixin) for mapper in execute_state.all_mappers)


def _kind_name(obj) -> str:
    ownable = kind_for_model(type(obj))
    return ownable.kind if ownable else type(obj).__name__


def _column_key(key) -> str:
    if isinstance(key, str):
        return key
    return getattr(key, "key", None) or getattr(key, "name", str(key))


def _statement_rows(statement) -> List[dict]:
    """VALUES of an ORM INSERT/UPDATE, one dict per row keyed by column name.

    DML constructs have no public accessor for their VALUES clause.
    """
    if getattr(statement, "_multi_values", None):
        rows = []
        for batch in statement._multi_values:
            for row in batch:
                if not isinstance(row, dict):
                    row = dict(zip(statement.table.columns, row))
                rows.append(row)
    elif getattr(statement, "_ordered_values", None):
        rows = [dict(statement._ordered_values)]
    elif getattr(statement, "_values", None):
        rows = [dict(statement._values)]
    else:
        rows = []
    return [{_column_key(key): value for key, value in row.items()} for row in rows]


def _parameter_rows(parameters) -> List[dict]:
    if not parameters:
        return []
    if isinstance(parameters, dict):
        return [parameters]
    return list(parameters)


def _literal_uuid(value) -> Optional[UUID]:
    """The UUID a VALUES entry carries, or None when it is not a plain value."""
    if isinstance(value, BindParameter):
        value = value.value
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None


def _guard_insert(execute_state: ORMExecuteState, tenant_id: UUID):
    """Populate and check ``tenant_id`` on an ORM INSERT statement.

    Returns the result when the statement had to be re-invoked with filled
    parameters, otherwise None.
    """
    statement = execute_state.statement
    kind = _mapper_kind(execute_state)
    if getattr(statement, "select", None) is not None:
        raise ValueError("INSERT ... SELECT into tenant-scoped tables needs an admin scope")

    statement_rows = _statement_rows(statement)
    parameter_rows = _parameter_rows(execute_state.parameters)
    for row in statement_rows + parameter_rows:
        value = row.get(TENANT_COLUMN)
        if value is not None and _literal_uuid(value) != tenant_id:
            raise TenantOwnershipError(
                [OwnershipViolation(kind, _literal_uuid(row.get("id")), "foreign_tenant")],
                tenant_id,
            )

    if any(row.get(TENANT_COLUMN) is not None for row in statement_rows):
        return None
    if parameter_rows:
        filled = [dict(row, **{TENANT_COLUMN: row.get(TENANT_COLUMN) or tenant_id}) for row in parameter_rows]
        return execute_state.invoke_statement(
            params=filled[0] if isinstance(execute_state.parameters, dict) else filled
        )
    if len(statement_rows) > 1:
        raise ValueError("Multi-row VALUES inserts into tenant-scoped tables must set tenant_id")
    execute_state.statement = statement.values(**{TENANT_COLUMN: tenant_id})
    return None


def _guard_update(execute_state: ORMExecuteState, tenant_id: Optional[UUID], admin) -> None:
    """Reject bulk UPDATEs that assign ``tenant_id``.

    Rewriting a column to the bound tenant is a no-op under the tenant
    criteria and is let through.
    """
    if admin is not None and admin.allow_retenant:
        return
    rows = _statement_rows(execute_state.statement) + _parameter_rows(execute_state.parameters)
    for row in rows:
        if TENANT_COLUMN not in row:
            continue
        if admin is None and _literal_uuid(row[TENANT_COLUMN]) == tenant_id:
            continue
        logger.warning(
            "Blocked bulk tenant reassignment",
            extra={"kind": _mapper_kind(execute_state), "admin_scope": admin is not None},
        )
        raise TenantImmutableError(_mapper_kind(execute_state), _literal_uuid(row.get("id")) or "*")


def _mapper_kind(execute_state: ORMExecuteState) -> str:
    mapper = execute_state.bind_mapper
    if mapper is None:
        return "unknown"
    ownable = kind_for_model(mapper.class_)
    return ownable.kind if ownable else mapper.class_.__name__


@event.listens_for(Session, "do_orm_execute")
def filter_tenant_rows(execute_state: ORMExecuteState):
    """Attach ``tenant_id = <bound tenant>`` to ORM statements.

    Bulk INSERTs receive the bound tenant and are rejected when they carry
    another one; bulk UPDATEs may not assign ``tenant_id``. Column refreshes
    of already loaded objects are skipped; the object was loaded under the
    same criteria.
    """
    if execute_state.is_column_load:
        return
    if not (execute_state.is_select or execute_state.is_insert or execute_state.is_update or execute_state.is_delete):
        return
    if not _touches_tenant_scoped(execute_state):
        return

    session = execute_state.session
    admin = get_admin_scope(session)
    if admin is not None:
        if execute_state.is_update:
            _guard_update(execute_state, None, admin)
        return

    tenant_id = get_bound_tenant(session)
    if tenant_id is None:
        logger.warning(
            "Blocked tenant-scoped statement on unbound session",
            extra={"mappers": [m.class_.__name__ for m in execute_state.all_mappers]},
        )
        raise TenantContextMissingError("No tenant is bound to this session")

    if execute_state.is_insert:
        return _guard_insert(execute_state, tenant_id)
    if execute_state.is_update:
        _guard_update(execute_state, tenant_id, None)

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(
            TenantScopedMixin,
            lambda cls: cls.tenant_id == tenant_id,
            include_aliases=True,
        )
    )


@event.listens_for(Session, "before_flush")
def enforce_tenant_on_flush(session: Session, flush_context, instances):
    """Populate and guard ``tenant_id`` on pending writes.

    - new objects without a tenant receive the bound tenant
    - new objects carrying another tenant are rejected
    - a non-null tenant can only change inside an admin scope opened
      with ``allow_retenant``
    - deletes of rows outside the bound tenant are rejected
    """
    admin = get_admin_scope(session)
    tenant_id = get_bound_tenant(session)

    for obj in session.new:
        if not isinstance(obj, TenantScopedMixin) or admin is not None:
            continue
        if tenant_id is None:
            raise TenantContextMissingError("No tenant is bound to this session")
        if obj.tenant_id is None:
            obj.tenant_id = tenant_id
        elif obj.tenant_id != tenant_id:
            raise TenantOwnershipError(
                [OwnershipViolation(_kind_name(obj), obj.id, "foreign_tenant")],
                tenant_id,
            )

    for obj in session.dirty:
        if not isinstance(obj, TenantScopedMixin):
            continue
        history = inspect(obj).attrs.tenant_id.history
        if history.has_changes():
            previous = history.deleted[0] if history.deleted else None
            if admin is None:
                # Outside the admin path neither a retenant nor an adoption is allowed
                raise TenantImmutableError(type(obj).__name__, obj.id)
            if previous is not None and not admin.allow_retenant:
                raise TenantImmutableError(type(obj).__name__, obj.id)
        elif admin is None and obj.tenant_id != tenant_id:
            raise TenantOwnershipError(
                [OwnershipViolation(_kind_name(obj), obj.id, "foreign_tenant")],
                tenant_id,
            )

    if admin is None:
        for obj in session.deleted:
            if isinstance(obj, TenantScopedMixin) and obj.tenant_id != tenant_id:
                raise TenantOwnershipError(
                    [OwnershipViolation(_kind_name(obj), obj.id, "foreign_tenant")],
                    tenant_id,
                )


@dataclass(frozen=True)
class TablePolicy:
    """PostgreSQL row-security rule for one tenant-scoped table."""

    table: str
    tenant_column: str = "tenant_id"

    @property
    def policy_name(self) -> str:
        return f"{POLICY_NAME_PREFIX}_{self.table}"

    def predicate(self, setting_name: str, bypass_setting_name: str) -> str:
        # NULLIF turns an unset setting into NULL, which matches no row
        return (
            f"current_setting('{bypass_setting_name}', true) = 'on' "
            f"OR {self.tenant_column} = NULLIF(current_setting('{setting_name}', true), '')::uuid"
        )

    def ddl(self, setting_name: Optional[str] = None, bypass_setting_name: Optional[str] = None) -> List[str]:
        """Statements enabling row security on the table (idempotent)."""
        settings = get_settings()
        setting_name = setting_name or settings.TENANT_SETTING_NAME
        bypass_setting_name = bypass_setting_name or settings.RLS_BYPASS_SETTING_NAME
        predicate = self.predicate(setting_name, bypass_setting_name)
        return [
            f"ALTER TABLE {self.table} ENABLE ROW LEVEL SECURITY",
            f"ALTER TABLE {self.table} FORCE ROW LEVEL SECURITY",
            f"DROP POLICY IF EXISTS {self.policy_name} ON {self.table}",
            (
                f"CREATE POLICY {self.policy_name} ON {self.table} FOR ALL "
                f"USING ({predicate}) WITH CHECK ({predicate})"
            ),
        ]

    def drop_ddl(self) -> List[str]:
        return [
            f"DROP POLICY IF EXISTS {self.policy_name} ON {self.table}",
            f"ALTER TABLE {self.table} NO FORCE ROW LEVEL SECURITY",
            f"ALTER TABLE {self.table} DISABLE ROW LEVEL SECURITY",
        ]


class RowFilteringPolicy:
    """Per-table rule set generated from every ``TenantScopedMixin`` model."""

    def __init__(self, tables: Optional[List[str]] = None):
        if tables is None:
            tables = [ownable.table_name for ownable in ownable_kinds().values()]
        self.table_policies = [TablePolicy(table) for table in sorted(tables)]

    def ddl(self) -> List[str]:
        statements = []
        for table_policy in self.table_policies:
            statements.extend(table_policy.ddl())
        return statements

    def drop_ddl(self) -> List[str]:
        statements = []
        for table_policy in self.table_policies:
            statements.extend(table_policy.drop_ddl())
        return statements

    def apply(self, connection) -> int:
        """Create the policies on a PostgreSQL connection.

        Returns the number of tables covered; other dialects are skipped.
        """
        if connection.dialect.name != "postgresql":
            logger.info("Row-level security skipped", extra={"dialect": connection.dialect.name})
            return 0
        for statement in self.ddl():
            connection.exec_driver_sql(statement)
        logger.info("Row-level security enabled", extra={"tables": len(self.table_policies)})
        return len(self.table_policies)
