"""Base SQLAlchemy declarative base for all models"""

from sqlalchemy import Column, ForeignKey, Index, TypeDecorator, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import column_property, declarative_base, declared_attr


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Uses JSONB on PostgreSQL for efficient indexing and querying,
    falls back to JSON on SQLite for testing compatibility.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


class TenantScopedMixin:
    """Marks a model as owned by a tenant.

    Every model using this mixin gets a nullable ``tenant_id`` column (rows
    created before multi-tenancy carry NULL) plus an index on it. The row
    filtering policy, ownership validator, cache invalidation and
    reconciliation job all discover ownable models through this mixin.

    Subclasses set ``__ownable_kind__`` to the name used in entity references
    (e.g. ``"school"``) and may override ``active_clause`` to return the SQL
    expression that identifies rows usable by new operations.
    """

    __ownable_kind__: str = ""

    @classmethod
    def active_clause(cls):
        return None

    @declared_attr
    def tenant_id(cls):
        # active_history keeps the previous value available to before_flush
        # even when the attribute was expired before being reassigned
        return column_property(
            Column(
                Uuid(as_uuid=True),
                ForeignKey("tenant.id", ondelete="RESTRICT"),
                nullable=True,
            ),
            active_history=True,
        )

    @declared_attr
    def __table_args__(cls):
        return (Index(f"ix_{cls.__tablename__}_tenant_id", "tenant_id"),)
