"""Registry of ownable entity kinds and the relations between them.

Kinds are discovered from the models that use ``TenantScopedMixin``;
relations are every foreign key from one ownable table to another. The
ownership validator, the row filtering policy, cache invalidation and the
reconciliation job all read from here, so adding a new ownable model needs
no registration step.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional

from models.base import Base, TenantScopedMixin


@dataclass(frozen=True)
class OwnableKind:
    """An ownable model together with its reference name."""

    kind: str
    model: type

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def active_clause(self):
        return self.model.active_clause()


@dataclass(frozen=True)
class TenantRelation:
    """Foreign key ``child.column -> parent.id`` between two ownable tables.

    Both rows of such a relation must carry the same tenant.
    """

    child: OwnableKind
    column: str
    parent: OwnableKind

    def __str__(self) -> str:
        return f"{self.child.kind}.{self.column} -> {self.parent.kind}"


@lru_cache(maxsize=1)
def ownable_kinds() -> Dict[str, OwnableKind]:
    """Return every ownable kind keyed by its reference name."""
    # Importing the package registers every model with Base
    import models  # noqa: F401

    kinds: Dict[str, OwnableKind] = {}
    for mapper in sorted(Base.registry.mappers, key=lambda m: m.class_.__name__):
        cls = mapper.class_
        if not issubclass(cls, TenantScopedMixin):
            continue
        kind = cls.__ownable_kind__ or cls.__tablename__
        if kind in kinds:
            raise RuntimeError(f"Duplicate ownable kind '{kind}' on {cls.__name__}")
        kinds[kind] = OwnableKind(kind=kind, model=cls)
    return kinds


def get_kind(kind: str) -> OwnableKind:
    """Look up a kind by name.

    Raises:
        ValueError: If no ownable model uses that name
    """
    try:
        return ownable_kinds()[kind]
    except KeyError:
        raise ValueError(f"Unknown ownable kind '{kind}'") from None


def kind_for_model(model: type) -> Optional[OwnableKind]:
    for ownable in ownable_kinds().values():
        if ownable.model is model:
            return ownable
    return None


def kind_for_table(table_name: str) -> Optional[OwnableKind]:
    for ownable in ownable_kinds().values():
        if ownable.table_name == table_name:
            return ownable
    return None


@lru_cache(maxsize=1)
def tenant_relations() -> List[TenantRelation]:
    """Return every foreign key between two ownable tables, in a stable order."""
    relations = []
    for ownable in ownable_kinds().values():
        for fk in sorted(ownable.model.__table__.foreign_keys, key=lambda f: f.parent.name):
            parent = kind_for_table(fk.column.table.name)
            if parent is None:
                continue
            relations.append(TenantRelation(child=ownable, column=fk.parent.name, parent=parent))
    return relations
