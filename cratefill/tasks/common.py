"""Shared definitions for all backfill tasks."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Tuple, Union

from sqlalchemy import Table, and_, bindparam, select
from sqlalchemy.sql import ColumnElement, Select

from ..inspector import ArtifactInspector
from ..models import CandidateItem, Column, _NoUpdate

Derived = Union[Tuple[Any, ...], _NoUpdate]


@dataclass(frozen=True)
class BackfillTask:
    """
    Everything that differs between two backfills.

    Attributes:
        name: Task name, also the default journal/SQL file stem
        help: One-line description for the CLI
        columns: Output row shape, in journal and SQL order
        candidate_query: (versions, crates, before) -> select of
            (version id, crate name, version num, *context_fields)
        derive: (item, artifact path, inspector) -> values or NO_UPDATE
        guard_sql: Extra WHERE clause of the rendered update statement
        guard: versions -> the same guard as a SQLAlchemy expression
        context_fields: Names for the extra selected columns
        default_before: Cutoff used when none is given
    """

    name: str
    help: str
    columns: Tuple[Column, ...]
    candidate_query: Callable[[Table, Table, Optional[datetime]], Select]
    derive: Callable[[CandidateItem, Path, ArtifactInspector], Derived]
    guard_sql: str
    guard: Callable[[Table], ColumnElement]
    context_fields: Tuple[str, ...] = ()
    default_before: Optional[Callable[[], datetime]] = None

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def resolve_before(self, before: Optional[datetime]) -> Optional[datetime]:
        if before is not None:
            return before
        if self.default_before is not None:
            return self.default_before()
        return None

    def to_candidate(self, row: Sequence[Any]) -> CandidateItem:
        version_id, name, num = row[0], row[1], row[2]
        context = dict(zip(self.context_fields, row[3:]))
        return CandidateItem(record_id=version_id, name=name, version=num, raw_context=context)


def param(name: str):
    """Bind parameter carrying a derived value during a direct apply."""
    return bindparam(f"b_{name}")


def base_query(versions: Table, crates: Table, before: Optional[datetime], *extra) -> Select:
    query = select(versions.c.id, crates.c.name, versions.c.num, *extra).join_from(
        versions, crates, versions.c.crate_id == crates.c.id
    )
    if before is not None:
        query = query.where(versions.c.created_at < before)
    return query


def all_null(versions: Table, *names: str) -> ColumnElement:
    return and_(*(versions.c[name].is_(None) for name in names))
