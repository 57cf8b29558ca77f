"""Rust edition declared in `[package]`."""

from ..models import NO_UPDATE, Column
from .common import BackfillTask, all_null, base_query


def candidate_query(versions, crates, before):
    return base_query(versions, crates, before).where(versions.c.edition.is_(None))


def derive(item, path, inspector):
    edition = inspector.inspect(path).get("edition")
    if not edition:
        # Manifests without an edition default to 2015; nothing to store
        return NO_UPDATE
    return (str(edition),)


TASK = BackfillTask(
    name="edition",
    help="Backfill versions.edition from the manifest",
    columns=(Column("edition", "text"),),
    candidate_query=candidate_query,
    derive=derive,
    guard_sql="versions.edition is null",
    guard=lambda versions: all_null(versions, "edition"),
)
