"""Library and binary targets."""

from sqlalchemy import func

from ..models import NO_UPDATE, Column
from .common import BackfillTask, all_null, base_query


def candidate_query(versions, crates, before):
    num_bins = func.json_array_length(versions.c.bin_names)
    return base_query(versions, crates, before, num_bins).where(num_bins > 1)


def derive(item, path, inspector):
    manifest = inspector.inspect(path)
    if len(manifest.bin_names) == item.raw_context.get("num_bins"):
        return NO_UPDATE
    return (manifest.has_lib, list(manifest.bin_names))


TASK = BackfillTask(
    name="lib-bin",
    help="Backfill versions.has_lib and fix versions.bin_names",
    columns=(Column("has_lib", "bool"), Column("bin_names", "text[]")),
    candidate_query=candidate_query,
    derive=derive,
    guard_sql="versions.has_lib is null",
    guard=lambda versions: all_null(versions, "has_lib"),
    context_fields=("num_bins",),
)
