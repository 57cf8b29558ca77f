"""Size of the `.crate` file in bytes."""

from ..errors import ArtifactTooLarge
from ..models import Column
from .common import BackfillTask, all_null, base_query

MAX_CRATE_SIZE = 2**31 - 1


def candidate_query(versions, crates, before):
    return base_query(versions, crates, before).where(versions.c.crate_size.is_(None))


def derive(item, path, inspector):
    size = inspector.size(path)
    if size > MAX_CRATE_SIZE:
        raise ArtifactTooLarge(f"File is too large to fit into a 32-bit integer: {size}")
    return (size,)


TASK = BackfillTask(
    name="crate-size",
    help="Backfill versions.crate_size from the artifact file size",
    columns=(Column("crate_size", "int"),),
    candidate_query=candidate_query,
    derive=derive,
    guard_sql="versions.crate_size is null",
    guard=lambda versions: all_null(versions, "crate_size"),
)
