"""
Feature declarations.

Unlike the other tasks this one re-checks every version created before the
cutoff and only writes versions whose stored features differ from the
manifest.
"""

from ..database import utc_now
from ..errors import ArtifactParseError
from ..models import NO_UPDATE, Column
from .common import BackfillTask, base_query, param


def candidate_query(versions, crates, before):
    return base_query(versions, crates, before, versions.c.features)


def derive(item, path, inspector):
    features = inspector.inspect(path).features
    if not isinstance(features, dict) or not all(
        isinstance(v, list) and all(isinstance(x, str) for x in v) for v in features.values()
    ):
        raise ArtifactParseError("[features] must map names to lists of strings")

    if features == (item.raw_context.get("features") or {}):
        return NO_UPDATE
    return (features,)


TASK = BackfillTask(
    name="features",
    help="Correct versions.features where it differs from the manifest",
    columns=(Column("features", "json"),),
    candidate_query=candidate_query,
    derive=derive,
    guard_sql="versions.features::jsonb is distinct from tmp.features::jsonb",
    guard=lambda versions: versions.c.features.is_distinct_from(param("features")),
    context_fields=("features",),
    default_before=utc_now,
)
