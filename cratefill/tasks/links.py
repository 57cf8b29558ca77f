"""
The `links` key of `[package]`.

Versions published since the cutoff were stored with their `links` value
already, so only older versions are considered by default.
"""

from datetime import datetime

from ..models import NO_UPDATE, Column
from .common import BackfillTask, all_null, base_query

# First version published with a filled-in `links` field
LINKS_CUTOFF = datetime(2018, 3, 21, 21, 0, 0)


def candidate_query(versions, crates, before):
    return base_query(versions, crates, before).where(versions.c.links.is_(None))


def derive(item, path, inspector):
    links = inspector.inspect(path).get("links")
    if not links:
        return NO_UPDATE
    return (str(links),)


TASK = BackfillTask(
    name="links",
    help="Backfill versions.links for versions published before 2018-03-21",
    columns=(Column("links", "text"),),
    candidate_query=candidate_query,
    derive=derive,
    guard_sql="versions.links is null",
    guard=lambda versions: all_null(versions, "links"),
    default_before=lambda: LINKS_CUTOFF,
)
