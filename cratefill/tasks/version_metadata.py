"""Descriptive metadata: description, URLs, categories and keywords."""

from ..errors import ArtifactParseError
from ..models import NO_UPDATE, Column
from .common import BackfillTask, all_null, base_query

TEXT_FIELDS = ("description", "homepage", "documentation", "repository")


def _text(manifest, key):
    value = manifest.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ArtifactParseError(f"package.{key} must be a string")
    value = value.strip()
    return value or None


def _string_list(manifest, key):
    value = manifest.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ArtifactParseError(f"package.{key} must be a list of strings")
    return list(value)


def candidate_query(versions, crates, before):
    return base_query(versions, crates, before).where(all_null(versions, *TEXT_FIELDS))


def derive(item, path, inspector):
    manifest = inspector.inspect(path)
    texts = tuple(_text(manifest, key) for key in TEXT_FIELDS)
    categories = _string_list(manifest, "categories")
    keywords = _string_list(manifest, "keywords")
    if not any(texts) and not categories and not keywords:
        return NO_UPDATE
    return texts + (categories, keywords)


TASK = BackfillTask(
    name="version-metadata",
    help="Backfill description, homepage, documentation, repository, categories and keywords",
    columns=(
        Column("description", "text"),
        Column("homepage", "text"),
        Column("documentation", "text"),
        Column("repository", "text"),
        Column("categories", "text[]"),
        Column("keywords", "text[]"),
    ),
    candidate_query=candidate_query,
    derive=derive,
    guard_sql=" and ".join(f"versions.{key} is null" for key in TEXT_FIELDS),
    guard=lambda versions: all_null(versions, *TEXT_FIELDS),
)
