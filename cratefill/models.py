"""
Value types shared by the pipeline stages.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Tuple, Union


class _NoUpdate:
    """Marker for an item that is resolved but has nothing to write."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_UPDATE"


NO_UPDATE = _NoUpdate()

SQL_TYPES = ("text", "int", "bool", "text[]", "json")


@dataclass(frozen=True)
class Column:
    """One derived output column of a backfill task."""

    name: str
    sql_type: str = "text"

    def __post_init__(self):
        if self.sql_type not in SQL_TYPES:
            raise ValueError(f"Unsupported column type: {self.sql_type}")


@dataclass(frozen=True)
class CandidateItem:
    """A version row that is missing the target field(s)."""

    record_id: int
    name: str
    version: str
    raw_context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def lookup_key(self) -> str:
        return f"{self.name}-{self.version}"


@dataclass(frozen=True)
class JournalEntry:
    """A resolved item: derived values, or NO_UPDATE."""

    record_id: int
    values: Union[Tuple[Any, ...], _NoUpdate]

    @property
    def needs_update(self) -> bool:
        return self.values is not NO_UPDATE


@dataclass(frozen=True)
class UpdateBatch:
    """Up to chunk-size entries rendered as one update statement."""

    task: str
    entries: Tuple[JournalEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def record_ids(self) -> Tuple[int, ...]:
        return tuple(entry.record_id for entry in self.entries)
