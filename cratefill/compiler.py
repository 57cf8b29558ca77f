"""
Batch compilation of the journal into update statements.

Responsibilities:
- Reduce the journal to one entry per version (last row wins).
- Drop NO_UPDATE rows and partition the rest into fixed-size batches.
- Render each batch as one self-contained PostgreSQL update statement.

Non-Responsibilities:
- No store access. Applying batches lives in store.py.

Invariant:
Batches are disjoint and together cover every entry that needs an update.
Output is only written once the whole journal compiled cleanly.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .errors import FormatError
from .journal import Journal
from .models import Column, JournalEntry, UpdateBatch
from .tasks.common import BackfillTask

DEFAULT_CHUNK_SIZE = 1000


def quote_text(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def sql_literal(value: Any, column: Column) -> str:
    """Render one journal value as a typed PostgreSQL literal."""
    sql_type = column.sql_type
    if value is None:
        return "NULL" if sql_type == "text" else f"NULL::{sql_type}"

    if sql_type == "text" and isinstance(value, str):
        return quote_text(value)
    if sql_type == "int" and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if sql_type == "bool" and isinstance(value, bool):
        return "true" if value else "false"
    if sql_type == "text[]" and isinstance(value, list) and all(isinstance(v, str) for v in value):
        if not value:
            return "'{}'::text[]"
        return "array[" + ", ".join(quote_text(v) for v in value) + "]::text[]"
    if sql_type == "json":
        return quote_text(json.dumps(value, ensure_ascii=False, sort_keys=True)) + "::json"

    raise FormatError(f"value {value!r} is not valid for {column.name} ({sql_type})")


class BatchCompiler:
    """Turns a task's journal into UpdateBatches and SQL."""

    def __init__(self, task: BackfillTask, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.task = task
        self.chunk_size = chunk_size

    def compile(self, journal: Journal) -> List[UpdateBatch]:
        """
        Read the whole journal and partition it into batches.

        Raises:
            FormatError: If any journal row is malformed
        """
        latest: Dict[int, JournalEntry] = {}
        for entry in journal.entries():
            latest[entry.record_id] = entry

        updates = [latest[record_id] for record_id in sorted(latest) if latest[record_id].needs_update]
        return [
            UpdateBatch(self.task.name, tuple(updates[i:i + self.chunk_size]))
            for i in range(0, len(updates), self.chunk_size)
        ]

    def render(self, batch: UpdateBatch) -> str:
        columns = self.task.columns
        assignments = ",\n    ".join(f"{c.name} = tmp.{c.name}" for c in columns)
        rows = []
        for entry in batch.entries:
            cells = [str(entry.record_id)]
            cells.extend(sql_literal(value, column) for value, column in zip(entry.values, columns))
            rows.append("    (" + ", ".join(cells) + ")")

        column_list = ", ".join(("version_id",) + self.task.column_names)
        return (
            "update versions\n"
            f"set {assignments}\n"
            "from (values\n"
            + ",\n".join(rows) + "\n"
            f") as tmp ({column_list})\n"
            f"where versions.id = tmp.version_id and {self.task.guard_sql};\n"
        )

    def render_script(self, batches: Sequence[UpdateBatch]) -> str:
        return "\n".join(self.render(batch) for batch in batches)

    def write_sql(self, batches: Sequence[UpdateBatch], sql_path: Path) -> None:
        """Render every batch, then move the complete script into place."""
        script = self.render_script(batches)

        sql_path = Path(sql_path)
        sql_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{sql_path.name}.", dir=sql_path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(script)
            os.replace(tmp_name, sql_path)
        except BaseException:
            os.unlink(tmp_name)
            raise
