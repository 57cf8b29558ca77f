"""
Applying compiled batches directly against the registry store.

Each batch runs as one parameterized executemany update in its own
transaction, guarded the same way as the rendered SQL script.
"""

from typing import Any, Dict, Iterable, List

from sqlalchemy import Table, bindparam, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .database import Version
from .errors import StoreError
from .models import UpdateBatch
from .tasks.common import BackfillTask, param


def build_update(task: BackfillTask, versions: Table):
    return (
        update(versions)
        .where(versions.c.id == bindparam("b_id"))
        .where(task.guard(versions))
        .values({name: param(name) for name in task.column_names})
    )


def batch_params(task: BackfillTask, batch: UpdateBatch) -> List[Dict[str, Any]]:
    params = []
    for entry in batch.entries:
        row = {"b_id": entry.record_id}
        row.update({f"b_{name}": value for name, value in zip(task.column_names, entry.values)})
        params.append(row)
    return params


def apply_batches(engine: Engine, task: BackfillTask, batches: Iterable[UpdateBatch]) -> int:
    """
    Run every batch against the store.

    Returns:
        Number of rows updated, as reported by the driver

    Raises:
        StoreError: On any database failure. Batches committed before the
            failure stay applied; re-running is safe thanks to the guard.
    """
    stmt = build_update(task, Version.__table__)
    affected = 0
    try:
        for batch in batches:
            if not batch.entries:
                continue
            with engine.begin() as conn:
                result = conn.execute(stmt, batch_params(task, batch))
                affected += max(result.rowcount, 0)
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to apply {task.name} updates: {e}") from e
    return affected
