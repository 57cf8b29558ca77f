"""
Candidate Selection Logic.

Responsibilities:
- Query the store for versions missing a task's target field(s).
- Drop versions that already have a journal row.

Non-Responsibilities:
- No artifact access.
- No decisions about what value to write.

Invariant:
Selection is idempotent: running it twice against the same store and
journal returns the same candidates.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from .database import Crate, Version
from .errors import StoreError
from .models import CandidateItem
from .tasks.common import BackfillTask


def select_candidates(session, task: BackfillTask, before: Optional[datetime] = None) -> List[CandidateItem]:
    """
    Materialize every version matching the task's candidate query.

    Args:
        session: SQLAlchemy session on the registry store
        task: Backfill task providing the query
        before: Optional cutoff on versions.created_at (falls back to the task default)

    Raises:
        StoreError: On any query or connectivity failure
    """
    query = task.candidate_query(Version.__table__, Crate.__table__, task.resolve_before(before))
    try:
        rows = session.execute(query).all()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to fetch candidates for {task.name}: {e}") from e
    return [task.to_candidate(row) for row in rows]


def filter_resolved(candidates: Iterable[CandidateItem], resolved: Set[int]) -> List[CandidateItem]:
    return [item for item in candidates if item.record_id not in resolved]
