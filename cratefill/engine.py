"""
Checkpointed backfill engine.

Runs one BackfillTask end to end:

    select candidates -> drop journaled ids -> inspect in parallel
    -> append to journal (single writer) -> compile journal -> SQL script

Every stage is resumable. Killing the process at any point leaves a valid
journal, and the next run only inspects versions that are not in it yet.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .compiler import DEFAULT_CHUNK_SIZE, BatchCompiler
from .database import get_engine, get_session
from .errors import ItemError, StoreError
from .inspector import ArtifactInspector
from .journal import Journal, JournalWriter
from .logger import StructuredLogger
from .models import CandidateItem, UpdateBatch
from .pool import WorkerPool
from .selector import filter_resolved, select_candidates
from .store import apply_batches
from .tasks.common import BackfillTask


@dataclass
class RunResult:
    """Outcome of one engine run."""

    candidates: int = 0
    already_resolved: int = 0
    processed: int = 0
    skipped: List[Tuple[CandidateItem, ItemError]] = field(default_factory=list)
    batches: List[UpdateBatch] = field(default_factory=list)
    applied: Optional[int] = None

    @property
    def updates(self) -> int:
        return sum(len(batch) for batch in self.batches)


class BackfillEngine:
    """Generic pipeline parameterized by a BackfillTask."""

    def __init__(
        self,
        task: BackfillTask,
        db_path: Path,
        logger: StructuredLogger,
        crates_path: Optional[Path] = None,
        journal_path: Optional[Path] = None,
        sql_path: Optional[Path] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        before: Optional[datetime] = None,
        workers: Optional[int] = None,
        inspector: Optional[ArtifactInspector] = None,
        fsync: bool = True,
        show_progress: bool = True,
    ):
        self.task = task
        self.db_path = Path(db_path)
        self.logger = logger
        self.crates_path = Path(crates_path) if crates_path is not None else None
        self.journal = Journal(journal_path or Path(f"{task.name}.csv"), task.columns)
        self.sql_path = Path(sql_path or f"{task.name}.sql")
        self.compiler = BatchCompiler(task, chunk_size)
        self.before = before
        self.workers = workers
        self.inspector = inspector or ArtifactInspector()
        self.fsync = fsync
        self.show_progress = show_progress

    def select(self) -> Tuple[List[CandidateItem], int]:
        """
        Select candidates and drop the ones already in the journal.

        Returns:
            (unresolved candidates, number of candidates already journaled)
        """
        if not self.db_path.exists():
            raise StoreError(f"Database not found: {self.db_path}")

        self.logger.info(f"Fetching {self.task.name} candidates from the database…")
        session = get_session(self.db_path)
        try:
            candidates = select_candidates(session, self.task, self.before)
        finally:
            session.close()
            session.get_bind().dispose()

        self.logger.info("Reading processed versions from journal…", journal=self.journal.path)
        resolved = self.journal.resolved_ids()

        pending = filter_resolved(candidates, resolved)
        already = len(candidates) - len(pending)
        self.logger.record("candidates", len(candidates))
        self.logger.record("already_resolved", already)
        self.logger.info(
            f"Selected {len(pending)} versions ({already} already processed)",
            task=self.task.name,
        )
        return pending, already

    def process(self, candidates: List[CandidateItem]) -> List[Tuple[CandidateItem, ItemError]]:
        """Inspect candidates in parallel and append results to the journal."""
        if self.crates_path is None:
            raise ValueError("crates_path is required to process candidates")

        pool = WorkerPool(
            self.task,
            self.crates_path,
            self.logger,
            inspector=self.inspector,
            workers=self.workers,
            show_progress=self.show_progress,
        )
        self.logger.info(f"Processing {len(candidates)} versions with {pool.workers} workers…")
        with JournalWriter(self.journal, fsync=self.fsync) as writer:
            skipped = pool.process(candidates, writer)
        self.logger.debug("Journal writer finished", written=writer.written)
        return skipped

    def compile(self) -> List[UpdateBatch]:
        """Recompile the SQL script from the full journal."""
        self.logger.info("Generating SQL file…", sql_path=self.sql_path)
        batches = self.compiler.compile(self.journal)
        self.compiler.write_sql(batches, self.sql_path)
        self.logger.info(
            f"Wrote {len(batches)} update statements covering "
            f"{sum(len(b) for b in batches)} versions",
            sql_path=self.sql_path,
        )
        return batches

    def apply(self, batches: List[UpdateBatch]) -> int:
        if not self.db_path.exists():
            raise StoreError(f"Database not found: {self.db_path}")
        engine = get_engine(self.db_path)
        try:
            affected = apply_batches(engine, self.task, batches)
        finally:
            engine.dispose()
        self.logger.info(f"Applied {len(batches)} batches, {affected} rows updated")
        return affected

    def run(self, apply: bool = False) -> RunResult:
        """Run the whole pipeline once."""
        pending, already = self.select()
        skipped = self.process(pending) if pending else []
        batches = self.compile()
        result = RunResult(
            candidates=len(pending) + already,
            already_resolved=already,
            processed=len(pending),
            skipped=skipped,
            batches=batches,
        )
        if apply:
            result.applied = self.apply(batches)
        return result
