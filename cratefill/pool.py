"""
Parallel inspection of candidates.

Workers pull one candidate at a time from a fixed-size thread pool, derive the
task's values from the artifact, and hand the resulting JournalEntry to a
single sink (the JournalWriter). Items whose inspection fails are logged and
dropped; they stay unresolved and are selected again on the next run.
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from .errors import ItemError
from .inspector import ArtifactInspector, artifact_path
from .logger import StructuredLogger
from .models import CandidateItem, JournalEntry
from .tasks.common import BackfillTask


class EntrySink(Protocol):
    """Where workers send their results."""

    @property
    def failed(self) -> bool: ...

    def submit(self, entry: JournalEntry) -> None: ...


def default_workers() -> int:
    return os.cpu_count() or 1


class WorkerPool:
    """Fan-out of candidate inspection over a bounded thread pool."""

    def __init__(
        self,
        task: BackfillTask,
        crates_path: Path,
        logger: StructuredLogger,
        inspector: Optional[ArtifactInspector] = None,
        workers: Optional[int] = None,
        show_progress: bool = True,
    ):
        self.task = task
        self.crates_path = Path(crates_path)
        self.logger = logger
        self.inspector = inspector or ArtifactInspector()
        self.workers = workers or default_workers()
        self.show_progress = show_progress
        self._skipped: List[Tuple[CandidateItem, ItemError]] = []
        self._skipped_lock = threading.Lock()

    def process(self, candidates: Sequence[CandidateItem], sink: EntrySink) -> List[Tuple[CandidateItem, ItemError]]:
        """
        Inspect every candidate once and send successes to the sink.

        Returns:
            The skipped candidates with the error that caused the skip
        """
        self._skipped = []
        if not candidates:
            return []

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="inspect") as executor, \
                logging_redirect_tqdm(loggers=[self.logger.logger]), \
                tqdm(total=len(candidates), desc=self.task.name, unit="version",
                     disable=not self.show_progress) as progress:
            futures = [executor.submit(self._process_one, item, sink) for item in candidates]
            try:
                for future in as_completed(futures):
                    future.result()
                    progress.update(1)
                    if sink.failed:
                        self.logger.error("Journal writer failed, stopping workers")
                        break
            finally:
                for future in futures:
                    future.cancel()

        return list(self._skipped)

    def _process_one(self, item: CandidateItem, sink: EntrySink) -> None:
        if sink.failed:
            return
        path = artifact_path(self.crates_path, item.name, item.version)
        try:
            values = self.task.derive(item, path, self.inspector)
        except ItemError as e:
            self.logger.warning(
                f"Skipping {item.lookup_key}: {e}",
                version_id=item.record_id,
                path=path,
                error=type(e).__name__,
            )
            self.logger.record_skip(type(e).__name__)
            with self._skipped_lock:
                self._skipped.append((item, e))
            return
        finally:
            self.logger.record("processed")

        entry = JournalEntry(item.record_id, values)
        sink.submit(entry)
        self.logger.record("journaled")
        if not entry.needs_update:
            self.logger.record("no_update")
