"""
Append-only journal of resolved versions.

Responsibilities:
- Persist one CSV row per resolved version (id, derived values...).
- Report the resolved set so later runs skip finished work.
- Replay the full entry sequence for batch compilation.

Non-Responsibilities:
- No deduplication (the compiler owns that).
- No retries: failed items are simply never written.

Invariant:
Exactly one JournalWriter holds the file open for appending, and rows are
never rewritten. Removing a row is the only way to reprocess a version.
"""

import csv
import json
import os
import queue
import threading
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import FormatError, JournalIOError
from .models import NO_UPDATE, Column, JournalEntry

# Bare token for "resolved, nothing to write". Real values are JSON encoded,
# so a string value is always quoted and can never collide with it.
SENTINEL = "NULL"

_CLOSE = object()


def encode_entry(entry: JournalEntry, columns: Sequence[Column]) -> List[str]:
    if entry.values is NO_UPDATE:
        return [str(entry.record_id), SENTINEL]
    if len(entry.values) != len(columns):
        raise ValueError(
            f"Entry for {entry.record_id} has {len(entry.values)} values, expected {len(columns)}"
        )
    cells = [json.dumps(v, ensure_ascii=False, sort_keys=True) for v in entry.values]
    return [str(entry.record_id)] + cells


def decode_entry(row: Sequence[str], columns: Sequence[Column], line: int = 0) -> JournalEntry:
    record_id = _parse_id(row, line)
    cells = list(row[1:])
    if cells == [SENTINEL]:
        return JournalEntry(record_id, NO_UPDATE)
    if len(cells) != len(columns):
        raise FormatError(f"expected {len(columns) + 1} columns, got {len(row)}", line)
    try:
        values = tuple(json.loads(cell) for cell in cells)
    except json.JSONDecodeError as e:
        raise FormatError(f"undecodable value for version {record_id}: {e}", line) from e
    return JournalEntry(record_id, values)


def _parse_id(row: Sequence[str], line: int) -> int:
    try:
        return int(row[0])
    except (IndexError, ValueError) as e:
        raise FormatError(f"unparsable version id {row[0] if row else ''!r}", line) from e


class Journal:
    """Read access to a journal file. A missing file is an empty journal."""

    def __init__(self, path: Path, columns: Sequence[Column]):
        self.path = Path(path)
        self.columns = tuple(columns)

    def exists(self) -> bool:
        return self.path.exists()

    def _rows(self) -> Iterator[Tuple[int, List[str]]]:
        try:
            f = self.path.open("r", newline="", encoding="utf-8")
        except FileNotFoundError:
            return
        except OSError as e:
            raise JournalIOError(f"Cannot read journal {self.path}: {e}") from e

        with f:
            try:
                for line, row in enumerate(csv.reader(f), start=1):
                    if row:
                        yield line, row
            except csv.Error as e:
                raise FormatError(f"invalid CSV: {e}") from e
            except UnicodeDecodeError as e:
                raise FormatError(f"journal is not valid UTF-8: {e}") from e

    def resolved_ids(self) -> Set[int]:
        """Ids present in the journal, whatever their value."""
        return {_parse_id(row, line) for line, row in self._rows()}

    def entries(self) -> List[JournalEntry]:
        """All rows in file order, duplicates included."""
        return [decode_entry(row, self.columns, line) for line, row in self._rows()]


class JournalWriter:
    """
    The single consumer of the worker pool's output.

    Entries are submitted from any thread and appended by one dedicated
    thread, one flushed row at a time. Use as a context manager: entering
    opens the file and starts the thread, leaving closes the channel and
    waits until every submitted entry is on disk.
    """

    def __init__(self, journal: Journal, fsync: bool = True):
        self.journal = journal
        self.fsync = fsync
        self.written = 0
        self.error: Optional[BaseException] = None
        self._queue: "queue.Queue" = queue.Queue()
        self._file = None
        self._thread: Optional[threading.Thread] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def open(self) -> None:
        path = self.journal.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._file = path.open("a", newline="", encoding="utf-8")
        except OSError as e:
            raise JournalIOError(f"Cannot open journal {path} for appending: {e}") from e

    def start(self) -> None:
        if self._file is None:
            self.open()
        self._thread = threading.Thread(target=self._run, name="journal-writer", daemon=True)
        self._thread.start()

    def submit(self, entry: JournalEntry) -> None:
        self._queue.put(entry)

    def drain(self, entries: Iterable[JournalEntry]) -> None:
        """Append each entry durably before taking the next one."""
        writer = csv.writer(self._file, lineterminator="\n")
        for entry in entries:
            writer.writerow(encode_entry(entry, self.journal.columns))
            self._file.flush()
            if self.fsync:
                os.fsync(self._file.fileno())
            self.written += 1

    def _run(self) -> None:
        try:
            self.drain(iter(self._queue.get, _CLOSE))
        except Exception as e:
            self.error = e
        finally:
            self._file.close()

    def close(self, raise_errors: bool = True) -> None:
        """Close the channel and join the writer thread."""
        if self._thread is not None:
            self._queue.put(_CLOSE)
            self._thread.join()
            self._thread = None
        elif self._file is not None and not self._file.closed:
            self._file.close()

        if raise_errors and self.error is not None:
            if isinstance(self.error, OSError):
                raise JournalIOError(
                    f"Cannot append to journal {self.journal.path}: {self.error}"
                ) from self.error
            raise self.error

    def __enter__(self) -> "JournalWriter":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Don't mask an exception that is already propagating
        self.close(raise_errors=exc_type is None)
