"""
Tests for journal.py - journal codec, reader and single writer.
"""

import threading

import pytest

from cratefill.errors import FormatError, JournalIOError
from cratefill.journal import SENTINEL, Journal, JournalWriter, decode_entry, encode_entry
from cratefill.models import NO_UPDATE, Column, JournalEntry

COLUMNS = (Column("has_lib", "bool"), Column("bin_names", "text[]"))


class TestCodec:
    """Test row encoding and decoding."""

    def test_encode_values_as_json(self):
        row = encode_entry(JournalEntry(7, (True, ["a", "b"])), COLUMNS)
        assert row == ["7", "true", '["a", "b"]']

    def test_encode_no_update_as_bare_sentinel(self):
        assert encode_entry(JournalEntry(7, NO_UPDATE), COLUMNS) == ["7", SENTINEL]

    def test_string_null_does_not_collide_with_sentinel(self):
        columns = (Column("links", "text"),)
        row = encode_entry(JournalEntry(1, ("NULL",)), columns)
        assert row == ["1", '"NULL"']
        assert decode_entry(row, columns).values == ("NULL",)

    def test_encode_rejects_wrong_arity(self):
        with pytest.raises(ValueError):
            encode_entry(JournalEntry(1, (True,)), COLUMNS)

    def test_decode_sentinel(self):
        entry = decode_entry(["3", "NULL"], COLUMNS)
        assert entry.record_id == 3
        assert entry.values is NO_UPDATE
        assert not entry.needs_update

    def test_decode_wrong_column_count(self):
        with pytest.raises(FormatError, match="expected 3 columns"):
            decode_entry(["3", "true"], COLUMNS, line=4)

    def test_decode_unparsable_id(self):
        with pytest.raises(FormatError, match="unparsable version id"):
            decode_entry(["abc", "true", "[]"], COLUMNS)

    def test_decode_bad_json(self):
        with pytest.raises(FormatError, match="line 2"):
            decode_entry(["3", "true", "[not json"], COLUMNS, line=2)


class TestJournalReader:
    """Test reading the resolved set and entries."""

    def test_missing_file_is_empty(self, tmp_path):
        journal = Journal(tmp_path / "missing.csv", COLUMNS)
        assert journal.resolved_ids() == set()
        assert journal.entries() == []

    def test_resolved_ids_include_sentinel_rows(self, tmp_path):
        path = tmp_path / "lib-bin.csv"
        path.write_text('1,true,"[""a""]"\n2,NULL\n')
        assert Journal(path, COLUMNS).resolved_ids() == {1, 2}

    def test_entries_keep_file_order_and_duplicates(self, tmp_path):
        path = tmp_path / "lib-bin.csv"
        path.write_text('5,false,[]\n2,NULL\n5,true,"[""x""]"\n')
        entries = Journal(path, COLUMNS).entries()
        assert [e.record_id for e in entries] == [5, 2, 5]
        assert entries[2].values == (True, ["x"])

    def test_blank_lines_are_ignored(self, tmp_path):
        path = tmp_path / "lib-bin.csv"
        path.write_text("1,NULL\n\n2,NULL\n")
        assert Journal(path, COLUMNS).resolved_ids() == {1, 2}

    def test_malformed_row_raises_format_error(self, tmp_path):
        path = tmp_path / "lib-bin.csv"
        path.write_text("1,NULL\nxyz,NULL\n")
        with pytest.raises(FormatError, match="line 2"):
            Journal(path, COLUMNS).entries()


class TestJournalWriter:
    """Test the single-writer append path."""

    def test_creates_file_and_appends(self, tmp_path):
        journal = Journal(tmp_path / "nested" / "j.csv", COLUMNS)
        with JournalWriter(journal, fsync=False) as writer:
            writer.submit(JournalEntry(1, (True, ["a"])))
            writer.submit(JournalEntry(2, NO_UPDATE))

        assert writer.written == 2
        assert journal.resolved_ids() == {1, 2}

    def test_appends_to_existing_journal(self, tmp_path):
        path = tmp_path / "j.csv"
        path.write_text("1,NULL\n")
        journal = Journal(path, COLUMNS)
        with JournalWriter(journal, fsync=False) as writer:
            writer.submit(JournalEntry(2, (False, [])))

        assert [e.record_id for e in journal.entries()] == [1, 2]

    def test_concurrent_producers_never_interleave(self, tmp_path):
        journal = Journal(tmp_path / "j.csv", COLUMNS)
        bins = ["bin-" + "x" * 200, "other"]

        def produce(writer, start):
            for i in range(start, start + 250):
                writer.submit(JournalEntry(i, (True, bins)))

        with JournalWriter(journal, fsync=False) as writer:
            threads = [threading.Thread(target=produce, args=(writer, n * 1000)) for n in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        entries = journal.entries()
        assert len(entries) == 2000
        assert all(e.values == (True, bins) for e in entries)
        assert len({e.record_id for e in entries}) == 2000

    def test_open_failure_raises_journal_io_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        journal = Journal(blocker / "j.csv", COLUMNS)
        with pytest.raises(JournalIOError):
            JournalWriter(journal).open()

    def test_encoding_failure_surfaces_on_close(self, tmp_path):
        journal = Journal(tmp_path / "j.csv", COLUMNS)
        writer = JournalWriter(journal, fsync=False)
        writer.start()
        writer.submit(JournalEntry(1, (True,)))
        with pytest.raises(ValueError):
            writer.close()
        assert writer.failed
