"""
Tests for selector.py - candidate queries and the resolved-set filter.
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cratefill.database import get_session
from cratefill.errors import StoreError
from cratefill.models import CandidateItem
from cratefill.selector import filter_resolved, select_candidates
from cratefill.tasks import get_task


def _select(db_path, task_name, before=None):
    session = get_session(db_path)
    try:
        return select_candidates(session, get_task(task_name), before)
    finally:
        session.close()


class TestFilterResolved:
    """Test the pure resolved-set filter."""

    def test_removes_resolved_ids(self):
        items = [CandidateItem(i, f"c{i}", "1.0.0") for i in (1, 2, 3)]
        assert [c.record_id for c in filter_resolved(items, {1, 3})] == [2]

    def test_empty_resolved_set_keeps_everything(self):
        items = [CandidateItem(1, "a", "1.0.0")]
        assert filter_resolved(items, set()) == items


class TestSelectCandidates:
    """Test task candidate queries against SQLite."""

    def test_edition_selects_unset_only(self, db_path, add_version):
        missing = add_version("serde", "1.0.0")
        add_version("serde", "1.0.1", edition="2018")

        candidates = _select(db_path, "edition")
        assert [c.record_id for c in candidates] == [missing]
        assert candidates[0].lookup_key == "serde-1.0.0"

    def test_before_cutoff(self, db_path, add_version):
        old = add_version("old", "0.1.0", created_at=datetime(2015, 6, 1))
        add_version("new", "0.1.0", created_at=datetime(2020, 6, 1))

        candidates = _select(db_path, "crate-size", before=datetime(2018, 1, 1))
        assert [c.record_id for c in candidates] == [old]

    def test_links_default_cutoff(self, db_path, add_version):
        old = add_version("sys", "0.1.0", created_at=datetime(2018, 3, 21, 20, 59))
        add_version("sys", "0.2.0", created_at=datetime(2018, 3, 21, 21, 1))

        assert [c.record_id for c in _select(db_path, "links")] == [old]

    def test_features_carries_stored_value(self, db_path, add_version):
        add_version("feat", "1.0.0", features={"std": []})

        candidates = _select(db_path, "features")
        assert candidates[0].raw_context == {"features": {"std": []}}

    def test_lib_bin_selects_multiple_bins(self, db_path, add_version):
        add_version("one", "1.0.0", bin_names=["one"])
        many = add_version("many", "1.0.0", bin_names=["a", "b", "c"])
        add_version("none", "1.0.0")

        candidates = _select(db_path, "lib-bin")
        assert [c.record_id for c in candidates] == [many]
        assert candidates[0].raw_context == {"num_bins": 3}

    def test_version_metadata_requires_all_unset(self, db_path, add_version):
        bare = add_version("bare", "1.0.0")
        add_version("described", "1.0.0", description="has one")
        add_version("linked", "1.0.0", repository="https://example.com/repo")

        assert [c.record_id for c in _select(db_path, "version-metadata")] == [bare]

    def test_store_failure_raises_store_error(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
        session = sessionmaker(bind=engine)()
        try:
            with pytest.raises(StoreError, match="edition"):
                select_candidates(session, get_task("edition"))
        finally:
            session.close()
