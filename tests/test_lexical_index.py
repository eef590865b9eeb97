"""Tests for the FTS5 lexical index: trigger sync, maintenance, consistency sweep."""
import pytest

from agent_memory.entities import EntityStore
from agent_memory.lexical_index import LexicalIndex


@pytest.fixture
def entities(sqlite_store):
    return EntityStore(sqlite_store)


@pytest.fixture
def index(sqlite_store):
    return LexicalIndex(sqlite_store)


class TestTriggerSync:
    def test_insert_creates_entry(self, entities, index):
        mid = entities.insert("/c/a.md", "Deploy checklist", ["ops", "Deploy"])
        assert index.entry(mid) == ("Deploy checklist", "deploy ops")

    def test_summary_update_rebuilds_entry(self, entities, index):
        mid = entities.insert("/c/a.md", "old words", ["k"])
        entities.update(mid, summary="new words")
        assert index.entry(mid) == ("new words", "k")

    def test_keyword_only_update_rebuilds_entry(self, entities, index):
        mid = entities.insert("/c/a.md", "summary", ["b", "a"])
        entities.update(mid, keywords=["c"])
        assert index.entry(mid) == ("summary", "c")

    def test_keyword_clear(self, entities, index):
        mid = entities.insert("/c/a.md", "summary", ["a"])
        entities.update(mid, keywords=[])
        assert index.entry(mid) == ("summary", "")

    def test_delete_removes_entry(self, entities, index):
        mid = entities.insert("/c/a.md", "gone", ["a", "b"])
        entities.delete(mid)
        assert index.entry(mid) is None
        assert index.document_count() == 0

    def test_one_entry_per_memory(self, entities, index):
        for i in range(5):
            mid = entities.insert(f"/c/{i}.md", f"memory {i}", ["x", "y"])
            entities.update(mid, keywords=["z"])
        assert index.document_count() == entities.count() == 5

    def test_cascade_does_not_resurrect_entry(self, entities, index, sqlite_store):
        mid = entities.insert("/c/a.md", "s", ["k1", "k2", "k3"])
        with sqlite_store.transaction() as c:
            c.execute("DELETE FROM memories WHERE id = ?", (mid,))
        assert index.entry(mid) is None


class TestCandidates:
    def test_matches_summary_and_keywords(self, entities, index):
        a = entities.insert("/c/a.md", "postgres tuning notes", [])
        b = entities.insert("/c/b.md", "misc", ["postgres"])
        entities.insert("/c/c.md", "unrelated", ["other"])
        ids = {r[0] for r in index.candidates('"postgres"', 0.8, 2.0, 10)}
        assert ids == {a, b}

    def test_scores_ascending(self, entities, index):
        entities.insert("/c/a.md", "redis redis redis cache", [])
        entities.insert("/c/b.md", "redis", [])
        rows = index.candidates('"redis"', 0.8, 2.0, 10)
        scores = [r[4] for r in rows]
        assert scores == sorted(scores)
        assert all(s < 0 for s in scores)

    def test_limit(self, entities, index):
        for i in range(5):
            entities.insert(f"/c/{i}.md", "common term", [])
        assert len(index.candidates('"common"', 0.8, 2.0, 3)) == 3

    def test_prefix_index_allows_prefix_queries(self, entities, index):
        mid = entities.insert("/c/a.md", "kubernetes cluster", [])
        assert [r[0] for r in index.candidates("kube*", 0.8, 2.0, 10)] == [mid]


class TestMaintenance:
    def test_optimize_always_succeeds(self, index):
        assert index.optimize() == {"success": True, "message": "FTS5 index optimized successfully"}

    def test_optimize_with_data(self, entities, index):
        for i in range(10):
            entities.insert(f"/c/{i}.md", f"doc {i}", ["k"])
        assert index.optimize()["success"] is True
        assert index.document_count() == 10

    def test_integrity_check(self, entities, index):
        entities.insert("/c/a.md", "s", ["k"])
        assert index.integrity_check() is True


class TestConsistencySweep:
    def test_clean_index(self, entities, index):
        entities.insert("/c/a.md", "s", ["k"])
        report = index.check()
        assert report.consistent
        assert report.checked == 1

    def test_detects_and_repairs_drift(self, entities, index, sqlite_store):
        a = entities.insert("/c/a.md", "alpha", ["k"])
        b = entities.insert("/c/b.md", "beta", ["k"])
        c_ = entities.insert("/c/c.md", "gamma", [])
        # Simulate drift a crash or manual edit could leave behind
        with sqlite_store.transaction() as c:
            c.execute("DELETE FROM memories_fts WHERE rowid = ?", (a,))
            c.execute("UPDATE memories_fts SET summary = 'stale' WHERE rowid = ?", (b,))
            c.execute("INSERT INTO memories_fts(rowid, summary, keywords) VALUES (999, 'orphan', '')")

        report = index.check()
        assert report.missing == [a]
        assert report.stale == [b]
        assert report.orphaned == [999]
        assert not report.consistent

        repaired = index.repair()
        # The report describes what was found before fixing it
        assert repaired.missing == [a]
        assert repaired.orphaned == [999]
        assert index.check().consistent
        assert index.entry(a) == ("alpha", "k")
        assert index.entry(b) == ("beta", "k")
        assert index.entry(c_) == ("gamma", "")
        assert index.entry(999) is None

    def test_repair_on_clean_index_is_noop(self, entities, index):
        entities.insert("/c/a.md", "s", ["k"])
        assert index.repair().consistent
        assert index.document_count() == 1
