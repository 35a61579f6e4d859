import threading
from datetime import datetime

import pytest

from branch_queue.errors import DocumentMissing, StoreFailure
from branch_queue.store import InMemoryDocumentStore


def test_get_returns_copies():
    s = InMemoryDocumentStore()
    s.set("c", "a", {"n": 1, "tags": ["x"]})
    doc = s.get("c", "a")
    doc["tags"].append("y")
    assert s.get("c", "a") == {"n": 1, "tags": ["x"]}
    assert s.get("c", "missing") is None


def test_set_merge_and_update():
    s = InMemoryDocumentStore()
    s.set("c", "a", {"n": 1, "m": 2})
    s.set("c", "a", {"n": 5}, merge=True)
    assert s.get("c", "a") == {"n": 5, "m": 2}

    s.set("c", "a", {"n": 7})
    assert s.get("c", "a") == {"n": 7}

    s.update("c", "a", {"m": 3})
    assert s.get("c", "a") == {"n": 7, "m": 3}


def test_update_missing_document_fails():
    s = InMemoryDocumentStore()
    with pytest.raises(DocumentMissing):
        s.update("c", "nope", {"n": 1})
    with pytest.raises(StoreFailure):
        s.update("c", "nope", {"n": 1})


def test_delete_is_quiet_for_missing_documents():
    s = InMemoryDocumentStore()
    s.set("c", "a", {"n": 1})
    s.delete("c", "a")
    s.delete("c", "a")
    assert s.get("c", "a") is None


def test_query_filters_order_and_limit():
    s = InMemoryDocumentStore()
    s.set("c", "a", {"kind": "x", "n": 3})
    s.set("c", "b", {"kind": "x", "n": 1})
    s.set("c", "c", {"kind": "y", "n": 2})
    s.set("c", "d", {"kind": "x"})

    xs = s.query("c", [("kind", "==", "x")], order_by="n")
    assert [d.get("n") for d in xs] == [1, 3, None]

    desc = s.query("c", [("kind", "==", "x")], order_by="n", descending=True, limit=2)
    assert [d["n"] for d in desc] == [3, 1]

    assert [d["n"] for d in s.query("c", [("n", ">=", 2)], order_by="n")] == [2, 3]
    assert len(s.query("c", [("kind", "!=", "x")])) == 1
    assert len(s.query("c", [("kind", "in", ["x", "y"])])) == 4
    assert s.query("c", [("n", "<", 10)], limit=0) == []


def test_query_range_on_datetimes():
    s = InMemoryDocumentStore()
    s.set("c", "a", {"at": datetime(2026, 1, 1, 8)})
    s.set("c", "b", {"at": datetime(2026, 1, 1, 12)})
    s.set("c", "c", {"at": None})
    found = s.query("c", [("at", ">", datetime(2026, 1, 1, 10))])
    assert found == [{"at": datetime(2026, 1, 1, 12)}]


def test_query_rejects_unknown_operator():
    s = InMemoryDocumentStore()
    with pytest.raises(StoreFailure):
        s.query("c", [("n", "~", 1)])


def test_query_with_incomparable_values_is_a_store_failure():
    s = InMemoryDocumentStore()
    s.set("c", "a", {"n": "three"})
    with pytest.raises(StoreFailure):
        s.query("c", [("n", ">", 1)])


def test_increment_creates_document_and_counts():
    s = InMemoryDocumentStore()
    assert s.increment("branches", "b1", "last") == 1
    assert s.increment("branches", "b1", "last", 3) == 4
    assert s.get("branches", "b1") == {"last": 4}


def test_increment_is_atomic_across_threads():
    s = InMemoryDocumentStore()
    seen = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            v = s.increment("branches", "b1", "last")
            with lock:
                seen.append(v)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(seen) == list(range(1, 401))
