"""Unit tests for the in-memory revisioned document store."""

import dataclasses

import pytest

from doc_expiry.components.bootstrap import expires_index_definition
from doc_expiry.components.docstore import MemoryServer, make_doc
from doc_expiry.core.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    UnauthorizedError,
)


@pytest.fixture
def server():
    """Create server with one empty database."""
    server = MemoryServer()
    server.create_db("db")
    return server


@pytest.fixture
def db(server):
    return server.get_db("db")


@pytest.fixture
def indexed_db(db):
    """Database with the expiry index installed."""
    db.install_index(expires_index_definition())
    return db


def test_put_and_open(db):
    """A written document reads back with its id and revision."""
    rev = db.put("a", {"timestamp": 1000, "name": "x"})

    doc = db.open_doc("a")

    assert doc == {"_id": "a", "_rev": rev, "timestamp": 1000, "name": "x"}
    assert rev.startswith("1-")


def test_open_missing_raises(db):
    """Opening an unknown id raises NotFoundError."""
    with pytest.raises(NotFoundError) as exc:
        db.open_doc("nope")
    assert exc.value.reason == "missing"


def test_put_existing_without_rev_conflicts(db):
    """Creating over a live document is a conflict."""
    db.put("a", {"v": 1})
    with pytest.raises(ConflictError):
        db.put("a", {"v": 2})


def test_update_with_stale_rev_conflicts(db):
    """Updating from a superseded revision is a conflict."""
    rev1 = db.put("a", {"v": 1})
    rev2 = db.put("a", {"v": 2}, rev=rev1)

    with pytest.raises(ConflictError):
        db.put("a", {"v": 3}, rev=rev1)

    assert rev2.startswith("2-")
    assert db.open_doc("a")["v"] == 2


def test_update_accepts_opened_doc(db):
    """Bodies returned by open_doc can be written back; meta fields are stripped."""
    db.put("a", {"v": 1})
    doc = db.open_doc("a")
    doc["v"] = 2

    db.put("a", doc, rev=doc["_rev"])

    assert db.open_revs("a")[0].body == {"v": 2}


def test_delete_then_open_reports_deleted(db):
    """A deleted document reads as not found."""
    rev = db.put("a", {"v": 1})
    db.delete("a", rev)

    with pytest.raises(NotFoundError) as exc:
        db.open_doc("a")
    assert exc.value.reason == "deleted"
    assert db.doc_count() == 0


def test_recreate_over_tombstone(db):
    """A deleted document can be created again without a revision."""
    rev = db.put("a", {"v": 1})
    db.delete("a", rev)

    new_rev = db.put("a", {"v": 2})

    assert new_rev.startswith("3-")
    assert db.open_doc("a")["v"] == 2
    assert len(db.open_revs("a")) == 1


def test_put_conflict_creates_sibling_leaf(db):
    """A replicated write adds a second live leaf."""
    db.put("a", {"v": 1})
    db.put_conflict("a", {"v": 2})

    leaves = db.open_revs("a")

    assert len(leaves) == 2
    assert all(not leaf.deleted for leaf in leaves)
    winner = max(leaves, key=lambda leaf: (leaf.generation, leaf.rev))
    assert db.open_doc("a")["_rev"] == winner.rev


def test_update_leaves_is_atomic(db):
    """If one leaf is stale, no leaf is written."""
    db.put("a", {"v": 1})
    db.put_conflict("a", {"v": 2})
    leaves = [dataclasses.replace(leaf, deleted=True) for leaf in db.open_revs("a")]
    # supersede one of the leaves
    db.put("a", {"v": 3}, rev=leaves[0].rev)

    with pytest.raises(ConflictError):
        db.update_leaves(leaves)

    assert all(not leaf.deleted for leaf in db.open_revs("a"))


def test_update_leaves_tombstones_every_leaf(db):
    """Deleting every live leaf removes the document."""
    db.put("a", {"v": 1})
    db.put_conflict("a", {"v": 2})
    leaves = [dataclasses.replace(leaf, deleted=True) for leaf in db.open_revs("a")]

    new_revs = db.update_leaves(leaves)

    assert len(new_revs) == 2
    assert all(leaf.deleted and leaf.body == {} for leaf in db.open_revs("a"))
    with pytest.raises(NotFoundError):
        db.open_doc("a")


def test_index_follows_writes(indexed_db):
    """The index tracks creates, updates and deletes."""
    rev = indexed_db.put("a", make_doc(timestamp=10, ttl=5))
    indexed_db.put("b", make_doc(timestamp=20))
    indexed_db.put("c", {"name": "unindexed"})

    page = indexed_db.scan_index_page("_expires", 10)
    assert [(e.key, e.doc_id, e.ttl) for e in page] == [(15, "a", 5), (20, "b", None)]

    rev = indexed_db.put("a", make_doc(timestamp=30), rev=rev)
    assert [e.doc_id for e in indexed_db.scan_index_page("_expires", 10)] == ["b", "a"]

    indexed_db.delete("a", rev)
    assert [e.doc_id for e in indexed_db.scan_index_page("_expires", 10)] == ["b"]


def test_install_index_indexes_existing_docs(db):
    """Installing an index builds entries for documents already present."""
    db.put("a", make_doc(timestamp=10))
    rev = db.put("b", make_doc(timestamp=5))
    db.delete("b", rev)

    db.install_index(expires_index_definition())

    assert [e.doc_id for e in db.scan_index_page("_expires", 10)] == ["a"]


def test_scan_unknown_index_raises(db):
    """Scanning an index that is not installed is a store error."""
    with pytest.raises(StoreError):
        db.scan_index_page("_expires", 10)


def test_scan_index_from_spans_batches(indexed_db):
    """A lazy scan returns every entry across internal batches."""
    for i in range(250):
        indexed_db.put(f"doc{i:03d}", make_doc(timestamp=i))

    keys = [e.key for e in indexed_db.scan_index_from("_expires", 0, batch_size=100)]

    assert keys == list(range(250))
    assert [e.key for e in indexed_db.scan_index_from("_expires", 245)] == list(range(245, 250))


def test_scan_index_from_sees_writes_between_batches(indexed_db):
    """Entries removed before their batch is read are not returned."""
    for i in range(4):
        indexed_db.put(f"doc{i}", make_doc(timestamp=i))

    scan = indexed_db.scan_index_from("_expires", None, batch_size=2)
    first = [next(scan), next(scan)]
    rev = indexed_db.open_doc("doc3")["_rev"]
    indexed_db.delete("doc3", rev)

    assert [e.doc_id for e in first] == ["doc0", "doc1"]
    assert [e.doc_id for e in scan] == ["doc2"]


def test_read_filter_applies_to_non_admin_only(server, db):
    """Non-admin handles are subject to read filters; admin handles are not."""
    db.install_index(expires_index_definition(), read_filter=lambda doc: doc.get("ttl") is None)
    db.put("hidden", make_doc(timestamp=1, ttl=1))

    with server.open_db("db") as handle:
        with pytest.raises(NotFoundError) as exc:
            handle.open_doc("hidden")
        assert exc.value.reason == "expired"

    with server.open_db("db", admin=True) as handle:
        assert handle.open_doc("hidden")["ttl"] == 1


def test_non_admin_cannot_install_index(server):
    """Index installation requires an admin handle."""
    with server.open_db("db") as handle:
        with pytest.raises(UnauthorizedError):
            handle.install_index(expires_index_definition())


def test_open_unknown_db_raises(server):
    """Opening a missing database reports the store unavailable."""
    with pytest.raises(StoreUnavailableError):
        server.open_db("missing")


def test_closed_handle_raises(server):
    """Operations on a closed handle fail."""
    handle = server.open_db("db", admin=True)
    handle.close()
    handle.close()

    assert handle.closed
    with pytest.raises(StoreUnavailableError):
        handle.open_doc("a")


def test_open_handles_are_counted(server, db):
    """Handles are tracked until closed."""
    h1 = server.open_db("db")
    with server.open_db("db", admin=True):
        assert db.open_handles == 2
    h1.close()

    assert db.open_handles == 0


def test_create_and_delete_db(server):
    """Databases are created once and can be dropped."""
    with pytest.raises(StoreError):
        server.create_db("db")

    server.create_db("other")
    assert server.list_dbs() == ["db", "other"]

    server.delete_db("other")
    with pytest.raises(StoreUnavailableError):
        server.delete_db("other")


def test_make_doc_omits_absent_fields():
    """make_doc only sets expiry fields that are given."""
    assert make_doc(name="x") == {"name": "x"}
    assert make_doc(timestamp=1, ttl=2) == {"timestamp": 1, "ttl": 2}
