# tests/test_storage.py

import pytest
from permavault_core.errors import RecordNotFoundError
from permavault_core.lifecycle import LifecycleEmulator
from permavault_core.storage import InMemoryGateway, SQLiteGateway


def test_storage_roundtrip(tmp_path):
    db_path = tmp_path / "state.db"
    s = SQLiteGateway(str(db_path))
    rid = s.put(b"\x00bytes\xff", {"Content-Type": "application/pdf", "Salt": "ab" * 16})
    got = s.get(rid)
    assert got.id == rid
    assert got.payload == b"\x00bytes\xff"
    assert got.metadata == {"Content-Type": "application/pdf", "Salt": "ab" * 16}
    assert got.seq == 1
    assert got.created_at_ms > 0


def test_metadata_order_preserved(tmp_path):
    s = SQLiteGateway(str(tmp_path / "state.db"))
    md = {"Z": "1", "A": "2", "M": "3"}
    assert list(s.get(s.put(b"", md)).metadata) == ["Z", "A", "M"]


def test_missing_record(tmp_path):
    s = SQLiteGateway(str(tmp_path / "state.db"))
    with pytest.raises(RecordNotFoundError) as exc:
        s.get("nope")
    assert exc.value.record_id == "nope"


def test_records_persist_across_reopen(tmp_path):
    db = str(tmp_path / "nested" / "state.db")
    s = SQLiteGateway(db)
    first = s.put(b"one", {})
    second = s.put(b"two", {})
    s.close()

    s2 = SQLiteGateway(db)
    assert [r.id for r in s2.records()] == [first, second]
    assert s2.count() == 2


def test_annotations_for_in_creation_order(tmp_path):
    s = SQLiteGateway(str(tmp_path / "state.db"))
    lc = LifecycleEmulator(s, identity="me")
    original = s.put(b"file", {})
    other = s.put(b"other", {})

    d = lc.mark_deleted(original)
    lc.mark_deleted(other)
    r = lc.restore(original)
    res = lc.rollback(original, other, create_backup=True)

    ids = [a.id for a in s.annotations_for(original)]
    assert ids == [d, r, res.backup_id, res.new_id]


def test_schema_has_no_mutable_columns(tmp_path):
    s = SQLiteGateway(str(tmp_path / "state.db"))
    cur = s.db.execute("PRAGMA table_info(records)")
    cols = {row[1] for row in cur.fetchall()}
    assert cols == {"seq", "id", "payload", "created_at_ms"}


def test_memory_gateway_matches_contract():
    g = InMemoryGateway()
    a = g.put(b"a", {"k": "v"})
    b = g.put(b"", {})
    assert a != b
    assert g.get(a).metadata == {"k": "v"}
    assert [r.seq for r in g.records()] == [1, 2]
    with pytest.raises(RecordNotFoundError):
        g.get("missing")


def test_memory_gateway_copies_metadata():
    g = InMemoryGateway()
    md = {"k": "v"}
    rid = g.put(b"a", md)
    md["k"] = "changed"
    assert g.get(rid).metadata == {"k": "v"}


def test_memory_gateway_returns_copies():
    g = InMemoryGateway()
    rid = g.put(b"a", {"k": "v"})
    g.get(rid).metadata["k"] = "tampered"
    next(g.records()).metadata["extra"] = "1"
    assert g.get(rid).metadata == {"k": "v"}
