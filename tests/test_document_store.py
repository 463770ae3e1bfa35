# tests/test_document_store.py
import pytest

from coursetrack.exceptions import ConcurrentModificationError, DuplicateDocumentError, NotFoundError
from coursetrack.utils.document_store import Create, Delete, Put, Update


def test_put_and_get_round_trip(store):
    store.put("things", "a", {"name": "first", "count": 1})

    record = store.get("things", "a")
    assert record["name"] == "first"
    assert record["id"] == "a"
    assert record["_version"] == 1


def test_get_missing_returns_none(store):
    assert store.get("things", "missing") is None
    assert store.get_version("things", "missing") == 0


def test_put_replaces_and_bumps_version(store):
    store.put("things", "a", {"name": "first", "extra": True})
    store.put("things", "a", {"name": "second"})

    record = store.get("things", "a")
    assert record["name"] == "second"
    assert "extra" not in record
    assert record["_version"] == 2


def test_update_merges_fields(store):
    store.put("things", "a", {"name": "first", "count": 1})
    store.update("things", "a", {"count": 2})

    record = store.get("things", "a")
    assert record == {"id": "a", "_version": 2, "name": "first", "count": 2}


def test_update_missing_document_raises(store):
    with pytest.raises(NotFoundError):
        store.update("things", "missing", {"count": 1})


def test_query_filters_by_field_equality(store):
    store.put("things", "a", {"kind": "x", "n": 1})
    store.put("things", "b", {"kind": "y", "n": 2})
    store.put("things", "c", {"kind": "x", "n": 3})
    store.put("other", "d", {"kind": "x", "n": 4})

    assert [r["id"] for r in store.query("things", kind="x")] == ["a", "c"]
    assert [r["id"] for r in store.query("things")] == ["a", "b", "c"]


def test_create_rejects_existing_id(store):
    store.create("things", "a", {"n": 1})

    with pytest.raises(DuplicateDocumentError):
        store.create("things", "a", {"n": 2})
    assert store.get("things", "a")["n"] == 1


def test_expected_version_mismatch_raises(store):
    store.put("things", "a", {"n": 1})

    with pytest.raises(ConcurrentModificationError):
        store.put("things", "a", {"n": 2}, expected_version=5)
    with pytest.raises(ConcurrentModificationError):
        store.update("things", "a", {"n": 2}, expected_version=0)
    assert store.get("things", "a")["n"] == 1


def test_expected_version_zero_means_must_not_exist(store):
    store.put("things", "a", {"n": 1}, expected_version=0)

    with pytest.raises(ConcurrentModificationError):
        store.put("things", "a", {"n": 2}, expected_version=0)


def test_batch_write_is_all_or_nothing(store):
    store.put("things", "existing", {"n": 1})

    with pytest.raises(DuplicateDocumentError):
        store.batch_write([
            Put("things", "new", {"n": 2}),
            Update("things", "existing", {"n": 10}),
            Create("things", "existing", {"n": 3}),
        ])

    assert store.get("things", "new") is None
    assert store.get("things", "existing")["n"] == 1


def test_batch_delete_then_recreate(store):
    store.put("things", "a", {"n": 1})

    store.batch_write([Delete("things", "a"), Create("things", "a", {"n": 2})])

    assert store.get("things", "a")["n"] == 2


def test_delete_missing_document_is_noop(store):
    store.delete("things", "missing")
    assert store.get("things", "missing") is None


def test_meta_keys_are_not_stored(store):
    store.put("things", "a", {"id": "ignored", "_version": 99, "n": 1})

    record = store.get("things", "a")
    assert record["id"] == "a"
    assert record["_version"] == 1
