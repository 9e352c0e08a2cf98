from __future__ import annotations

import json

import pytest

from cylinder_errors import RecordNotFound
from record_store import SERVER_TIMESTAMP, JsonRecordStore


def _store(tmp_path):
    return JsonRecordStore(tmp_path / "cylinders", clock=lambda: "2026-10-19T08:30:00+00:00")


def test_update_merges_and_stamps(tmp_path) -> None:
    store = _store(tmp_path)
    store.create("cyl-1", {"serialNumber": "GH-1", "weight": 12.5})
    store.update("cyl-1", {"status": "minted", "tokenId": "4", "updatedAt": SERVER_TIMESTAMP})

    doc = json.loads((tmp_path / "cylinders" / "cyl-1.json").read_text())
    assert doc == {
        "serialNumber": "GH-1",
        "weight": 12.5,
        "status": "minted",
        "tokenId": "4",
        "updatedAt": "2026-10-19T08:30:00+00:00",
    }
    assert not list((tmp_path / "cylinders").glob("*.tmp"))


def test_update_missing_record(tmp_path) -> None:
    store = _store(tmp_path)
    with pytest.raises(RecordNotFound):
        store.update("nope", {"status": "error"})


def test_pending_skips_processed_records(tmp_path) -> None:
    store = _store(tmp_path)
    store.create("a", {"serialNumber": "A"})
    store.create("b", {"serialNumber": "B", "status": "minted"})
    store.create("c", {"serialNumber": "C", "status": "error"})
    (tmp_path / "cylinders" / "broken.json").write_text("{not json")

    assert list(store.pending()) == [("a", {"serialNumber": "A"})]


def test_pending_on_missing_dir(tmp_path) -> None:
    assert list(_store(tmp_path).pending()) == []


@pytest.mark.parametrize("bad", ["", "../etc", ".hidden", "a/b"])
def test_rejects_path_like_ids(tmp_path, bad) -> None:
    with pytest.raises(ValueError):
        _store(tmp_path).get(bad)
