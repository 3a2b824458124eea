import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from study_core.domain.cheatsheet import CheatSheet
from study_core.domain.conversation import Message, Pack
from study_core.domain.exceptions import BusinessError
from study_core.infrastructure.storage.json_store import JsonPackStore


def _pack(pack_id, title="Derivatives", messages=None):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return Pack(
        id=pack_id,
        title=title,
        mode="Cheat Sheet",
        messages=messages or [Message(id="m1", role="user", text="derivatives")],
        created_at=now,
        updated_at=now,
    )


def test_json_store_save_and_list(cheat_sheet_payload):
    with tempfile.TemporaryDirectory() as d:
        store = JsonPackStore(root=Path(d) / ".storage")
        doc = CheatSheet.model_validate(cheat_sheet_payload)
        messages = [
            Message(id="m1", role="user", text="derivatives"),
            Message(id="m2", role="assistant", kind="structured", document=doc),
        ]
        store.save_pack(_pack("p1", messages=messages))
        store.save_pack(_pack("p2", title="Limits"))
        packs = store.list_packs()
        assert [p.id for p in packs] == ["p2", "p1"]
        loaded = store.get_pack("p1")
        assert loaded.messages == messages
        assert loaded.created_at == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_json_store_update_keeps_position():
    with tempfile.TemporaryDirectory() as d:
        store = JsonPackStore(root=Path(d))
        store.save_pack(_pack("p1"))
        store.save_pack(_pack("p2"))
        store.save_pack(_pack("p1", title="Renamed"))
        assert [(p.id, p.title) for p in store.list_packs()] == [("p2", "Derivatives"), ("p1", "Renamed")]


def test_json_store_delete_pack():
    with tempfile.TemporaryDirectory() as d:
        store = JsonPackStore(root=Path(d))
        store.save_pack(_pack("p1"))
        store.delete_pack("p1")
        assert store.list_packs() == []
        with pytest.raises(BusinessError):
            store.delete_pack("p1")
        with pytest.raises(BusinessError):
            store.get_pack("p1")


@pytest.mark.parametrize("content", ["{broken", '{"not": "a list"}', "42", '[1, "x", {"id": "p"}]'])
def test_json_store_malformed_data_reads_as_empty(content):
    with tempfile.TemporaryDirectory() as d:
        store = JsonPackStore(root=Path(d))
        store.path.write_text(content, encoding="utf-8")
        assert store.list_packs() == []


def test_json_store_skips_bad_records_but_keeps_good_ones():
    with tempfile.TemporaryDirectory() as d:
        store = JsonPackStore(root=Path(d))
        store.save_pack(_pack("p1"))
        raw = store.path.read_text(encoding="utf-8")
        store.path.write_text(raw[:-1] + ', {"id": "broken"}]', encoding="utf-8")
        assert [p.id for p in store.list_packs()] == ["p1"]


def test_json_store_failed_write_removes_temp_file(monkeypatch):
    def failing_replace(src, dst):
        raise OSError("disk full")

    with tempfile.TemporaryDirectory() as d:
        store = JsonPackStore(root=Path(d))
        store.save_pack(_pack("p1"))
        monkeypatch.setattr("study_core.infrastructure.storage.json_store.os.replace", failing_replace)
        with pytest.raises(BusinessError) as exc:
            store.save_pack(_pack("p2"))
        monkeypatch.undo()
        assert exc.value.code == "STORE_WRITE_ERROR"
        assert list(Path(d).glob("*.tmp")) == []
        assert [p.id for p in store.list_packs()] == ["p1"]
