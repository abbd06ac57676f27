from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from dynamic_mock.persistence import SnapshotError, SnapshotStore
from dynamic_mock.routes import RouteTable, build_definition


def _table() -> RouteTable:
    return RouteTable(
        [
            build_definition(path="/greet", response={"hi": "there"}, status=201),
            build_definition(path="items", method="post", response=[1, 2, 3], headers={"X-Mock": "yes"}),
            build_definition(path="/text", method="put", response="plain body", status="418"),
            build_definition(path="/null", response=None),
        ]
    )


def _observed(table: RouteTable) -> list[dict]:
    return sorted((d.as_serializable() for d in table.definitions()), key=lambda r: (r["method"], r["path"]))


def test_load_missing_file_returns_empty(tmp_path: Path) -> None:
    store = SnapshotStore(tmp_path / "absent.json")

    assert store.load() == []


def test_save_then_load_round_trips(tmp_path: Path) -> None:
    table = _table()
    store = SnapshotStore(tmp_path / "data.json")
    store.save(table.definitions())

    reloaded = RouteTable(SnapshotStore(tmp_path / "data.json").load())

    assert _observed(reloaded) == _observed(table)


def test_snapshot_is_a_json_array_of_records(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    SnapshotStore(target).save(_table().definitions())

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert isinstance(payload, list)
    assert payload[0] == {
        "path": "/greet",
        "method": "GET",
        "status": 201,
        "response": {"hi": "there"},
        "headers": {},
    }
    assert {tuple(sorted(item)) for item in payload} == {("headers", "method", "path", "response", "status")}


def test_save_creates_missing_directory(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "dir" / "data.json"
    SnapshotStore(target).save(_table().definitions())

    assert target.exists()


def test_load_normalizes_records(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text(
        json.dumps(
            [
                {"path": "raw", "method": "delete", "response": "gone"},
                {"response": {"root": True}},
                {"path": "/s", "status": "oops", "headers": None, "response": 1},
            ]
        ),
        encoding="utf-8",
    )

    loaded = {(d.method, d.path): d for d in SnapshotStore(target).load()}

    assert loaded[("DELETE", "/raw")].status == 200
    assert loaded[("GET", "/")].response == {"root": True}
    assert loaded[("GET", "/s")].status == 200
    assert loaded[("GET", "/s")].headers == {}


@pytest.mark.parametrize("content", ["{not json", '{"path": "/x"}', "", "\x00\x01", "[" * 200_000])
def test_load_corrupt_file_fails_open_with_warning(tmp_path: Path, content: str) -> None:
    target = tmp_path / "data.json"
    target.write_text(content, encoding="utf-8")

    with capture_logs() as logs:
        store = SnapshotStore(target)
        assert store.load() == []

    assert any(entry["event"] == "snapshot_load_failed" and entry["log_level"] == "warning" for entry in logs)


def test_load_skips_non_object_items(tmp_path: Path) -> None:
    target = tmp_path / "data.json"
    target.write_text(json.dumps([None, "x", {"path": "/ok", "response": "fine"}]), encoding="utf-8")

    with capture_logs() as logs:
        loaded = SnapshotStore(target).load()

    assert [d.path for d in loaded] == ["/ok"]
    assert sum(entry["event"] == "snapshot_item_skipped" for entry in logs) == 2


def test_failed_rename_keeps_previous_snapshot(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "data.json"
    store = SnapshotStore(target)
    store.save(_table().definitions())
    before = target.read_text(encoding="utf-8")

    def interrupted(src: object, dst: object) -> None:
        raise OSError("simulated crash before rename")

    monkeypatch.setattr(os, "replace", interrupted)
    with pytest.raises(SnapshotError):
        store.save([build_definition(path="/only", response="new")])

    assert target.read_text(encoding="utf-8") == before
    assert json.loads(before)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["data.json"]


def test_failed_temp_write_propagates(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = SnapshotStore(blocker / "data.json")

    with pytest.raises(SnapshotError):
        store.save(_table().definitions())
