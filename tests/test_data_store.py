"""
Tests for snapshot validation, loading and versioning.
"""

import json

import pytest


class TestValidateSnapshot:
    def test_missing_sections_default_empty(self):
        from data_store import validate_snapshot
        snapshot = validate_snapshot({"ships": [{"ShipId": "a"}], "extra": 1})
        assert snapshot["ships"] == [{"ShipId": "a"}]
        assert snapshot["flights"] == []
        assert snapshot["systemNames"] == {}
        assert "extra" not in snapshot

    def test_root_must_be_object(self):
        from data_store import SnapshotError, validate_snapshot
        with pytest.raises(SnapshotError):
            validate_snapshot([1, 2])

    def test_wrong_section_shape(self):
        from data_store import SnapshotError, validate_snapshot
        with pytest.raises(SnapshotError, match="ships"):
            validate_snapshot({"ships": {"a": 1}})

    def test_snapshot_error_is_value_error(self):
        from data_store import SnapshotError
        assert issubclass(SnapshotError, ValueError)


class TestLoadSnapshotFile:
    def test_round_trip_from_disk(self, tmp_path, sample_snapshot):
        from data_store import load_snapshot_file
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(sample_snapshot), encoding="utf-8")
        assert load_snapshot_file(path)["ships"] == sample_snapshot["ships"]

    def test_missing_file(self, tmp_path):
        from data_store import SnapshotError, load_snapshot_file
        with pytest.raises(SnapshotError, match="not found"):
            load_snapshot_file(tmp_path / "absent.json")

    def test_bad_json(self, tmp_path):
        from data_store import SnapshotError, load_snapshot_file
        path = tmp_path / "bad.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(SnapshotError, match="Invalid JSON"):
            load_snapshot_file(path)


class TestSnapshotStore:
    def test_versions_bump_only_for_changed_sections(self, sample_snapshot):
        from data_store import SnapshotStore
        store = SnapshotStore()
        assert store.replace(sample_snapshot) == 1
        changed = dict(sample_snapshot, contracts=[])
        assert store.replace(changed) == 2
        _, _, section_versions = store.current()
        assert section_versions["contracts"] == 2
        assert section_versions["ships"] == 1
        assert section_versions["systemNames"] == 0

    def test_invalid_replace_keeps_previous(self, sample_snapshot):
        from data_store import SnapshotError, SnapshotStore
        store = SnapshotStore()
        store.replace(sample_snapshot)
        with pytest.raises(SnapshotError):
            store.replace("garbage")
        assert store.version == 1
        assert store.summary()["counts"]["ships"] == 3

    def test_clear_keeps_versions_monotonic(self, sample_snapshot):
        from data_store import SnapshotStore
        store = SnapshotStore()
        store.replace(sample_snapshot)
        store.clear()
        assert store.version == 2
        assert store.summary()["counts"]["ships"] == 0
        assert store.replace(sample_snapshot) == 3


class TestStartupLoad:
    def test_missing_file_is_not_an_error(self, tmp_path):
        from data_store import SnapshotStore, load_startup_snapshot
        store = SnapshotStore()
        assert load_startup_snapshot(store, tmp_path / "absent.json") is False
        assert store.version == 0

    def test_bad_file_logged(self, tmp_path, caplog):
        from data_store import SnapshotStore, load_startup_snapshot
        path = tmp_path / "snapshot.json"
        path.write_text("[]", encoding="utf-8")
        store = SnapshotStore()
        assert load_startup_snapshot(store, path) is False
        assert "Failed to load startup snapshot" in caplog.text

    def test_good_file_loaded(self, tmp_path, sample_snapshot):
        from data_store import SnapshotStore, load_startup_snapshot
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(sample_snapshot), encoding="utf-8")
        store = SnapshotStore()
        assert load_startup_snapshot(store, path) is True
        assert store.version == 1
