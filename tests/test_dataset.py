"""
Tests for the local dataset and backup validation.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tmcloud import dataset as ds
from tmcloud.errors import InvalidDataStructure

from conftest import sample_data


class TestJsonFileDataset:
    def test_missing_file_reads_empty_collections(self, tmp_path: Path):
        data = ds.JsonFileDataset(tmp_path / "none.json").read()
        assert data == {"chats": {}, "settings": {}, "favorites": [], "folders": []}

    def test_write_then_read(self, tmp_path: Path):
        target = ds.JsonFileDataset(tmp_path / "appdata.json")
        target.write(sample_data(3))
        assert target.read() == sample_data(3)

    def test_write_keeps_collections_not_supplied(self, dataset: ds.JsonFileDataset):
        dataset.write({"chats": {"only": {}}})
        data = dataset.read()
        assert data["chats"] == {"only": {}}
        assert data["settings"] == {"theme": "dark"}
        assert data["folders"] == [{"id": "f1", "name": "Work"}]

    def test_mistyped_collection_reads_as_default(self, tmp_path: Path):
        path = tmp_path / "appdata.json"
        path.write_text(json.dumps({"chats": [], "settings": {"a": 1}}))
        data = ds.JsonFileDataset(path).read()
        assert data["chats"] == {}
        assert data["settings"] == {"a": 1}

    def test_write_leaves_no_temp_files(self, tmp_path: Path):
        target = ds.JsonFileDataset(tmp_path / "appdata.json")
        target.write(sample_data())
        assert [p.name for p in tmp_path.iterdir()] == ["appdata.json"]


class TestHelpers:
    def test_snapshot_adds_timestamp(self, dataset: ds.JsonFileDataset):
        data = ds.snapshot(dataset, 1234)
        assert data["timestamp"] == 1234
        assert len(data["chats"]) == 2

    def test_record_count(self):
        assert ds.record_count(sample_data(5)) == 5
        assert ds.record_count(None) == 0
        assert ds.record_count({"chats": "bad"}) == 0


class TestValidateBackup:
    def test_valid(self):
        payload = {"data": sample_data(), "timestamp": 1}
        assert ds.validate_backup(payload) is payload["data"]

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"timestamp": 1},
            {"data": "nope"},
            {"data": {"settings": {}}},
            {"data": {"chats": {}, "favorites": {"x": 1}}},
        ],
    )
    def test_invalid(self, payload):
        with pytest.raises(InvalidDataStructure):
            ds.validate_backup(payload)


class TestMalformedFile:
    def test_empty_array_reads_as_empty(self, tmp_path: Path):
        path = tmp_path / "appdata.json"
        path.write_text("[]")
        assert ds.JsonFileDataset(path).read()["chats"] == {}

    @pytest.mark.parametrize("content", ['[{"chats": {}}]', '"text"', "42"])
    def test_non_object_raises(self, tmp_path: Path, content: str):
        path = tmp_path / "appdata.json"
        path.write_text(content)
        with pytest.raises(InvalidDataStructure):
            ds.JsonFileDataset(path).read()

    def test_fingerprint_ignores_timestamp(self):
        first = dict(sample_data(), timestamp=1)
        second = dict(sample_data(), timestamp=2)
        assert ds.fingerprint(first) == ds.fingerprint(second)
        assert ds.fingerprint(first) != ds.fingerprint(sample_data(3))
        assert ds.fingerprint(None) is None
