"""Tests for the JSON-file local storage and local collections."""

import json

import pytest

from conftest import connection
from waterdesk.errors import FetchError, MutationError
from waterdesk.local_store import LocalResource, LocalStorage
from waterdesk.resources import CONNECTIONS, CONNECTIONS_STORAGE_KEY, DEFAULT_CONNECTIONS


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "nested" / "local_storage.json")


@pytest.fixture
def resource(storage):
    return LocalResource(storage, CONNECTIONS, seed=DEFAULT_CONNECTIONS)


class TestLocalStorage:
    def test_missing_file_reads_empty(self, storage):
        assert storage.get_item("anything") is None
        assert not storage.path.exists()

    def test_set_and_get(self, storage):
        storage.set_item("a", "1")
        storage.set_item("b", "2")
        storage.set_item("a", "3")
        assert storage.get_item("a") == "3"
        assert storage.get_item("b") == "2"

    def test_values_are_kept_as_strings_on_disk(self, storage):
        storage.set_item("k", json.dumps([1, 2]))
        assert json.loads(storage.path.read_text(encoding="utf-8")) == {"k": "[1, 2]"}

    def test_write_leaves_no_temp_files(self, storage):
        storage.set_item("k", "v")
        assert [p.name for p in storage.path.parent.iterdir()] == ["local_storage.json"]

    def test_corrupt_file_is_moved_aside_not_overwritten(self, storage):
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("{not json", encoding="utf-8")

        assert storage.get_item("k") is None
        storage.set_item("k", "v")

        corrupt = storage.path.with_name("local_storage.json.corrupt")
        assert corrupt.read_text(encoding="utf-8") == "{not json"
        assert json.loads(storage.path.read_text(encoding="utf-8")) == {"k": "v"}

    def test_non_object_file_is_moved_aside(self, storage):
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("[1, 2]", encoding="utf-8")
        assert storage.get_item("k") is None
        assert storage.path.with_name("local_storage.json.corrupt").exists()


class TestLocalResource:
    def test_first_list_seeds_defaults(self, resource, storage):
        records = resource.list()
        assert [r["ConnectionID"] for r in records] == ["C001", "C002", "C003"]
        assert json.loads(storage.get_item(CONNECTIONS_STORAGE_KEY)) == DEFAULT_CONNECTIONS

    def test_existing_empty_collection_is_not_reseeded(self, resource, storage):
        storage.set_item(CONNECTIONS_STORAGE_KEY, "[]")
        assert resource.list() == []

    def test_create_assigns_id_and_persists(self, resource, storage):
        record = dict(connection("ignored", "9"))
        del record["ConnectionID"]
        saved = resource.create(record)

        assert len(saved["ConnectionID"]) == 8
        reread = LocalResource(storage, CONNECTIONS).list()
        assert reread[-1] == saved

    def test_update_merges_fields(self, resource):
        updated = resource.update("C002", {"Status": "Inactive"})
        assert updated["Status"] == "Inactive"
        assert updated["MeterNumber"] == "MTR-1002"
        assert resource.list()[1] == updated

    def test_update_cannot_change_id(self, resource):
        updated = resource.update("C001", {"ConnectionID": "HIJACK"})
        assert updated["ConnectionID"] == "C001"

    def test_invalid_payload_is_rejected_with_details(self, resource):
        with pytest.raises(MutationError) as info:
            resource.create({"UserID": "1", "MeterNumber": "", "Status": "Active"})
        assert info.value.status_code == 400
        assert set(info.value.details) == {"ConnectionDate", "MeterNumber", "SourceID"}
        assert len(resource.list()) == 3

    def test_missing_record_is_404(self, resource):
        with pytest.raises(MutationError) as info:
            resource.delete("C999")
        assert info.value.status_code == 404
        with pytest.raises(MutationError):
            resource.update("C999", {"Status": "Active"})

    def test_delete(self, resource):
        resource.delete("C001")
        assert [r["ConnectionID"] for r in resource.list()] == ["C002", "C003"]

    def test_unreadable_collection_is_a_fetch_error(self, resource, storage):
        storage.set_item(CONNECTIONS_STORAGE_KEY, "{broken")
        with pytest.raises(FetchError):
            resource.list()
        storage.set_item(CONNECTIONS_STORAGE_KEY, json.dumps({"not": "a list"}))
        with pytest.raises(FetchError):
            resource.list()

    def test_writes_to_unreadable_collection_are_mutation_errors(self, resource, storage):
        storage.set_item(CONNECTIONS_STORAGE_KEY, "{broken")
        with pytest.raises(MutationError, match="unreadable"):
            resource.delete("C001")
        with pytest.raises(MutationError):
            resource.create(dict(connection("X", "9")))
        with pytest.raises(MutationError):
            resource.update("C001", {"Status": "Inactive"})
        assert storage.get_item(CONNECTIONS_STORAGE_KEY) == "{broken"

    def test_corrupt_file_is_kept_aside_before_reseeding(self, resource, storage):
        resource.delete("C001")
        storage.path.write_text("{truncated", encoding="utf-8")

        assert [r["ConnectionID"] for r in resource.list()] == ["C001", "C002", "C003"]
        kept = storage.path.with_name("local_storage.json.corrupt")
        assert kept.read_text(encoding="utf-8") == "{truncated"
