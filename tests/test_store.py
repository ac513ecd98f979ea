"""Tests for credential stores and the validated save path."""

from __future__ import annotations

import json
import stat

import pytest

from pillbox.credentials import CredentialInput, CredentialRecord, CredentialType
from pillbox.exceptions import (
    DecodeError,
    InvalidCredentialError,
    InvalidPreimageError,
    NotFoundError,
    PersistenceError,
)
from pillbox.store import (
    CredentialStore,
    JsonFileCredentialStore,
    MemoryCredentialStore,
    save_credential,
)

from conftest import INVOICE, PREIMAGE


def _input(**overrides) -> CredentialInput:
    fields = dict(
        macaroon="mac123",
        preimage=PREIMAGE,
        invoice=INVOICE,
        label="report",
        location="https://example.com/report.pdf",
    )
    fields.update(overrides)
    return CredentialInput(**fields)


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path) -> CredentialStore:
    if request.param == "memory":
        return MemoryCredentialStore()
    return JsonFileCredentialStore(tmp_path / "credentials.json")


class TestStores:
    def test_add_assigns_id_and_timestamp(self, store):
        first = store.add(_input())
        second = store.add(_input(label="other"))
        assert (first.id, second.id) == (1, 2)
        assert first.created_at.tzinfo is not None
        assert first.macaroon == "mac123"

    def test_list_in_insertion_order(self, store):
        store.add(_input(label="a"))
        store.add(_input(label="b"))
        assert [r.label for r in store.list()] == ["a", "b"]

    def test_get(self, store):
        record = store.add(_input())
        assert store.get(record.id) == record

    def test_get_missing(self, store):
        with pytest.raises(NotFoundError) as exc_info:
            store.get(42)
        assert exc_info.value.credential_id == 42

    def test_delete(self, store):
        record = store.add(_input())
        store.delete(record.id)
        assert store.list() == []
        with pytest.raises(NotFoundError):
            store.delete(record.id)

    def test_ids_not_reused_after_delete(self, store):
        store.add(_input())
        second = store.add(_input())
        store.delete(second.id)
        assert store.add(_input()).id == 3


class TestJsonFileStore:
    def test_survives_reload(self, tmp_path):
        path = tmp_path / "credentials.json"
        record = JsonFileCredentialStore(path).add(_input(type=CredentialType.GRAPHQL))

        reloaded = JsonFileCredentialStore(path)
        assert reloaded.list() == [record]
        assert reloaded.add(_input()).id == 2

    def test_file_layout_and_permissions(self, tmp_path):
        path = tmp_path / "nested" / "credentials.json"
        JsonFileCredentialStore(path).add(_input())

        data = json.loads(path.read_text())
        assert data["next_id"] == 2
        assert data["credentials"][0]["preimage"] == PREIMAGE
        assert data["credentials"][0]["type"] == "file"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_missing_file_is_empty(self, tmp_path):
        assert JsonFileCredentialStore(tmp_path / "none.json").list() == []

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError, match="cannot read"):
            JsonFileCredentialStore(path).list()

    def test_invalid_record_in_file(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text(json.dumps({"next_id": 2, "credentials": [{"id": 1, "type": "video"}]}))
        with pytest.raises(PersistenceError):
            JsonFileCredentialStore(path).list()

    def test_next_id_never_below_existing(self, tmp_path):
        path = tmp_path / "credentials.json"
        store = JsonFileCredentialStore(path)
        record = store.add(_input())
        data = json.loads(path.read_text())
        data["next_id"] = 1
        path.write_text(json.dumps(data))
        assert store.add(_input()).id == record.id + 1


class FailingStore(MemoryCredentialStore):
    def add(self, credential: CredentialInput) -> CredentialRecord:
        raise OSError("disk full")


class TestSaveCredential:
    def test_valid_credential_saved(self, decoder):
        store = MemoryCredentialStore()
        record = save_credential(store, _input(), decoder)
        assert store.list() == [record]
        assert decoder.calls == [INVOICE]

    def test_wrong_preimage_blocks_save(self, decoder):
        store = MemoryCredentialStore()
        with pytest.raises(InvalidPreimageError):
            save_credential(store, _input(preimage="00" * 32), decoder)
        assert len(store) == 0

    def test_undecodable_invoice_blocks_save(self, decoder):
        store = MemoryCredentialStore()
        with pytest.raises(DecodeError):
            save_credential(store, _input(invoice="lnbc1unknown"), decoder)
        assert len(store) == 0

    def test_manual_credential_skips_verification(self, decoder):
        store = MemoryCredentialStore()
        record = save_credential(store, _input(invoice="", preimage="00" * 32), decoder)
        assert record.invoice == ""
        assert decoder.calls == []

    def test_manual_credential_still_needs_macaroon(self, decoder):
        with pytest.raises(InvalidCredentialError, match="macaroon"):
            save_credential(MemoryCredentialStore(), _input(invoice="", macaroon=""), decoder)

    def test_manual_credential_still_needs_preimage(self, decoder):
        with pytest.raises(InvalidPreimageError):
            save_credential(MemoryCredentialStore(), _input(invoice="", preimage=""), decoder)

    def test_store_failure_becomes_persistence_error(self, decoder):
        with pytest.raises(PersistenceError, match="disk full"):
            save_credential(FailingStore(), _input(), decoder)
