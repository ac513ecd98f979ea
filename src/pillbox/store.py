"""Credential storage backends and the validated save path."""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path

from pillbox.bolt11 import InvoiceDecoder
from pillbox.credentials import CredentialInput, CredentialRecord
from pillbox.exceptions import NotFoundError, PersistenceError, PillboxError
from pillbox.preimage import ensure_valid_preimage

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """Abstract base for credential stores.

    Stores assign ``id`` and ``created_at``; they do not re-validate
    records. Use ``save_credential`` to go through the invariant checks.
    """

    @abstractmethod
    def add(self, credential: CredentialInput) -> CredentialRecord:
        """Persist a credential.

        Raises:
            PersistenceError: If the record could not be written.
        """

    @abstractmethod
    def list(self) -> list[CredentialRecord]:
        """All stored credentials, oldest first."""

    @abstractmethod
    def get(self, credential_id: int) -> CredentialRecord:
        """Raises NotFoundError for unknown ids."""

    @abstractmethod
    def delete(self, credential_id: int) -> None:
        """Raises NotFoundError for unknown ids."""


class MemoryCredentialStore(CredentialStore):
    """Thread-safe in-process store. Ids are never reused."""

    def __init__(self) -> None:
        self._records: OrderedDict[int, CredentialRecord] = OrderedDict()
        self._next_id = 1
        self._lock = threading.Lock()

    def add(self, credential: CredentialInput) -> CredentialRecord:
        with self._lock:
            record = CredentialRecord.from_input(
                credential, id=self._next_id, created_at=datetime.now(timezone.utc)
            )
            self._records[record.id] = record
            self._next_id += 1
        return record

    def list(self) -> list[CredentialRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, credential_id: int) -> CredentialRecord:
        with self._lock:
            record = self._records.get(credential_id)
        if record is None:
            raise NotFoundError(credential_id)
        return record

    def delete(self, credential_id: int) -> None:
        with self._lock:
            if credential_id not in self._records:
                raise NotFoundError(credential_id)
            del self._records[credential_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JsonFileCredentialStore(CredentialStore):
    """Store credentials in a JSON file.

    File layout::

        {"next_id": 3, "credentials": [{"id": 1, ...}, {"id": 2, ...}]}

    The whole file is rewritten on every change (via a temp file and
    rename). The file is created with 0600 permissions since it holds
    preimages.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> tuple[int, list[CredentialRecord]]:
        if not self._path.exists():
            return 1, []
        try:
            data = json.loads(self._path.read_text())
            records = [CredentialRecord.from_dict(item) for item in data.get("credentials", [])]
            next_id = int(data.get("next_id", 1))
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, PillboxError) as e:
            raise PersistenceError(f"cannot read {self._path}: {e}") from e
        # Never hand out an id below one already on disk
        next_id = max([next_id] + [r.id + 1 for r in records])
        return next_id, records

    def _write(self, next_id: int, records: list[CredentialRecord]) -> None:
        payload = {
            "next_id": next_id,
            "credentials": [r.to_dict() for r in records],
        }
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2))
            tmp_path.chmod(0o600)
            tmp_path.replace(self._path)
        except OSError as e:
            raise PersistenceError(f"cannot write {self._path}: {e}") from e

    def add(self, credential: CredentialInput) -> CredentialRecord:
        with self._lock:
            next_id, records = self._read()
            record = CredentialRecord.from_input(
                credential, id=next_id, created_at=datetime.now(timezone.utc)
            )
            records.append(record)
            self._write(next_id + 1, records)
        logger.info("Stored credential %d (%s) in %s", record.id, record.label, self._path)
        return record

    def list(self) -> list[CredentialRecord]:
        with self._lock:
            _, records = self._read()
        return records

    def get(self, credential_id: int) -> CredentialRecord:
        for record in self.list():
            if record.id == credential_id:
                return record
        raise NotFoundError(credential_id)

    def delete(self, credential_id: int) -> None:
        with self._lock:
            next_id, records = self._read()
            remaining = [r for r in records if r.id != credential_id]
            if len(remaining) == len(records):
                raise NotFoundError(credential_id)
            self._write(next_id, remaining)
        logger.info("Deleted credential %d from %s", credential_id, self._path)


def validate_credential(
    credential: CredentialInput, decoder: InvoiceDecoder | None = None
) -> None:
    """Check a credential is acceptable for persistence.

    Credentials without an invoice were entered by hand and are trusted
    as-is; otherwise the preimage must hash to the invoice's payment hash.

    Raises:
        InvalidCredentialError: Empty macaroon.
        InvalidPreimageError: Empty, malformed or non-matching preimage.
        DecodeError: The invoice is not valid BOLT11.
    """
    credential.check_fields()
    if credential.invoice:
        ensure_valid_preimage(credential.invoice, credential.preimage, decoder)


def save_credential(
    store: CredentialStore,
    credential: CredentialInput,
    decoder: InvoiceDecoder | None = None,
) -> CredentialRecord:
    """Validate ``credential`` and add it to ``store``.

    Raises:
        InvalidCredentialError, DecodeError: See ``validate_credential``.
        PersistenceError: The store rejected the record.
    """
    validate_credential(credential, decoder)
    try:
        return store.add(credential)
    except PersistenceError:
        raise
    except Exception as e:
        raise PersistenceError(str(e) or type(e).__name__) from e
