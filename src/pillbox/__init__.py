"""pillbox — acquire, verify and reuse L402 credentials.

Fetch the 402 challenge of a payment-gated URL, check that the preimage you
got from paying its Lightning invoice really proves payment, store the
credential, and use it later to download files or query GraphQL APIs.

Usage:
    import pillbox

    store = pillbox.JsonFileCredentialStore(pillbox.load_settings().store_path)
    session = pillbox.AcquisitionSession("https://api.example.com/file", label="report")
    challenge = await session.fetch_challenge()
    # pay challenge.invoice with any wallet, then:
    session.submit_preimage("<hex preimage>")
    record = session.save(store)

    async with pillbox.AsyncL402Client() as client:
        path = await client.download_file(record)
"""

from pillbox.bolt11 import Bolt11Decoder, InvoiceDecoder, InvoiceFields, decode_invoice
from pillbox.challenge import L402Challenge, parse_challenge
from pillbox.client import AsyncL402Client
from pillbox.config import Settings, load_settings
from pillbox.credentials import (
    CredentialInput,
    CredentialRecord,
    CredentialType,
    RequestMethod,
    format_authorization,
)
from pillbox.exceptions import (
    DecodeError,
    InvalidCredentialError,
    InvalidPreimageError,
    InvalidStateError,
    MalformedChallengeError,
    NetworkError,
    NotFoundError,
    OperationPendingError,
    PersistenceError,
    PillboxError,
    UnexpectedStatusError,
)
from pillbox.preimage import ensure_valid_preimage, verify_payment_hash, verify_preimage
from pillbox.session import AcquisitionSession, AcquisitionState
from pillbox.store import (
    CredentialStore,
    JsonFileCredentialStore,
    MemoryCredentialStore,
    save_credential,
    validate_credential,
)

__version__ = "0.1.0"

__all__ = [
    # Challenge
    "L402Challenge",
    "parse_challenge",
    # Invoices
    "InvoiceDecoder",
    "Bolt11Decoder",
    "InvoiceFields",
    "decode_invoice",
    # Verification
    "verify_preimage",
    "verify_payment_hash",
    "ensure_valid_preimage",
    # Credentials
    "CredentialInput",
    "CredentialRecord",
    "CredentialType",
    "RequestMethod",
    "format_authorization",
    # Storage
    "CredentialStore",
    "MemoryCredentialStore",
    "JsonFileCredentialStore",
    "save_credential",
    "validate_credential",
    # Acquisition
    "AcquisitionSession",
    "AcquisitionState",
    # Client
    "AsyncL402Client",
    # Settings
    "Settings",
    "load_settings",
    # Exceptions
    "PillboxError",
    "NetworkError",
    "UnexpectedStatusError",
    "MalformedChallengeError",
    "DecodeError",
    "InvalidCredentialError",
    "InvalidPreimageError",
    "PersistenceError",
    "NotFoundError",
    "OperationPendingError",
    "InvalidStateError",
]
