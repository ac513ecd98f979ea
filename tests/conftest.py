"""Shared fixtures: a fake invoice decoder with known payment hashes."""

from __future__ import annotations

import hashlib

import pytest

from pillbox.bolt11 import InvoiceDecoder, InvoiceFields
from pillbox.exceptions import DecodeError

PREIMAGE = "ab" * 32
PAYMENT_HASH = hashlib.sha256(bytes.fromhex(PREIMAGE)).hexdigest()
INVOICE = "lnbc10u1pfakeinvoice"


class FakeDecoder(InvoiceDecoder):
    """Decoder that knows a fixed set of invoices."""

    def __init__(self, hashes: dict[str, str] | None = None):
        self.hashes = {INVOICE: PAYMENT_HASH} if hashes is None else hashes
        self.calls: list[str] = []

    def decode(self, invoice: str) -> InvoiceFields:
        self.calls.append(invoice)
        if invoice not in self.hashes:
            raise DecodeError(invoice, "unknown invoice")
        return InvoiceFields(payment_hash=self.hashes[invoice], amount_msat=1_000_000)


@pytest.fixture
def decoder() -> FakeDecoder:
    return FakeDecoder()
