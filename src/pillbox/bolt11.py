"""BOLT11 invoice decoding.

Wraps the ``bolt11`` library behind a small adapter so the rest of pillbox
only ever sees ``InvoiceFields`` or ``DecodeError``.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from bolt11 import decode as decode_bolt11

from pillbox.exceptions import DecodeError

logger = logging.getLogger(__name__)

_PAYMENT_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class InvoiceFields:
    """The parts of a decoded invoice pillbox cares about."""

    payment_hash: str
    amount_msat: int | None = None
    description: str | None = None
    timestamp: int | None = None
    expiry: int | None = None
    currency: str | None = None

    @property
    def amount_sats(self) -> int | None:
        if self.amount_msat is None:
            return None
        return self.amount_msat // 1000


class InvoiceDecoder(ABC):
    """Abstract base for BOLT11 decoders."""

    @abstractmethod
    def decode(self, invoice: str) -> InvoiceFields:
        """Decode a BOLT11 invoice.

        Args:
            invoice: BOLT11-encoded Lightning invoice string.

        Returns:
            Decoded invoice fields with a lowercase hex payment hash.

        Raises:
            DecodeError: If the invoice is not a valid BOLT11 string.
        """


def _normalize_payment_hash(invoice: str, payment_hash: object) -> str:
    if isinstance(payment_hash, bytes):
        payment_hash = payment_hash.hex()
    if not isinstance(payment_hash, str):
        raise DecodeError(invoice, "invoice has no payment hash")
    payment_hash = payment_hash.lower()
    if not _PAYMENT_HASH_RE.match(payment_hash):
        raise DecodeError(invoice, "payment hash is not 32 bytes of hex")
    return payment_hash


class Bolt11Decoder(InvoiceDecoder):
    """Decode invoices with the ``bolt11`` package."""

    def decode(self, invoice: str) -> InvoiceFields:
        invoice = (invoice or "").strip()
        if not invoice:
            raise DecodeError(invoice, "empty invoice")

        try:
            decoded = decode_bolt11(invoice)
        except Exception as e:
            logger.warning("Failed to decode invoice %s...: %s", invoice[:16], e)
            raise DecodeError(invoice, str(e) or type(e).__name__) from e

        payment_hash = _normalize_payment_hash(invoice, getattr(decoded, "payment_hash", None))
        amount_msat = getattr(decoded, "amount_msat", None)

        return InvoiceFields(
            payment_hash=payment_hash,
            amount_msat=int(amount_msat) if amount_msat else None,
            description=getattr(decoded, "description", None),
            timestamp=getattr(decoded, "date", None),
            expiry=getattr(decoded, "expiry", None),
            currency=getattr(decoded, "currency", None),
        )


_default_decoder: InvoiceDecoder | None = None


def get_default_decoder() -> InvoiceDecoder:
    global _default_decoder
    if _default_decoder is None:
        _default_decoder = Bolt11Decoder()
    return _default_decoder


def decode_invoice(invoice: str, decoder: InvoiceDecoder | None = None) -> InvoiceFields:
    """Decode ``invoice`` with ``decoder`` (defaults to ``Bolt11Decoder``)."""
    return (decoder or get_default_decoder()).decode(invoice)
