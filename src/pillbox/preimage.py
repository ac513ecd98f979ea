"""Proof-of-payment checks: sha256(preimage) == invoice payment hash."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re

from pillbox.bolt11 import InvoiceDecoder, decode_invoice
from pillbox.exceptions import DecodeError, InvalidPreimageError

logger = logging.getLogger(__name__)

# bytes.fromhex() tolerates whitespace; a preimage must not.
_HEX_RE = re.compile(r"^(?:[0-9a-fA-F]{2})+$")


def is_hex_preimage(preimage: str) -> bool:
    """True if ``preimage`` is a non-empty, even-length hex string."""
    return bool(preimage) and _HEX_RE.match(preimage) is not None


def verify_payment_hash(payment_hash: str, preimage: str) -> bool:
    """
    Verify that a preimage matches a payment hash.

    Hex letter case is ignored on both sides. A preimage of unusual length
    is still hashed; it simply will not match.

    Args:
        payment_hash: Hex-encoded payment hash.
        preimage: Hex-encoded preimage.

    Returns:
        True if SHA256(preimage) == payment_hash.
    """
    if not payment_hash or not is_hex_preimage(preimage):
        return False
    computed = hashlib.sha256(bytes.fromhex(preimage)).hexdigest()
    return hmac.compare_digest(computed.encode(), payment_hash.strip().lower().encode())


def verify_preimage(
    invoice: str,
    preimage: str,
    decoder: InvoiceDecoder | None = None,
) -> bool:
    """
    Verify that ``preimage`` proves payment of ``invoice``.

    An undecodable invoice is not a valid proof, so it yields False rather
    than an exception.
    """
    try:
        fields = decode_invoice(invoice, decoder)
    except DecodeError:
        return False
    return verify_payment_hash(fields.payment_hash, preimage)


def ensure_valid_preimage(
    invoice: str,
    preimage: str,
    decoder: InvoiceDecoder | None = None,
) -> None:
    """Raise unless ``preimage`` proves payment of ``invoice``.

    Raises:
        DecodeError: If the invoice cannot be decoded.
        InvalidPreimageError: If the preimage is malformed or does not match.
    """
    if not preimage:
        raise InvalidPreimageError("preimage is empty")
    if not is_hex_preimage(preimage):
        raise InvalidPreimageError("preimage is not an even-length hex string")

    fields = decode_invoice(invoice, decoder)
    if not verify_payment_hash(fields.payment_hash, preimage):
        logger.warning(
            "Preimage rejected for payment hash %s", fields.payment_hash[:16]
        )
        raise InvalidPreimageError()
