"""Tests for preimage verification."""

from __future__ import annotations

import hashlib
import os

import pytest

from pillbox.exceptions import DecodeError, InvalidPreimageError
from pillbox.preimage import (
    ensure_valid_preimage,
    is_hex_preimage,
    verify_payment_hash,
    verify_preimage,
)

from conftest import INVOICE, PAYMENT_HASH, PREIMAGE, FakeDecoder


class TestVerifyPaymentHash:
    @pytest.mark.parametrize("raw", [b"\x00", b"test", os.urandom(32), os.urandom(77)])
    def test_sha256_of_bytes_matches(self, raw):
        assert verify_payment_hash(hashlib.sha256(raw).hexdigest(), raw.hex()) is True

    def test_known_vector(self):
        # sha256(b"test")
        payment_hash = "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"
        assert verify_payment_hash(payment_hash, "74657374") is True

    def test_mismatch(self):
        assert verify_payment_hash(PAYMENT_HASH, "cd" * 32) is False

    def test_hex_case_ignored(self):
        assert verify_payment_hash(PAYMENT_HASH, PREIMAGE.upper()) is True
        assert verify_payment_hash(PAYMENT_HASH.upper(), PREIMAGE) is True

    def test_wrong_length_preimage_hashed_not_rejected(self):
        short = "ab" * 16
        assert verify_payment_hash(hashlib.sha256(bytes.fromhex(short)).hexdigest(), short)

    @pytest.mark.parametrize(
        "preimage", ["", "abc", "zz" * 32, "ab cd", " " + "ab" * 32, "0x" + "ab" * 31]
    )
    def test_malformed_hex_is_false(self, preimage):
        assert verify_payment_hash(PAYMENT_HASH, preimage) is False

    def test_non_ascii_payment_hash_is_false(self):
        assert verify_payment_hash("é" * 64, PREIMAGE) is False

    def test_empty_payment_hash(self):
        assert verify_payment_hash("", PREIMAGE) is False


class TestIsHexPreimage:
    def test_valid(self):
        assert is_hex_preimage("00ff")
        assert is_hex_preimage("ABcd")

    def test_invalid(self):
        assert not is_hex_preimage("")
        assert not is_hex_preimage("0")
        assert not is_hex_preimage("0g")


class TestVerifyPreimage:
    def test_valid(self, decoder):
        assert verify_preimage(INVOICE, PREIMAGE, decoder) is True

    def test_case_insensitive(self, decoder):
        assert verify_preimage(INVOICE, PREIMAGE.upper(), decoder) == verify_preimage(
            INVOICE, PREIMAGE.lower(), decoder
        )

    def test_wrong_preimage(self, decoder):
        assert verify_preimage(INVOICE, "00" * 32, decoder) is False

    def test_undecodable_invoice_is_false(self, decoder):
        assert verify_preimage("lnbc1unknown", PREIMAGE, decoder) is False

    def test_odd_length_does_not_raise(self, decoder):
        assert verify_preimage(INVOICE, PREIMAGE[:-1], decoder) is False


class TestEnsureValidPreimage:
    def test_valid_passes(self, decoder):
        ensure_valid_preimage(INVOICE, PREIMAGE, decoder)

    def test_mismatch_raises(self, decoder):
        with pytest.raises(InvalidPreimageError, match="does not match"):
            ensure_valid_preimage(INVOICE, "00" * 32, decoder)

    def test_empty_raises_without_decoding(self):
        decoder = FakeDecoder()
        with pytest.raises(InvalidPreimageError, match="empty"):
            ensure_valid_preimage(INVOICE, "", decoder)
        assert decoder.calls == []

    def test_non_hex_raises(self, decoder):
        with pytest.raises(InvalidPreimageError, match="hex"):
            ensure_valid_preimage(INVOICE, "not-hex", decoder)

    def test_decode_error_surfaces(self, decoder):
        with pytest.raises(DecodeError):
            ensure_valid_preimage("lnbc1unknown", PREIMAGE, decoder)
