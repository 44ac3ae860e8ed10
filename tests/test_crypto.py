"""
Tests for envelope encryption -- layout, round-trip and failure modes.
"""

from __future__ import annotations

import json
import struct

import pytest

from tmcloud import crypto
from tmcloud.errors import (
    InvalidPasswordOrCorruptData,
    MalformedEnvelope,
    UnsupportedEnvelopeVersion,
)


def _envelope(header: dict, body: bytes = b"\x00" * 44) -> bytes:
    raw = json.dumps(header, separators=(",", ":")).encode("utf-8")
    return struct.pack("<I", len(raw)) + raw + body


class TestEnvelopeLayout:
    """The binary layout must stay readable by other clients."""

    def test_header_fields_and_order(self):
        blob = crypto.encrypt(b"hello", "pw", timestamp=1700000000000)
        (length,) = struct.unpack_from("<I", blob, 0)
        header = json.loads(blob[4 : 4 + length])

        assert list(header) == [
            "version",
            "algorithm",
            "keyDerivation",
            "iterations",
            "saltSize",
            "ivSize",
            "timestamp",
        ]
        assert header["version"] == 1
        assert header["algorithm"] == "AES-GCM"
        assert header["keyDerivation"] == "PBKDF2"
        assert header["iterations"] == 100_000
        assert header["saltSize"] == 16
        assert header["ivSize"] == 12
        assert header["timestamp"] == 1700000000000

    def test_ciphertext_includes_tag(self):
        blob = crypto.encrypt(b"hello", "pw")
        header, salt, iv, ciphertext = crypto.parse_envelope(blob)
        assert len(salt) == 16
        assert len(iv) == 12
        assert len(ciphertext) == len(b"hello") + 16

    def test_fresh_salt_and_iv_each_call(self):
        first = crypto.parse_envelope(crypto.encrypt(b"same", "pw"))
        second = crypto.parse_envelope(crypto.encrypt(b"same", "pw"))
        assert first[1] != second[1]
        assert first[2] != second[2]

    def test_is_envelope(self):
        assert crypto.is_envelope(crypto.encrypt(b"x", "pw"))
        assert not crypto.is_envelope(b'{"data": {}}')


class TestRoundTrip:
    def test_decrypt_returns_plaintext(self):
        payload = json.dumps({"data": {"chats": {"a": 1}}}).encode("utf-8")
        assert crypto.decrypt(crypto.encrypt(payload, "s3cret"), "s3cret") == payload

    def test_empty_plaintext(self):
        assert crypto.decrypt(crypto.encrypt(b"", "pw"), "pw") == b""


class TestFailures:
    """Wrong password and tampering are reported identically."""

    def test_wrong_password(self):
        blob = crypto.encrypt(b"secret data", "right")
        with pytest.raises(InvalidPasswordOrCorruptData):
            crypto.decrypt(blob, "wrong")

    def test_flipped_ciphertext_byte(self):
        blob = bytearray(crypto.encrypt(b"secret data", "pw"))
        blob[-20] ^= 0x01
        with pytest.raises(InvalidPasswordOrCorruptData) as exc_info:
            crypto.decrypt(bytes(blob), "pw")
        assert "Invalid password or corrupted data" in str(exc_info.value)

    def test_flipped_tag_byte(self):
        blob = bytearray(crypto.encrypt(b"secret data", "pw"))
        blob[-1] ^= 0xFF
        with pytest.raises(InvalidPasswordOrCorruptData):
            crypto.decrypt(bytes(blob), "pw")

    def test_too_short_for_length_prefix(self):
        with pytest.raises(MalformedEnvelope):
            crypto.decrypt(b"\x01\x00", "pw")

    def test_header_length_beyond_blob(self):
        blob = struct.pack("<I", 10_000) + b"{}"
        with pytest.raises(MalformedEnvelope):
            crypto.decrypt(blob, "pw")

    def test_header_not_json(self):
        blob = struct.pack("<I", 5) + b"nope!" + b"\x00" * 44
        with pytest.raises(MalformedEnvelope):
            crypto.decrypt(blob, "pw")

    def test_missing_iv_region(self):
        header = {"version": 1, "saltSize": 16, "ivSize": 12, "iterations": 100000}
        with pytest.raises(MalformedEnvelope):
            crypto.parse_envelope(_envelope(header, body=b"\x00" * 20))

    def test_ciphertext_shorter_than_tag(self):
        header = {"version": 1, "saltSize": 16, "ivSize": 12, "iterations": 100000}
        with pytest.raises(MalformedEnvelope):
            crypto.parse_envelope(_envelope(header, body=b"\x00" * 30))

    def test_newer_version_rejected(self):
        header = {"version": 2, "saltSize": 16, "ivSize": 12, "iterations": 100000}
        with pytest.raises(UnsupportedEnvelopeVersion):
            crypto.decrypt(_envelope(header), "pw")

    def test_unsupported_version_is_malformed_envelope(self):
        assert issubclass(UnsupportedEnvelopeVersion, MalformedEnvelope)
