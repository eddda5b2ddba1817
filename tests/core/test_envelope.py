"""Unit tests for certsync.core.envelope: AES-256-GCM push envelope."""

from __future__ import annotations

import base64

import pytest

from certsync.core.envelope import (
    EnvelopeCipher,
    b64url_decode,
    b64url_decode_raw,
    b64url_encode,
    generate_key,
)
from certsync.core.errors import ConfigError, CryptoError

# ---------------------------------------------------------------------------
# TestBase64Url
# ---------------------------------------------------------------------------


class TestBase64Url:
    def test_encode_has_no_padding(self):
        assert b64url_encode(b"\x00") == "AA"

    def test_decode_accepts_missing_padding(self):
        assert b64url_decode("AA") == b"\x00"

    def test_decode_accepts_padding(self):
        assert b64url_decode("AA==") == b"\x00"

    def test_decode_uses_url_alphabet(self):
        assert b64url_decode("-_8") == base64.urlsafe_b64decode("-_8=")

    def test_raw_decode(self):
        assert b64url_decode_raw("-_8") == base64.urlsafe_b64decode("-_8=")
        assert b64url_decode_raw("") == b""

    @pytest.mark.parametrize("text", ["AA==", "+/8", "AA AA", "A"])
    def test_raw_decode_rejects(self, text):
        with pytest.raises(ValueError):
            b64url_decode_raw(text)


# ---------------------------------------------------------------------------
# TestEnvelopeCipher
# ---------------------------------------------------------------------------


class TestEnvelopeCipher:
    def test_generate_key_is_32_bytes(self):
        assert len(b64url_decode(generate_key())) == 32

    def test_seal_then_open(self):
        cipher = EnvelopeCipher.from_base64(generate_key())
        token = cipher.seal(b'{"key_pem": "k", "cert_pem": "c"}')
        assert cipher.open(token) == b'{"key_pem": "k", "cert_pem": "c"}'

    def test_each_seal_uses_a_fresh_nonce(self):
        cipher = EnvelopeCipher(b"\x01" * 32)
        assert cipher.seal(b"same") != cipher.seal(b"same")

    def test_open_rejects_padded_token(self):
        cipher = EnvelopeCipher(b"\x01" * 32)
        token = cipher.seal(b"hello!")
        padded = token + "=" * (-len(token) % 4)
        assert padded != token
        with pytest.raises(CryptoError):
            cipher.open(padded)

    def test_wrong_key_fails(self):
        token = EnvelopeCipher(b"\x01" * 32).seal(b"hello")
        with pytest.raises(CryptoError):
            EnvelopeCipher(b"\x02" * 32).open(token)

    def test_tampered_ciphertext_fails(self):
        cipher = EnvelopeCipher(b"\x01" * 32)
        raw = bytearray(b64url_decode(cipher.seal(b"hello")))
        raw[-1] ^= 0x01
        with pytest.raises(CryptoError):
            cipher.open(b64url_encode(bytes(raw)))

    def test_short_token_fails(self):
        cipher = EnvelopeCipher(b"\x01" * 32)
        with pytest.raises(CryptoError, match="too short"):
            cipher.open(b64url_encode(b"\x00" * 12))

    def test_invalid_base64_fails(self):
        cipher = EnvelopeCipher(b"\x01" * 32)
        with pytest.raises(CryptoError):
            cipher.open("not base64 !!")

    def test_key_length_enforced(self):
        with pytest.raises(ConfigError):
            EnvelopeCipher(b"\x01" * 16)

    def test_from_base64_rejects_garbage(self):
        with pytest.raises(ConfigError):
            EnvelopeCipher.from_base64("***")
