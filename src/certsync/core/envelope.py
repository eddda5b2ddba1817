"""AES-256-GCM envelope used by the push protocol.

The wire form is ``base64url-nopad(nonce || ciphertext)`` where
``nonce`` is the 12-byte AES-GCM nonce and ``ciphertext`` includes the
16-byte authentication tag.  No associated data is used.

Usage::

    cipher = EnvelopeCipher.from_base64(settings.push.aes_key)
    token = cipher.seal(b'{"key_pem": "...", "cert_pem": "..."}')
    plaintext = cipher.open(token)
"""

from __future__ import annotations

import base64
import binascii
import os
import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from certsync.core.errors import ConfigError, CryptoError

AES_KEY_SIZE = 32

_RAW_URLSAFE_RE = re.compile(r"[A-Za-z0-9_-]*")


def b64url_decode(text: str) -> bytes:
    """Decode URL-safe base64 leniently, with or without ``=`` padding.

    Used for configured keys.  Push tokens go through
    :func:`b64url_decode_raw`.

    Raises :class:`ValueError` on characters outside the alphabet.
    """
    stripped = text.strip().rstrip("=")
    padded = stripped + "=" * (-len(stripped) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def b64url_decode_raw(text: str) -> bytes:
    """Decode raw URL-safe base64: no ``=`` padding, no ``+`` or ``/``.

    Raises :class:`ValueError` on anything else.
    """
    if not _RAW_URLSAFE_RE.fullmatch(text) or len(text) % 4 == 1:
        msg = "not raw URL-safe base64"
        raise ValueError(msg)
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def b64url_encode(data: bytes) -> str:
    """Encode *data* as unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_key() -> str:
    """Return a fresh random AES-256 key in unpadded base64url form."""
    return b64url_encode(secrets.token_bytes(AES_KEY_SIZE))


class EnvelopeCipher:
    """Seal and open push payloads with a shared AES-256 key.

    Parameters
    ----------
    key:
        Raw 32-byte AES key.

    """

    NONCE_SIZE = 12

    def __init__(self, key: bytes) -> None:
        if len(key) != AES_KEY_SIZE:
            msg = f"AES key must be {AES_KEY_SIZE} bytes long (got {len(key)})"
            raise ConfigError(msg)
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, text: str) -> EnvelopeCipher:
        """Build a cipher from an unpadded base64url key string."""
        try:
            key = b64url_decode(text)
        except (binascii.Error, ValueError) as exc:
            msg = "AES key is not valid base64url"
            raise ConfigError(msg) from exc
        return cls(key)

    def seal(self, plaintext: bytes) -> str:
        """Encrypt *plaintext* under a random nonce and return the wire token."""
        nonce = os.urandom(self.NONCE_SIZE)
        return b64url_encode(nonce + self._aead.encrypt(nonce, plaintext, None))

    def open(self, token: str) -> bytes:
        """Decode and decrypt a wire token.

        Every failure raises the same :class:`CryptoError` so callers
        cannot tell decoding problems from authentication problems.
        """
        try:
            raw = b64url_decode_raw(token)
        except (binascii.Error, ValueError) as exc:
            msg = "envelope is not valid base64url"
            raise CryptoError(msg) from exc

        if len(raw) <= self.NONCE_SIZE:
            msg = "envelope is too short"
            raise CryptoError(msg)

        nonce, ciphertext = raw[: self.NONCE_SIZE], raw[self.NONCE_SIZE :]
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            msg = "envelope failed authentication"
            raise CryptoError(msg) from exc
