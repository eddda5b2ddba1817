"""Parsing and validation of key/certificate PEM material.

:func:`load_material` is the single entry point: it parses the private
key and the certificate chain, checks that the key belongs to the leaf
certificate, and returns an immutable :class:`CertificateMaterial`.
:func:`build_server_context` turns material into an
:class:`ssl.SSLContext` ready to be handed to a TLS handshake.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import re
import ssl
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from certsync.core.errors import InvalidKeyPairError

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([^\r\n-]+)-----\r?\n(.*?)-----END \1-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class CertificateMaterial:
    """A parsed, matching key/certificate pair.

    Attributes
    ----------
    key_pem:
        Private key PEM exactly as received.
    cert_pem:
        Certificate chain PEM exactly as received (leaf first).
    key:
        Parsed private key.
    leaf:
        Parsed end-entity certificate.
    chain:
        Remaining certificates from ``cert_pem`` in file order.

    """

    key_pem: bytes
    cert_pem: bytes
    key: PrivateKeyTypes
    leaf: x509.Certificate
    chain: tuple[x509.Certificate, ...]

    @property
    def not_after(self) -> datetime:
        return self.leaf.not_valid_after_utc

    @property
    def fingerprint(self) -> str:
        """SHA-256 hex digest of the leaf certificate's DER encoding."""
        der = self.leaf.public_bytes(serialization.Encoding.DER)
        return hashlib.sha256(der).hexdigest()

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) > self.not_after


def _pem_body_decodes(body: bytes) -> bool:
    # RFC 1421 headers ("Proc-Type: ...") precede the base64 payload.
    payload = b"".join(line.strip() for line in body.splitlines() if b":" not in line)
    try:
        base64.b64decode(payload, validate=True)
    except binascii.Error:
        return False
    return True


def contains_pem_block(data: bytes) -> bool:
    """Return True if *data* holds at least one well-formed PEM block.

    A block needs matching BEGIN/END labels and a body that decodes as
    strict base64.
    """
    return any(_pem_body_decodes(m.group(2)) for m in _PEM_BLOCK_RE.finditer(data))


def parse_private_key(key_pem: bytes) -> PrivateKeyTypes:
    """Parse a PKCS#1, SEC1 or PKCS#8 private key PEM."""
    try:
        return serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        msg = f"private key does not parse: {exc}"
        raise InvalidKeyPairError(msg) from exc


def parse_certificates(cert_pem: bytes) -> list[x509.Certificate]:
    """Parse every certificate in *cert_pem*, leaf first."""
    try:
        certs = x509.load_pem_x509_certificates(cert_pem)
    except ValueError as exc:
        msg = f"certificate chain does not parse: {exc}"
        raise InvalidKeyPairError(msg) from exc
    if not certs:
        msg = "certificate chain is empty"
        raise InvalidKeyPairError(msg)
    return certs


def parse_leaf(cert_pem: bytes) -> x509.Certificate | None:
    """Return the first certificate in *cert_pem*, or None if it does not parse."""
    try:
        return parse_certificates(cert_pem)[0]
    except InvalidKeyPairError:
        return None


def _public_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def load_material(key_pem: bytes, cert_pem: bytes) -> CertificateMaterial:
    """Parse and cross-check a key/certificate pair.

    Raises
    ------
    InvalidKeyPairError
        If either blob does not parse or the key does not correspond
        to the leaf certificate.

    """
    key = parse_private_key(key_pem)
    certs = parse_certificates(cert_pem)
    leaf = certs[0]

    if _public_der(key.public_key()) != _public_der(leaf.public_key()):
        msg = "private key does not match the leaf certificate"
        raise InvalidKeyPairError(msg)

    return CertificateMaterial(
        key_pem=bytes(key_pem),
        cert_pem=bytes(cert_pem),
        key=key,
        leaf=leaf,
        chain=tuple(certs[1:]),
    )


def build_server_context(material: CertificateMaterial) -> ssl.SSLContext:
    """Return a server-side :class:`ssl.SSLContext` loaded with *material*.

    :mod:`ssl` only loads key material from files, so the PEM is written
    to a private temporary directory that is removed before returning.
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2

    with tempfile.TemporaryDirectory(prefix="certsync-") as tmp:
        cert_path = Path(tmp) / "cert.pem"
        key_path = Path(tmp) / "key.pem"
        cert_path.write_bytes(material.cert_pem)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(material.key_pem)
        try:
            ctx.load_cert_chain(str(cert_path), str(key_path))
        except ssl.SSLError as exc:
            msg = f"TLS layer rejected key/certificate pair: {exc}"
            raise InvalidKeyPairError(msg) from exc

    return ctx
