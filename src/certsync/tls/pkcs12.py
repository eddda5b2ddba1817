"""PKCS#12 (PFX) encoder.

Two variants are produced:

* ``MODERN`` -- PBES2 with AES-256-CBC for key and certificate bags and
  an HMAC-SHA256 MAC.
* ``LEGACY`` -- PBE-SHA1-3DES bags and an HMAC-SHA1 MAC, for software
  that cannot read anything newer.

An empty password yields an unencrypted container.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import (
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from certsync.core.errors import Pkcs12Error
from certsync.core.types import Pkcs12Variant

if TYPE_CHECKING:
    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
    from cryptography.hazmat.primitives.serialization import (
        KeySerializationEncryption,
    )

    from certsync.tls.material import CertificateMaterial

log = logging.getLogger(__name__)

_MODERN_KDF_ROUNDS = 2048
_LEGACY_KDF_ROUNDS = 2048


def _encryption(variant: Pkcs12Variant, password: str) -> KeySerializationEncryption:
    if not password:
        return NoEncryption()

    builder = PrivateFormat.PKCS12.encryption_builder()
    if variant is Pkcs12Variant.MODERN:
        builder = (
            builder.kdf_rounds(_MODERN_KDF_ROUNDS)
            .key_cert_algorithm(pkcs12.PBES.PBESv2SHA256AndAES256CBC)
            .hmac_hash(hashes.SHA256())
        )
    else:
        builder = (
            builder.kdf_rounds(_LEGACY_KDF_ROUNDS)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())  # noqa: S303
        )
    return builder.build(password.encode("utf-8"))


def encode(
    variant: Pkcs12Variant,
    key: PrivateKeyTypes,
    cert: x509.Certificate,
    chain: list[x509.Certificate] | tuple[x509.Certificate, ...],
    password: str,
) -> bytes:
    """Serialise *key*, *cert* and *chain* into a PKCS#12 container.

    Parameters
    ----------
    variant:
        Which algorithm suite to use.
    key:
        Private key matching *cert*.
    cert:
        Leaf certificate.
    chain:
        Intermediate certificates, in order.  May be empty.
    password:
        Container password.  Empty means no encryption.

    Raises
    ------
    Pkcs12Error
        If the key type or password is rejected by the encoder.

    """
    try:
        return pkcs12.serialize_key_and_certificates(
            name=None,
            key=key,
            cert=cert,
            cas=list(chain) or None,
            encryption_algorithm=_encryption(variant, password),
        )
    except (ValueError, TypeError) as exc:
        msg = f"failed to encode {variant.value} PKCS#12: {exc}"
        raise Pkcs12Error(msg) from exc


def encode_material(
    variant: Pkcs12Variant,
    material: CertificateMaterial,
    password: str,
) -> bytes:
    """Convenience wrapper around :func:`encode` for stored material."""
    return encode(variant, material.key, material.leaf, material.chain, password)
