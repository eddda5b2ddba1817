"""Root conftest for the certsync test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

# ---------------------------------------------------------------------------
# Key / certificate generation
# ---------------------------------------------------------------------------


def _name(cn: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def _key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def _build_cert(subject_key, cn, issuer_key, issuer_cn, not_before, not_after, *, ca=False):
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(_name(issuer_cn))
        .public_key(subject_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if not ca:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(cn)]),
            critical=False,
        )
    return builder.sign(issuer_key, hashes.SHA256())


def generate_pair(
    cn: str = "app.example.test",
    *,
    days: int = 30,
    expired: bool = False,
    with_chain: bool = False,
) -> tuple[bytes, bytes]:
    """Return ``(key_pem, cert_pem)`` for a fresh EC P-256 key."""
    now = datetime.now(UTC)
    if expired:
        not_before, not_after = now - timedelta(days=10), now - timedelta(days=1)
    else:
        not_before, not_after = now - timedelta(days=1), now + timedelta(days=days)

    key = ec.generate_private_key(ec.SECP256R1())
    if not with_chain:
        cert = _build_cert(key, cn, key, cn, not_before, not_after)
        return _key_pem(key), cert.public_bytes(serialization.Encoding.PEM)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_cert = _build_cert(
        ca_key, "Test Intermediate", ca_key, "Test Intermediate",
        now - timedelta(days=2), now + timedelta(days=365), ca=True,
    )
    leaf = _build_cert(key, cn, ca_key, "Test Intermediate", not_before, not_after)
    cert_pem = leaf.public_bytes(serialization.Encoding.PEM) + ca_cert.public_bytes(
        serialization.Encoding.PEM,
    )
    return _key_pem(key), cert_pem


@pytest.fixture(scope="session")
def pair() -> tuple[bytes, bytes]:
    """A valid self-signed key/cert pair."""
    return generate_pair()


@pytest.fixture(scope="session")
def other_pair() -> tuple[bytes, bytes]:
    """A second, unrelated valid pair."""
    return generate_pair("other.example.test")


@pytest.fixture(scope="session")
def expired_pair() -> tuple[bytes, bytes]:
    return generate_pair("old.example.test", expired=True)


@pytest.fixture(scope="session")
def chain_pair() -> tuple[bytes, bytes]:
    """A leaf signed by an intermediate; ``cert_pem`` holds both."""
    return generate_pair("chained.example.test", with_chain=True)


# ---------------------------------------------------------------------------
# Config data shared by multiple test modules
# ---------------------------------------------------------------------------

# 32 zero bytes, unpadded base64url.
TEST_AES_KEY = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"


@pytest.fixture()
def aes_key() -> str:
    return TEST_AES_KEY


@pytest.fixture()
def minimal_config_data(tmp_path: Path) -> dict:
    """Return a dict containing the minimum required config fields."""
    return {
        "remote": {
            "server_address": "https://certwarden.example.test",
            "key_name": "app-key",
            "key_api_key": "key-api-key",
            "cert_name": "app-cert",
            "cert_api_key": "cert-api-key",
        },
        "push": {"aes_key": TEST_AES_KEY},
        "storage": {"path": str(tmp_path / "certs")},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def settings(minimal_config_data: dict):
    """Typed settings built from *minimal_config_data*."""
    from certsync.config.settings import build_settings

    return build_settings(minimal_config_data)


# ---------------------------------------------------------------------------
# Config singleton cleanup, autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the CertSyncConfig singleton before and after every test."""
    from certsync.config.certsync_config import CertSyncConfig

    CertSyncConfig.reset()
    yield
    CertSyncConfig.reset()


@pytest.fixture(autouse=True)
def restore_certsync_logger():
    """Undo ``configure_logging`` so ``caplog`` keeps seeing records."""
    import logging

    yield
    logger = logging.getLogger("certsync")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
