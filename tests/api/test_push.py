"""Tests for the encrypted install endpoint (certsync.api.push)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from certsync.api.push import PushReceiver
from certsync.app.factory import create_app
from certsync.core.envelope import EnvelopeCipher, b64url_decode, b64url_encode
from certsync.core.types import JobKind
from certsync.tls.store import CertificateStore

INSTALL_URL = "/certwardenclient/api/v1/install"


@pytest.fixture
def cipher(aes_key) -> EnvelopeCipher:
    return EnvelopeCipher.from_base64(aes_key)


@pytest.fixture
def store() -> CertificateStore:
    return CertificateStore()


@pytest.fixture
def engine():
    eng = MagicMock()
    eng.reconcile.return_value = False
    return eng


@pytest.fixture
def scheduler():
    return MagicMock()


@pytest.fixture
def receiver(cipher, store, engine, scheduler) -> PushReceiver:
    return PushReceiver(cipher, store, engine, scheduler, spawn=lambda fn: fn())


@pytest.fixture
def client(settings, receiver):
    app = create_app(settings, receiver=receiver)
    app.config["TESTING"] = True
    return app.test_client()


def _body(cipher: EnvelopeCipher, inner: dict | bytes) -> bytes:
    plaintext = inner if isinstance(inner, bytes) else json.dumps(inner).encode()
    return json.dumps({"payload": cipher.seal(plaintext)}).encode()


def _pair_doc(pair) -> dict:
    return {"key_pem": pair[0].decode(), "cert_pem": pair[1].decode()}


# ---------------------------------------------------------------------------
# TestInstallEndpoint
# ---------------------------------------------------------------------------


class TestInstallEndpoint:
    def test_valid_push_installs_and_reconciles(self, client, cipher, store, engine, scheduler, pair):
        resp = client.post(INSTALL_URL, data=_body(cipher, _pair_doc(pair)))
        assert resp.status_code == 200
        assert resp.data == b""
        assert store.read() == pair
        engine.reconcile.assert_called_once_with(only_if_missing=True)
        scheduler.cancel_pending.assert_called_once()
        scheduler.schedule.assert_not_called()

    def test_trailing_slash_accepted(self, client, cipher, store, pair):
        resp = client.post(INSTALL_URL + "/", data=_body(cipher, _pair_doc(pair)))
        assert resp.status_code == 200
        assert store.read() == pair

    def test_stale_disk_schedules_write_job(self, client, cipher, engine, scheduler, pair):
        engine.reconcile.return_value = True
        resp = client.post(INSTALL_URL, data=_body(cipher, _pair_doc(pair)))
        assert resp.status_code == 200
        scheduler.schedule.assert_called_once_with(JobKind.WRITE_TO_DISK)

    def test_reconcile_error_schedules_write_job(self, client, cipher, engine, scheduler, pair):
        engine.reconcile.side_effect = RuntimeError("boom")
        resp = client.post(INSTALL_URL, data=_body(cipher, _pair_doc(pair)))
        assert resp.status_code == 200
        scheduler.schedule.assert_called_once_with(JobKind.WRITE_TO_DISK)

    def test_identical_push_is_accepted(self, client, cipher, store, pair):
        store.update(*pair)
        resp = client.post(INSTALL_URL, data=_body(cipher, _pair_doc(pair)))
        assert resp.status_code == 200
        assert store.read() == pair

    def test_tampered_ciphertext_is_unauthorized(self, client, cipher, store, engine, pair, other_pair):
        store.update(*other_pair)
        token = json.loads(_body(cipher, _pair_doc(pair)))["payload"]
        raw = bytearray(b64url_decode(token))
        raw[20] ^= 0x01
        resp = client.post(INSTALL_URL, data=json.dumps({"payload": b64url_encode(bytes(raw))}))
        assert resp.status_code == 401
        assert resp.data == b""
        assert store.read() == other_pair
        engine.reconcile.assert_not_called()

    def test_padded_payload_is_unauthorized(self, client, cipher, store, pair):
        token = json.loads(_body(cipher, _pair_doc(pair)))["payload"]
        resp = client.post(INSTALL_URL, data=json.dumps({"payload": token + "=="}))
        assert resp.status_code == 401
        assert store.read() is None

    def test_wrong_key_is_unauthorized(self, client, store, pair):
        other = EnvelopeCipher(b"\x07" * 32)
        resp = client.post(INSTALL_URL, data=_body(other, _pair_doc(pair)))
        assert resp.status_code == 401
        assert store.read() is None

    @pytest.mark.parametrize(
        "body",
        [b"not json", b"[]", b"{}", b'{"payload": 5}', b'{"payload": "!!!"}', b""],
    )
    def test_malformed_outer_body_is_unauthorized(self, client, body):
        assert client.post(INSTALL_URL, data=body).status_code == 401

    def test_inner_not_json_is_bad_request(self, client, cipher, store):
        resp = client.post(INSTALL_URL, data=_body(cipher, b"not json"))
        assert resp.status_code == 400
        assert store.read() is None

    @pytest.mark.parametrize(
        "inner",
        [[], {"key_pem": "x"}, {"cert_pem": "x"}, {"key_pem": 1, "cert_pem": 2}],
    )
    def test_inner_missing_fields_is_bad_request(self, client, cipher, inner):
        resp = client.post(INSTALL_URL, data=_body(cipher, json.dumps(inner).encode()))
        assert resp.status_code == 400

    def test_mismatched_pair_is_bad_request(self, client, cipher, store, engine, pair, other_pair):
        doc = {"key_pem": other_pair[0].decode(), "cert_pem": pair[1].decode()}
        resp = client.post(INSTALL_URL, data=_body(cipher, doc))
        assert resp.status_code == 400
        assert store.read() is None
        engine.reconcile.assert_not_called()

    def test_get_is_not_found(self, client):
        resp = client.get(INSTALL_URL)
        assert resp.status_code == 404
        assert resp.data == b""

    def test_unknown_path_is_not_found(self, client):
        assert client.post("/certwardenclient/api/v1/other", data=b"{}").status_code == 404
        assert client.post("/api/v1/install", data=b"{}").status_code == 404

    def test_oversized_body_is_unauthorized(self, client):
        resp = client.post(INSTALL_URL, data=b"x" * (65536 + 1))
        assert resp.status_code == 401

    def test_request_id_echoed(self, client, cipher, pair):
        resp = client.post(
            INSTALL_URL,
            data=_body(cipher, _pair_doc(pair)),
            headers={"X-Request-ID": "abc123"},
        )
        assert resp.headers["X-Request-ID"] == "abc123"


# ---------------------------------------------------------------------------
# TestPushReceiver
# ---------------------------------------------------------------------------


class TestPushReceiver:
    def test_default_spawn_runs_in_background(self, cipher, store, engine, scheduler, pair):
        spawned = []
        receiver = PushReceiver(cipher, store, engine, scheduler, spawn=spawned.append)
        status = receiver.receive(_body(cipher, _pair_doc(pair)), "10.0.0.1")
        assert status == 200
        assert spawned == [receiver.sync_disk]
        engine.reconcile.assert_not_called()
