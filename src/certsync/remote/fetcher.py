"""Download key and certificate PEM from the remote issuing service.

Endpoints (relative to ``remote.server_address + remote.api_base_path``)::

    GET /download/privatekeys/<key_name>     apiKey: <key_api_key>
    GET /download/certificates/<cert_name>   apiKey: <cert_api_key>

Both must answer ``200`` with a body containing at least one PEM block.
"""

from __future__ import annotations

import contextlib
import logging
import platform
import ssl
import urllib.error
import urllib.parse
import urllib.request
from typing import TYPE_CHECKING

from certsync.core.errors import RemoteFetchError
from certsync.tls.material import contains_pem_block

if TYPE_CHECKING:
    from certsync.config.settings import RemoteSettings

log = logging.getLogger(__name__)

KEYS_ENDPOINT = "/download/privatekeys"
CERTS_ENDPOINT = "/download/certificates"


def _user_agent() -> str:
    from certsync import __version__  # noqa: PLC0415

    return f"CertSyncClient/{__version__} ({platform.system().lower()}; {platform.machine()})"


class RemoteFetcher:
    """Authenticated PEM downloads over HTTPS.

    Parameters
    ----------
    settings:
        The ``remote`` configuration section.

    """

    def __init__(self, settings: RemoteSettings) -> None:
        self._settings = settings
        self._ssl_ctx: ssl.SSLContext | None = None
        self._user_agent = _user_agent()

    def _get_ssl_context(self) -> ssl.SSLContext:
        """Build (and cache) the client SSL context."""
        if self._ssl_ctx is not None:
            return self._ssl_ctx
        ctx = ssl.create_default_context()
        if self._settings.ca_cert_path:
            ctx.load_verify_locations(self._settings.ca_cert_path)
        self._ssl_ctx = ctx
        return ctx

    def _url(self, endpoint: str, name: str) -> str:
        return f"{self._settings.base_url}{endpoint}/{urllib.parse.quote(name, safe='')}"

    def fetch(self, url: str, api_key: str) -> bytes:
        """GET *url* with the ``apiKey`` header and return the PEM body.

        Raises
        ------
        RemoteFetchError
            On transport failure, a non-200 status, or a body without
            any PEM block.

        """
        req = urllib.request.Request(  # noqa: S310
            url,
            method="GET",
            headers={
                "apiKey": api_key,
                "User-Agent": self._user_agent,
                "Accept": "application/x-pem-file, */*",
            },
        )
        handler = urllib.request.HTTPSHandler(context=self._get_ssl_context())
        opener = urllib.request.build_opener(handler)

        try:
            with opener.open(req, timeout=self._settings.timeout_seconds) as resp:
                status = resp.status
                body = resp.read()
        except urllib.error.HTTPError as exc:
            with contextlib.suppress(Exception):
                exc.read()
            msg = f"error fetching pem from {url} (status: {exc.code})"
            raise RemoteFetchError(
                msg,
                status=exc.code,
                retryable=exc.code >= 500 or exc.code == 429,  # noqa: PLR2004
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            msg = f"failed to reach remote server at {url}: {exc}"
            raise RemoteFetchError(msg) from exc

        if status != 200:  # noqa: PLR2004
            msg = f"error fetching pem from {url} (status: {status})"
            raise RemoteFetchError(msg, status=status, retryable=status >= 500)  # noqa: PLR2004

        if not contains_pem_block(body):
            msg = f"error fetching pem from {url} (data from server was not valid pem data)"
            raise RemoteFetchError(msg, status=status, retryable=False)

        return body

    def fetch_key(self) -> bytes:
        s = self._settings
        return self.fetch(self._url(KEYS_ENDPOINT, s.key_name), s.key_api_key)

    def fetch_cert(self) -> bytes:
        s = self._settings
        return self.fetch(self._url(CERTS_ENDPOINT, s.cert_name), s.cert_api_key)

    def fetch_pair(self) -> tuple[bytes, bytes]:
        """Return ``(key_pem, cert_pem)`` from the remote service."""
        key_pem = self.fetch_key()
        cert_pem = self.fetch_cert()
        log.debug("Fetched key (%d bytes) and certificate (%d bytes)", len(key_pem), len(cert_pem))
        return key_pem, cert_pem
