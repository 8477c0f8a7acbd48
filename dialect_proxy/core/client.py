"""The single fetch-and-stream call to an upstream provider.

Retries, proxies and TLS tuning are left to httpx defaults. The read
timeout is disabled for streams, so a hung upstream holds the session open
until the transport gives up or the caller disconnects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator

import httpx

from .backend import DEFAULT_TIMEOUT, Backend
from .exceptions import UpstreamHTTPError

logger = logging.getLogger("dialect-proxy")

# URL prefix -> transport, handed to httpx as ``mounts`` (in-process upstreams)
_MOUNTED_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def mount_upstream_transport(url_prefix: str, transport: httpx.AsyncBaseTransport) -> None:
    """Serve every request under ``url_prefix`` (e.g. ``http://upstream.local``) from a transport."""
    if not url_prefix:
        raise ValueError("url_prefix is required")
    _MOUNTED_TRANSPORTS[url_prefix.rstrip("/")] = transport
    logger.debug(f"Mounted upstream transport for {url_prefix}")


def clear_upstream_transports() -> None:
    _MOUNTED_TRANSPORTS.clear()


@dataclass
class UpstreamStream:
    """An open streaming response; ``aclose`` must be awaited when done."""

    response: httpx.Response
    client: httpx.AsyncClient
    _closed: bool = field(default=False, repr=False)

    @property
    def status_code(self) -> int:
        return self.response.status_code

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.response.aclose()
        await self.client.aclose()


async def open_upstream_stream(backend: Backend, body: bytes) -> UpstreamStream:
    """POST ``body`` to the backend's streaming endpoint.

    Returns:
        The open stream, positioned before the first byte of the body.

    Raises:
        UpstreamHTTPError: If the upstream answers with a status >= 400. The
            body text is read in full before raising.
        httpx.HTTPError: If the request cannot be sent.
    """
    url = backend.build_stream_url()
    timeout = backend.timeout or DEFAULT_TIMEOUT
    stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
    client = httpx.AsyncClient(
        timeout=stream_timeout,
        follow_redirects=True,
        mounts=dict(_MOUNTED_TRANSPORTS),
    )

    logger.info(f"[{backend.provider_label}] Requesting: {url}")
    try:
        request = client.build_request("POST", url, headers=backend.build_headers(), content=body)
        resp = await client.send(request, stream=True)
    except Exception as exc:
        logger.error(f"Failed to send streaming request to {url}: {exc} (type: {exc.__class__.__name__})")
        await client.aclose()
        raise

    stream = UpstreamStream(response=resp, client=client)

    if resp.status_code >= 400:
        data = await resp.aread()
        await stream.aclose()
        error_text = data.decode("utf-8", errors="replace")
        logger.warning(f"[{backend.provider_label}] Error: {resp.status_code} {error_text}")
        raise UpstreamHTTPError(backend.provider_label, resp.status_code, error_text, url=url)

    logger.debug(f"Streaming request to {url} successful, status {resp.status_code}")
    return stream
