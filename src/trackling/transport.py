"""
HTTP transport capability consumed by the dispatcher.

The dispatcher only needs ``send(method, url, headers, body)``. Any object
matching :class:`Transport` can be plugged in; :class:`HttpxTransport` is the
default, backed by a pooled ``httpx.AsyncClient``.
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass

import httpx
import structlog

from trackling.exceptions import TransportError

log = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class TransportResponse:
    """
    Status and raw body of an HTTP response.

    Parameters
    ----------
    status_code : int
        HTTP status code.
    body : bytes
        Raw response body.
    """

    status_code: int
    body: bytes = b""


class Transport(t.Protocol):
    """
    Minimal asynchronous HTTP capability.

    Implementations raise :class:`~trackling.exceptions.TransportError` when
    no response could be obtained (connection refused, DNS, timeout).
    """

    async def send(
        self,
        *,
        method: str,
        url: str,
        headers: t.Mapping[str, str],
        body: bytes,
    ) -> TransportResponse: ...


class HttpxTransport:
    """
    :class:`Transport` backed by ``httpx.AsyncClient``.

    Parameters
    ----------
    client : httpx.AsyncClient | None, optional
        Client to reuse. When omitted, one is created with ``timeout`` and
        closed by :meth:`aclose`.
    timeout : float, optional
        Request timeout in seconds for the owned client.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def send(
        self,
        *,
        method: str,
        url: str,
        headers: t.Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        try:
            response = await self._client.request(
                method=method,
                url=url,
                headers=dict(headers),
                content=body,
            )
        except httpx.HTTPError as error:
            log.debug(
                event="HTTP request failed",
                method=method,
                url=url,
                error_type=type(error).__name__,
                error=str(object=error),
            )
            raise TransportError(
                f"{type(error).__name__}: {error}" if str(object=error) else type(error).__name__
            ) from error

        log.debug(
            event="HTTP response received",
            method=method,
            url=url,
            status_code=response.status_code,
        )
        return TransportResponse(status_code=response.status_code, body=response.content)

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
