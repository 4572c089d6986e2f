import asyncio
import json
import typing as t

import httpx

from trackling.transport import TransportResponse

INGEST_PATHS = frozenset(
    {
        "/v1/batch",
        "/v1/identify",
        "/v1/track",
        "/v1/page",
        "/v1/screen",
        "/v1/group",
        "/v1/alias",
    }
)


class FakeSegmentAPI:
    """
    Emulate the collection endpoints used in tests.

    Every request is recorded. Responses are taken from a FIFO script and
    default to ``200 {"success": true}`` once the script is exhausted.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._script: list[httpx.Response | tuple[type[httpx.HTTPError], str]] = []

    def queue_response(
        self,
        *,
        status_code: int,
        payload: dict[str, t.Any] | None = None,
        text: str | None = None,
    ) -> None:
        """
        Script the next response.

        Parameters
        ----------
        status_code : int
            HTTP status code.
        payload : dict[str, typing.Any] | None, optional
            JSON body.
        text : str | None, optional
            Raw text body, used when ``payload`` is omitted.
        """
        if payload is not None:
            self._script.append(httpx.Response(status_code=status_code, json=payload))
        else:
            self._script.append(httpx.Response(status_code=status_code, text=text or ""))

    def queue_error(self, *, error_cls: type[httpx.HTTPError], message: str) -> None:
        """
        Script a transport error for the next request.

        Parameters
        ----------
        error_cls : type[httpx.HTTPError]
            Transport error class, e.g. ``httpx.ReadTimeout``.
        message : str
            Error message.
        """
        self._script.append((error_cls, message))

    def documents(self) -> list[dict[str, t.Any]]:
        """Return the decoded JSON bodies of every recorded request."""
        return [json.loads(s=request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        """
        Record a request and answer from the script.

        Parameters
        ----------
        request : httpx.Request
            Incoming HTTP request.

        Returns
        -------
        httpx.Response
            Scripted or default response.
        """
        self.requests.append(request)
        if request.method != "POST" or request.url.path not in INGEST_PATHS:
            return httpx.Response(status_code=404, json={"error": "not found"})

        if self._script:
            scripted = self._script.pop(0)
            if isinstance(scripted, tuple):
                error_cls, message = scripted
                raise error_cls(message, request=request)
            return scripted
        return httpx.Response(status_code=200, json={"success": True})


def make_segment_transport(api: FakeSegmentAPI) -> httpx.MockTransport:
    """
    Create a mock collection API transport for tests.

    Parameters
    ----------
    api : FakeSegmentAPI
        Fake API answering the requests.

    Returns
    -------
    httpx.MockTransport
        Mock transport routing to ``api.handler``.
    """
    return httpx.MockTransport(handler=api.handler)


class BlockingTransport:
    """
    Transport that holds every request until released.

    Attributes
    ----------
    started : asyncio.Event
        Set once a request reaches the transport.
    release : asyncio.Event
        Requests complete with ``200`` once this is set.
    calls : list[bytes]
        Bodies of the requests received, in arrival order.
    max_in_flight : int
        Highest number of requests observed concurrently.
    """

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls: list[bytes] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(
        self,
        *,
        method: str,
        url: str,
        headers: t.Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        self.calls.append(body)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            await self.release.wait()
            await asyncio.sleep(delay=0)
        finally:
            self.in_flight -= 1
        return TransportResponse(status_code=200, body=b'{"success":true}')


class FailingTransport:
    """Transport whose every request fails with the given error."""

    def __init__(self, *, error: Exception) -> None:
        self.error = error
        self.calls = 0

    async def send(
        self,
        *,
        method: str,
        url: str,
        headers: t.Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        self.calls += 1
        raise self.error
