"""
Authenticated dispatch of batches to the collection API.

One call to :meth:`Dispatcher.send` issues exactly one request and never
retries. Service and transport failures are returned as a
:class:`DispatchOutcome` instead of being raised.
"""

from __future__ import annotations

import base64
import re
import typing as t
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from urllib.parse import urlparse

import structlog
from pydantic import SecretStr

from trackling import codec
from trackling._version import __version__
from trackling.exceptions import (
    BatchRejected,
    DispatchFailed,
    DispatchIndeterminate,
    TransportError,
)
from trackling.models import Batch, Message
from trackling.transport import Transport, TransportResponse
from trackling.utils.logging import REDACTED

log = structlog.get_logger(__name__)

DEFAULT_HOST = "https://api.segment.io"
BATCH_PATH = "/v1/batch"
MESSAGE_PATHS: t.Mapping[str, str] = MappingProxyType(
    {
        "identify": "/v1/identify",
        "track": "/v1/track",
        "page": "/v1/page",
        "screen": "/v1/screen",
        "group": "/v1/group",
        "alias": "/v1/alias",
    }
)
# Client-side statuses the service uses for "try again later".
RETRYABLE_STATUS_CODES = frozenset({408, 429})


def normalize_host(*, host: str) -> str:
    """
    Normalize an API host into an absolute URL without trailing slash.

    Parameters
    ----------
    host : str
        Base URL or bare hostname.

    Returns
    -------
    str
        Absolute base URL, ``https`` when no scheme was given.
    """
    stripped = host.strip().rstrip("/")
    if not stripped:
        raise ValueError("API host cannot be empty")

    parsed = urlparse(url=stripped)
    if parsed.scheme:
        return stripped

    return f"https://{stripped}"


class DispatchStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TRANSPORT_FAILURE = "transport_failure"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class DispatchOutcome:
    """
    Result of dispatching one batch.

    Parameters
    ----------
    status : DispatchStatus
        How the dispatch ended.
    batch : Batch
        The dispatched batch, kept so callers can resend it.
    reason : str | None
        Decoded service error or transport error text.
    status_code : int | None
        HTTP status code when the service answered.
    """

    status: DispatchStatus
    batch: Batch
    reason: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.ACCEPTED

    @property
    def retryable(self) -> bool:
        """``True`` when resending the same batch may succeed."""
        return self.status in (DispatchStatus.TRANSPORT_FAILURE, DispatchStatus.INDETERMINATE)

    def raise_for_outcome(self) -> None:
        """
        Raise the exception matching a non-accepted outcome.

        Raises
        ------
        BatchRejected
            If the service refused the batch.
        DispatchFailed
            If the transport failed or the service errored.
        DispatchIndeterminate
            If the dispatch was cancelled in flight.
        """
        if self.status is DispatchStatus.REJECTED:
            raise BatchRejected(outcome=self)
        if self.status is DispatchStatus.TRANSPORT_FAILURE:
            raise DispatchFailed(outcome=self)
        if self.status is DispatchStatus.INDETERMINATE:
            raise DispatchIndeterminate(outcome=self)


class Dispatcher:
    """
    Send encoded batches to the collection API with write-key authentication.

    The credential and transport are fixed at construction, so a single
    dispatcher can be shared by several clients.

    Parameters
    ----------
    write_key : str | SecretStr
        Source write key, sent as the HTTP Basic username with an empty
        password.
    transport : Transport
        HTTP capability used to issue requests.
    host : str, optional
        API base URL.
    """

    def __init__(
        self,
        *,
        write_key: str | SecretStr,
        transport: Transport,
        host: str = DEFAULT_HOST,
    ) -> None:
        self._write_key = write_key if isinstance(write_key, SecretStr) else SecretStr(write_key)
        if not self._write_key.get_secret_value():
            raise ValueError("write_key cannot be empty")
        # the key only counts as leaked when it is not part of a longer token
        self._key_pattern = re.compile(
            rf"(?<![\w-]){re.escape(self._write_key.get_secret_value())}(?![\w-])"
        )
        self._transport = transport
        self._host = normalize_host(host=host)

        credentials = f"{self._write_key.get_secret_value()}:".encode(encoding="utf-8")
        self._headers: t.Mapping[str, str] = MappingProxyType(
            {
                "Authorization": f"Basic {base64.b64encode(credentials).decode(encoding='ascii')}",
                "Content-Type": "application/json",
                "User-Agent": f"trackling/{__version__}",
            }
        )

    def __repr__(self) -> str:
        return f"Dispatcher(host={self._host!r}, write_key={self._write_key!r})"

    @property
    def host(self) -> str:
        return self._host

    @property
    def transport(self) -> Transport:
        return self._transport

    async def send(self, batch: Batch) -> DispatchOutcome:
        """
        Dispatch a batch to the batch endpoint.

        Parameters
        ----------
        batch : Batch
            Non-empty batch to send.

        Returns
        -------
        DispatchOutcome
            Classified result of the single request.
        """
        if batch.is_empty:
            raise ValueError("Cannot dispatch an empty batch")
        document = codec.encode_batch(batch, sent_at=datetime.now(tz=timezone.utc))
        return await self._post(path=BATCH_PATH, body=codec.dumps(document), batch=batch)

    async def send_message(self, message: Message) -> DispatchOutcome:
        """
        Dispatch a single message to its dedicated endpoint.

        Parameters
        ----------
        message : Message
            Message to send, bypassing batching.

        Returns
        -------
        DispatchOutcome
            Classified result. Its batch holds the single message.
        """
        record = codec.encode_message(message)
        record["sentAt"] = codec.format_timestamp(value=datetime.now(tz=timezone.utc))
        return await self._post(
            path=MESSAGE_PATHS[message.type],
            body=codec.dumps(record),
            batch=Batch(messages=[message]),
        )

    async def _post(self, *, path: str, body: bytes, batch: Batch) -> DispatchOutcome:
        url = f"{self._host}{path}"
        log.info(
            event="Dispatching batch",
            batch_id=batch.batch_id,
            url=url,
            message_count=len(batch),
            bytes=len(body),
        )
        try:
            response = await self._transport.send(
                method="POST",
                url=url,
                headers=self._headers,
                body=body,
            )
        except (TransportError, OSError) as error:
            reason = self._redact(text=str(object=error) or type(error).__name__)
            log.warning(
                event="Batch dispatch failed in transport",
                batch_id=batch.batch_id,
                url=url,
                error=reason,
            )
            return DispatchOutcome(
                status=DispatchStatus.TRANSPORT_FAILURE,
                batch=batch,
                reason=reason,
            )
        return self._classify(response=response, batch=batch, url=url)

    def _classify(
        self,
        *,
        response: TransportResponse,
        batch: Batch,
        url: str,
    ) -> DispatchOutcome:
        status_code = response.status_code
        if 200 <= status_code < 300:
            log.info(
                event="Batch accepted",
                batch_id=batch.batch_id,
                status_code=status_code,
                message_count=len(batch),
            )
            return DispatchOutcome(
                status=DispatchStatus.ACCEPTED,
                batch=batch,
                status_code=status_code,
            )

        reason = self._redact(text=codec.decode_error(response.body))
        if status_code >= 500 or status_code in RETRYABLE_STATUS_CODES:
            status = DispatchStatus.TRANSPORT_FAILURE
        else:
            status = DispatchStatus.REJECTED
        log.warning(
            event="Batch not accepted",
            batch_id=batch.batch_id,
            url=url,
            status=status.value,
            status_code=status_code,
            reason=reason,
        )
        return DispatchOutcome(
            status=status,
            batch=batch,
            reason=reason,
            status_code=status_code,
        )

    def _redact(self, *, text: str) -> str:
        return self._key_pattern.sub(REDACTED, text)
