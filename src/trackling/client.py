"""
Public entry point composing a batcher and a dispatcher.

Messages are buffered until a batch fills up or :meth:`Client.flush` is
called. There is no background flushing: every request happens inside a
``send``, ``flush`` or ``close`` call, one at a time per client.
"""

from __future__ import annotations

import asyncio
import typing as t
from collections import deque

import structlog
from pydantic import SecretStr

from trackling._version import __version__
from trackling.batcher import MAX_BATCH_BYTES, MAX_BATCH_SIZE, MAX_MESSAGE_BYTES, Batcher
from trackling.dispatcher import DEFAULT_HOST, Dispatcher, DispatchOutcome, DispatchStatus
from trackling.exceptions import ClientError, InvalidMessage
from trackling.models import Batch, BaseMessage, JsonMap, Message
from trackling.transport import DEFAULT_TIMEOUT_SECONDS, HttpxTransport, Transport
from trackling.utils.logging import logging_context

if t.TYPE_CHECKING:
    from trackling.config import ClientConfig

log = structlog.get_logger(__name__)

LIBRARY_CONTEXT: JsonMap = {"library": {"name": "trackling", "version": __version__}}
MAX_INDETERMINATE_OUTCOMES = 100


class Client:
    """
    Buffer analytics messages and ship them to the collection API in batches.

    Usage:
        async with Client("your-write-key") as client:
            await client.send(Track(user_id="u1", event="Signed Up"))
            outcome = await client.flush()

    Parameters
    ----------
    write_key : str | SecretStr | None
        Source write key. Required unless ``dispatcher`` is given.
    host : str, optional
        API base URL.
    max_batch_size : int, optional
        Maximum number of messages per batch.
    max_batch_bytes : int, optional
        Maximum encoded size of a batch, in bytes.
    max_message_bytes : int, optional
        Maximum encoded size of a single message, in bytes.
    context : dict[str, typing.Any] | None, optional
        Batch-level context. Library metadata is added under ``library``
        unless already present.
    integrations : dict[str, typing.Any] | None, optional
        Batch-level destination toggles.
    transport : Transport | None, optional
        HTTP capability. An :class:`HttpxTransport` owned by the client is
        created when omitted.
    timeout : float, optional
        Timeout in seconds for the owned transport.
    dispatcher : Dispatcher | None, optional
        Existing dispatcher to share between clients. Mutually exclusive with
        ``write_key``, ``host`` and ``transport``.
    """

    def __init__(
        self,
        write_key: str | SecretStr | None = None,
        *,
        host: str = DEFAULT_HOST,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_batch_bytes: int = MAX_BATCH_BYTES,
        max_message_bytes: int = MAX_MESSAGE_BYTES,
        context: JsonMap | None = None,
        integrations: JsonMap | None = None,
        transport: Transport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self._owned_transport: HttpxTransport | None = None
        if dispatcher is None:
            if write_key is None:
                raise ValueError("write_key is required when no dispatcher is given")
            if transport is None:
                transport = self._owned_transport = HttpxTransport(timeout=timeout)
            dispatcher = Dispatcher(write_key=write_key, transport=transport, host=host)
        elif write_key is not None or transport is not None or host != DEFAULT_HOST:
            raise ValueError("Pass either a dispatcher or write_key/host/transport, not both")

        self._dispatcher = dispatcher
        self._batcher = Batcher(
            max_batch_size=max_batch_size,
            max_batch_bytes=max_batch_bytes,
            max_message_bytes=max_message_bytes,
            context={**LIBRARY_CONTEXT, **(context or {})},
            integrations=integrations,
        )
        self._lock = asyncio.Lock()
        self._indeterminate: deque[DispatchOutcome] = deque(maxlen=MAX_INDETERMINATE_OUTCOMES)
        self._closed = False

        log.debug(
            event="Initialized Client",
            host=dispatcher.host,
            max_batch_size=max_batch_size,
            max_batch_bytes=max_batch_bytes,
            max_message_bytes=max_message_bytes,
        )

    @classmethod
    def from_config(cls, config: ClientConfig, *, transport: Transport | None = None) -> Client:
        """
        Build a client from a :class:`~trackling.config.ClientConfig`.

        Parameters
        ----------
        config : ClientConfig
            Validated settings.
        transport : Transport | None, optional
            HTTP capability overriding the default one.

        Returns
        -------
        Client
            Configured client.
        """
        return cls(
            config.write_key,
            host=config.host,
            max_batch_size=config.max_batch_size,
            max_batch_bytes=config.max_batch_bytes,
            max_message_bytes=config.max_message_bytes,
            transport=transport,
            timeout=config.timeout,
        )

    def __len__(self) -> int:
        return len(self._batcher)

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def batcher(self) -> Batcher:
        return self._batcher

    async def send(self, message: Message) -> DispatchOutcome | None:
        """
        Buffer a message, dispatching the previous batch if it had to be emitted.

        Parameters
        ----------
        message : Message
            Message to send.

        Returns
        -------
        DispatchOutcome | None
            Outcome of the batch emitted to make room, or ``None`` when the
            message was only buffered.

        Raises
        ------
        InvalidMessage
            If ``message`` is not a message or cannot be encoded.
        MessageTooLarge
            If the message alone exceeds a byte ceiling.
        """
        if not isinstance(message, BaseMessage):
            raise InvalidMessage(f"Expected a message, got {type(message).__name__}")
        async with self._lock:
            self._ensure_open()
            batch = self._batcher.add(message)
            if batch is None:
                return None
            return await self._dispatch(batch=batch)

    async def flush(self) -> DispatchOutcome | None:
        """
        Dispatch every buffered message now.

        Returns
        -------
        DispatchOutcome | None
            Outcome of the dispatched batch, or ``None`` when nothing was
            buffered and no request was made.
        """
        async with self._lock:
            self._ensure_open()
            return await self._flush_locked()

    async def close(self) -> DispatchOutcome | None:
        """
        Flush pending messages and release the owned transport.

        Returns
        -------
        DispatchOutcome | None
            Outcome of the final flush, if anything was buffered.
        """
        async with self._lock:
            if self._closed:
                return None
            try:
                outcome = await self._flush_locked()
            finally:
                self._closed = True
                if self._owned_transport is not None:
                    await self._owned_transport.aclose()
        log.debug(event="Client closed")
        return outcome

    def take_indeterminate(self) -> list[DispatchOutcome]:
        """
        Return and forget the outcomes of dispatches cancelled in flight.

        Returns
        -------
        list[DispatchOutcome]
            ``INDETERMINATE`` outcomes, oldest first. Their batches may or
            may not have reached the service. Only the latest
            ``MAX_INDETERMINATE_OUTCOMES`` are kept between calls.
        """
        outcomes = list(self._indeterminate)
        self._indeterminate.clear()
        return outcomes

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: t.Any,
    ) -> None:
        await self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientError("Client is closed")

    async def _flush_locked(self) -> DispatchOutcome | None:
        batch = self._batcher.drain()
        if batch.is_empty:
            log.debug(event="Flush skipped, nothing buffered")
            return None
        return await self._dispatch(batch=batch)

    async def _dispatch(self, *, batch: Batch) -> DispatchOutcome:
        with logging_context(batch_id=batch.batch_id):
            try:
                return await self._dispatcher.send(batch)
            except asyncio.CancelledError:
                outcome = DispatchOutcome(
                    status=DispatchStatus.INDETERMINATE,
                    batch=batch,
                    reason="dispatch cancelled before the service answered",
                )
                if len(self._indeterminate) == self._indeterminate.maxlen:
                    log.warning(
                        event="Dropping oldest indeterminate outcome",
                        batch_id=self._indeterminate[0].batch.batch_id,
                    )
                self._indeterminate.append(outcome)
                log.warning(
                    event="Batch dispatch cancelled in flight",
                    batch_id=batch.batch_id,
                    message_count=len(batch),
                )
                raise
