"""
Count- and size-bounded message buffer.

The batcher never performs I/O. When a message would overflow the current
buffer, :meth:`Batcher.add` hands back the full buffer as a :class:`Batch`
and keeps the new message as the first entry of the next one.
"""

from __future__ import annotations

import copy

import structlog

from trackling import codec
from trackling.exceptions import MessageTooLarge
from trackling.models import Batch, JsonMap, Message

log = structlog.get_logger(__name__)

MAX_BATCH_SIZE = 100
MAX_BATCH_BYTES = 500 * 1024
MAX_MESSAGE_BYTES = 32 * 1024


class Batcher:
    """
    Accumulate messages into batches that respect the service ceilings.

    Ceilings are inclusive: a batch may hold exactly ``max_batch_size``
    messages and weigh exactly ``max_batch_bytes`` once encoded.

    Notes
    -----
    The batcher is not safe for concurrent mutation. The owning client
    serializes access to it.
    """

    def __init__(
        self,
        *,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_batch_bytes: int = MAX_BATCH_BYTES,
        max_message_bytes: int = MAX_MESSAGE_BYTES,
        context: JsonMap | None = None,
        integrations: JsonMap | None = None,
    ) -> None:
        """
        Initialize an empty batcher.

        Parameters
        ----------
        max_batch_size : int
            Maximum number of messages per batch.
        max_batch_bytes : int
            Maximum encoded size of a batch document, in bytes.
        max_message_bytes : int
            Maximum encoded size of a single record, in bytes.
        context : dict[str, typing.Any] | None
            Batch-level context attached to every drained batch.
        integrations : dict[str, typing.Any] | None
            Batch-level destination toggles attached to every drained batch.
        """
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if max_batch_bytes < 1 or max_message_bytes < 1:
            raise ValueError("byte ceilings must be positive")

        self._max_batch_size = max_batch_size
        self._max_batch_bytes = max_batch_bytes
        self._max_message_bytes = max_message_bytes
        # owned copies: the envelope size below is computed once
        self._context = copy.deepcopy(context)
        self._integrations = copy.deepcopy(integrations)

        self._buffer: list[Message] = []
        self._envelope_bytes = codec.envelope_size(
            context=self._context, integrations=self._integrations
        )
        self._byte_size = self._envelope_bytes

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def context(self) -> JsonMap | None:
        return copy.deepcopy(self._context)

    @property
    def integrations(self) -> JsonMap | None:
        return copy.deepcopy(self._integrations)

    @property
    def is_empty(self) -> bool:
        return not self._buffer

    @property
    def byte_size(self) -> int:
        """Exact encoded size of the pending batch document, in bytes."""
        return self._byte_size

    def _size_with(self, *, record_size: int, count: int, byte_size: int) -> int:
        # A comma separates the new record from the previous one.
        return byte_size + record_size + (1 if count else 0)

    def add(self, message: Message) -> Batch | None:
        """
        Buffer a message, emitting the current buffer first if it would overflow.

        Parameters
        ----------
        message : Message
            Message to buffer.

        Returns
        -------
        Batch | None
            The batch that had to be emitted to make room, or ``None`` when
            the message was simply buffered.

        Raises
        ------
        MessageTooLarge
            If the message alone exceeds a byte ceiling. The buffer is left
            unchanged.
        InvalidMessage
            If the message holds values that cannot be encoded as JSON.
        """
        record_size = codec.message_size(message)
        if record_size > self._max_message_bytes:
            log.warning(
                event="Message exceeds message ceiling",
                message_type=message.type,
                size=record_size,
                limit=self._max_message_bytes,
            )
            raise MessageTooLarge(size=record_size, limit=self._max_message_bytes)

        alone = self._size_with(record_size=record_size, count=0, byte_size=self._envelope_bytes)
        if alone > self._max_batch_bytes:
            log.warning(
                event="Message exceeds batch ceiling",
                message_type=message.type,
                size=alone,
                limit=self._max_batch_bytes,
            )
            raise MessageTooLarge(size=alone, limit=self._max_batch_bytes)

        emitted: Batch | None = None
        projected = self._size_with(
            record_size=record_size,
            count=len(self._buffer),
            byte_size=self._byte_size,
        )
        if len(self._buffer) + 1 > self._max_batch_size or projected > self._max_batch_bytes:
            log.debug(
                event="Batch ceiling reached",
                pending_count=len(self._buffer),
                byte_size=self._byte_size,
                projected_bytes=projected,
                max_batch_size=self._max_batch_size,
                max_batch_bytes=self._max_batch_bytes,
            )
            emitted = self.drain()
            projected = alone

        self._buffer.append(message)
        self._byte_size = projected
        log.debug(
            event="Buffered message",
            message_type=message.type,
            pending_count=len(self._buffer),
            byte_size=self._byte_size,
        )
        return emitted

    def drain(self) -> Batch:
        """
        Move every pending message into a batch and reset the buffer.

        Returns
        -------
        Batch
            The drained batch. It is empty when nothing was pending and must
            not be dispatched in that case.
        """
        batch = Batch(
            messages=self._buffer,
            context=copy.deepcopy(self._context),
            integrations=copy.deepcopy(self._integrations),
        )
        self._buffer = []
        self._byte_size = self._envelope_bytes
        log.debug(
            event="Drained batcher",
            batch_id=batch.batch_id,
            drained_count=len(batch),
        )
        return batch
