"""
Trackling-specific exceptions.
"""

from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from trackling.dispatcher import DispatchOutcome


class ClientError(Exception):
    """
    Base class for every error raised by the library.
    """


class InvalidMessage(ClientError, ValueError):
    """
    A message violates a structural rule of the collection schema.

    Raised at construction time (missing identity, empty event name, missing
    group or previous id) or at encode time when a property value cannot be
    represented as JSON.
    """


class MessageTooLarge(ClientError):
    """
    A single encoded message does not fit the configured byte ceilings.

    Parameters
    ----------
    size : int
        Encoded size of the rejected message, in bytes.
    limit : int
        Ceiling that was exceeded, in bytes.
    """

    def __init__(self, *, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Message of {size} bytes exceeds the {limit} bytes ceiling")


class TransportError(ClientError):
    """
    The transport could not complete the request (connection, DNS, timeout).
    """


class DispatchError(ClientError):
    """
    Base class for errors built from a non-accepted dispatch outcome.

    Parameters
    ----------
    outcome : DispatchOutcome
        Outcome that produced the error. Its ``batch`` can be resent.
    """

    def __init__(self, *, outcome: DispatchOutcome) -> None:
        self.outcome = outcome
        super().__init__(self._describe(outcome=outcome))

    @staticmethod
    def _describe(*, outcome: DispatchOutcome) -> str:
        parts = [f"Batch {outcome.status.value}"]
        if outcome.status_code is not None:
            parts.append(f"status={outcome.status_code}")
        if outcome.reason:
            parts.append(f"reason={outcome.reason}")
        return " | ".join(parts)


class BatchRejected(DispatchError):
    """
    The collection service refused the batch; resending it cannot succeed.
    """

    @property
    def reason(self) -> str | None:
        return self.outcome.reason

    @property
    def status_code(self) -> int | None:
        return self.outcome.status_code


class DispatchFailed(DispatchError):
    """
    The batch was not delivered because of a transport or server failure.
    """


class DispatchIndeterminate(DispatchError):
    """
    The dispatch was cancelled in flight; delivery is unknown.
    """
