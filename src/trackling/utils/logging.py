import logging
import typing as t
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager

import structlog

LOGGER_NAME = "trackling"
REDACTED = "**********"
SECRET_KEYS = frozenset({"write_key", "authorization"})


def redact_secrets(
    _logger: t.Any, _method_name: str, event_dict: MutableMapping[str, t.Any]
) -> MutableMapping[str, t.Any]:
    """Mask credential-bearing keys before an event is rendered."""
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def setup_logging(level: int | str = logging.INFO, *, json: bool = False) -> None:
    """
    Route trackling logs through structlog.

    Parameters
    ----------
    level : int | str, optional
        Minimum level for the ``trackling`` logger, as a number or a name
        such as ``"DEBUG"``.
    json : bool, optional
        Render one JSON object per line instead of the colored console format.
    """
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name!r}")
    logging.getLogger(LOGGER_NAME).setLevel(level)

    renderer: t.Any = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # batch_id bound per dispatch
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def logging_context(**fields: t.Any) -> Iterator[dict[str, t.Any]]:
    """
    Bind ``fields`` to every log line emitted inside the block.

    Keys already bound by an enclosing block keep their outer value, so a
    nested dispatch still logs under the batch that started it. Yields the
    context that is effectively in force.
    """
    outer = structlog.contextvars.get_contextvars()
    fresh = {key: value for key, value in fields.items() if key not in outer}
    if not fresh:
        yield outer
        return

    with structlog.contextvars.bound_contextvars(**fresh):
        yield {**outer, **fresh}
