"""Client configuration."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from trackling.batcher import MAX_BATCH_BYTES, MAX_BATCH_SIZE, MAX_MESSAGE_BYTES
from trackling.dispatcher import DEFAULT_HOST, normalize_host
from trackling.transport import DEFAULT_TIMEOUT_SECONDS

DEFAULT_ENV_PREFIX = "SEGMENT_"
_OPTIONAL_ENV_FIELDS = (
    "host",
    "max_batch_size",
    "max_batch_bytes",
    "max_message_bytes",
    "timeout",
)


class ClientConfig(BaseModel):
    """
    Settings needed to build a :class:`~trackling.client.Client`.

    Parameters
    ----------
    write_key : SecretStr
        Source write key.
    host : str
        API base URL.
    max_batch_size : int
        Maximum number of messages per batch.
    max_batch_bytes : int
        Maximum encoded size of a batch, in bytes.
    max_message_bytes : int
        Maximum encoded size of a single message, in bytes.
    timeout : float
        HTTP timeout in seconds for the default transport.
    """

    model_config = ConfigDict(frozen=True)

    write_key: SecretStr
    host: str = DEFAULT_HOST
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, gt=0)
    max_batch_bytes: int = Field(default=MAX_BATCH_BYTES, gt=0)
    max_message_bytes: int = Field(default=MAX_MESSAGE_BYTES, gt=0)
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    @field_validator("write_key")
    @classmethod
    def _require_write_key(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("write_key cannot be empty")
        return value

    @field_validator("host")
    @classmethod
    def _normalize_host(cls, value: str) -> str:
        return normalize_host(host=value)

    @classmethod
    def from_env(
        cls,
        *,
        prefix: str = DEFAULT_ENV_PREFIX,
        dotenv: bool = True,
        dotenv_path: str | Path | None = None,
    ) -> ClientConfig:
        """
        Build a configuration from environment variables.

        Reads ``{prefix}WRITE_KEY`` (required), ``{prefix}HOST``,
        ``{prefix}MAX_BATCH_SIZE``, ``{prefix}MAX_BATCH_BYTES``,
        ``{prefix}MAX_MESSAGE_BYTES`` and ``{prefix}TIMEOUT``.

        Parameters
        ----------
        prefix : str, optional
            Variable name prefix.
        dotenv : bool, optional
            Load a ``.env`` file first. Variables already set win.
        dotenv_path : str | Path | None, optional
            Explicit ``.env`` location. Searched upward from the caller when
            omitted.

        Returns
        -------
        ClientConfig
            Validated configuration.
        """
        if dotenv:
            load_dotenv(dotenv_path=dotenv_path)

        key_var = f"{prefix}WRITE_KEY"
        write_key = os.getenv(key=key_var)
        if not write_key:
            raise ValueError(
                f"Write key not found. Set the {key_var} environment variable "
                "or pass write_key explicitly."
            )

        values: dict[str, str] = {"write_key": write_key}
        for field_name in _OPTIONAL_ENV_FIELDS:
            value = os.getenv(key=f"{prefix}{field_name.upper()}")
            if value:
                values[field_name] = value
        return cls.model_validate(values)
