"""
Runtime configuration for lambda-worker.

All values are immutable once a configuration is built. ``from_env`` is the
only place that reads the process environment.
"""

import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_FETCH_RETRIES,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RUNTIME_API,
    RUNTIME_API_ENV,
)


class RetryPolicy(BaseModel):
    """Bounded exponential backoff applied to failed next-invocation fetches."""

    max_retries: int = Field(
        default=DEFAULT_FETCH_RETRIES,
        ge=0,
        description="Retries after the first failed fetch before giving up",
    )
    initial_backoff: float = Field(default=DEFAULT_INITIAL_BACKOFF, ge=0)
    max_backoff: float = Field(default=DEFAULT_MAX_BACKOFF, ge=0)
    multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, ge=1)

    model_config = {"frozen": True}

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class RuntimeConfiguration(BaseModel):
    """
    Immutable parameters for one worker run.

    Example:
        RuntimeConfiguration(address="127.0.0.1:9001", request_timeout=0.1)
    """

    address: str = Field(
        default=DEFAULT_RUNTIME_API, description="Control endpoint host:port"
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Seconds for report calls and for invocations without a deadline",
    )
    fetch_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description=(
            "Seconds for the next-invocation long poll. None waits forever "
            "on purpose: the endpoint holds the request open until work "
            "arrives, so only report calls carry request_timeout"
        ),
    )
    max_invocations: int = Field(
        default=0, ge=0, description="Stop after this many invocations, 0 is unbounded"
    )
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    model_config = {"frozen": True}

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        host, _, port = value.rpartition(":")
        if not host or not port.isdigit():
            raise ValueError(f"address must be host:port, got '{value}'")
        return value

    @property
    def host_and_port(self) -> Tuple[str, int]:
        host, _, port = self.address.rpartition(":")
        return host, int(port)

    @property
    def base_url(self) -> str:
        return f"http://{self.address}"

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "RuntimeConfiguration":
        """
        Build a configuration from environment variables.

        Unset variables fall back to the field defaults; malformed values raise
        pydantic's ValidationError.
        """
        env = os.environ if environ is None else environ

        values = {}
        if env.get(RUNTIME_API_ENV):
            values["address"] = env[RUNTIME_API_ENV]
        if env.get("LAMBDA_WORKER_REQUEST_TIMEOUT"):
            values["request_timeout"] = env["LAMBDA_WORKER_REQUEST_TIMEOUT"]
        if env.get("LAMBDA_WORKER_FETCH_TIMEOUT"):
            values["fetch_timeout"] = env["LAMBDA_WORKER_FETCH_TIMEOUT"]
        if env.get("LAMBDA_WORKER_MAX_INVOCATIONS"):
            values["max_invocations"] = env["LAMBDA_WORKER_MAX_INVOCATIONS"]

        retry = {}
        if env.get("LAMBDA_WORKER_FETCH_RETRIES"):
            retry["max_retries"] = env["LAMBDA_WORKER_FETCH_RETRIES"]
        if env.get("LAMBDA_WORKER_FETCH_BACKOFF"):
            retry["initial_backoff"] = env["LAMBDA_WORKER_FETCH_BACKOFF"]
        if retry:
            values["retry"] = retry

        return cls.model_validate(values)
