"""Contexts handed to handler providers and to handlers."""

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .models import Invocation

if TYPE_CHECKING:
    from .terminator import Terminator


@dataclass
class InitializationContext:
    """
    Facilities available while the handler is being constructed.

    Not retained by the runner after initialize; handlers that need any of
    these must capture them.
    """

    logger: logging.Logger
    loop: asyncio.AbstractEventLoop
    terminator: "Terminator"
    executor: Optional[Executor] = None


class InvocationLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every record with the request id of the current invocation."""

    def process(self, msg, kwargs):
        return f"[{self.extra['request_id']}] {msg}", kwargs


@dataclass
class RunContext:
    """Per-invocation context: the invocation, a scoped logger and a cancel signal."""

    invocation: Invocation
    logger: logging.LoggerAdapter
    timeout: float
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    @classmethod
    def for_invocation(
        cls, invocation: Invocation, logger: logging.Logger, timeout: float
    ) -> "RunContext":
        adapter = InvocationLoggerAdapter(logger, {"request_id": invocation.request_id})
        return cls(invocation=invocation, logger=adapter, timeout=timeout)

    @property
    def request_id(self) -> str:
        return self.invocation.request_id

    @property
    def is_cancelled(self) -> bool:
        """True once the deadline passed and the runner moved on."""
        return self.cancelled.is_set()

    def remaining_time(self) -> Optional[float]:
        return self.invocation.remaining_time()
