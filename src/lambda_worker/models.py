"""
Data models exchanged between the control endpoint client, the runner and
handlers.
"""

import time
import traceback
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .errors import HandlerError


class Invocation(BaseModel):
    """
    One unit of work fetched from the control endpoint.

    The payload is opaque to the runtime; only the handler chain decodes it.
    """

    request_id: str = Field(min_length=1)
    payload: bytes = b""
    deadline_ms: Optional[int] = Field(
        default=None, description="Absolute deadline in milliseconds since the epoch"
    )
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def deadline(self) -> Optional[datetime]:
        if self.deadline_ms is None:
            return None
        return datetime.fromtimestamp(self.deadline_ms / 1000, tz=timezone.utc)

    @property
    def trace_id(self) -> Optional[str]:
        return self.metadata.get("trace-id")

    def remaining_time(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds left until the deadline (may be negative), None without one."""
        if self.deadline_ms is None:
            return None
        if now is None:
            now = time.time()
        return self.deadline_ms / 1000 - now


class FailureDescriptor(BaseModel):
    """Error body posted to the control endpoint for failed work."""

    error_type: str = Field(alias="errorType")
    error_message: str = Field(alias="errorMessage")
    stack_trace: Optional[List[str]] = Field(default=None, alias="stackTrace")

    model_config = {"frozen": True, "populate_by_name": True}

    @classmethod
    def from_exception(cls, error: BaseException) -> "FailureDescriptor":
        """
        Describe an exception for the control endpoint.

        HandlerError wraps user exceptions, so the user's exception type is
        reported instead of the wrapper's.
        """
        source = error
        if isinstance(error, HandlerError) and error.__cause__ is not None:
            source = error.__cause__

        stack = traceback.format_exception(type(source), source, source.__traceback__)
        return cls(
            error_type=type(source).__name__,
            error_message=str(source),
            stack_trace=[line.rstrip("\n") for line in stack] or None,
        )

    def to_wire(self) -> Dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


class InvocationResult(BaseModel):
    """Outcome of one invocation: a success payload or a failure descriptor."""

    request_id: str
    payload: Optional[bytes] = None
    failure: Optional[FailureDescriptor] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "InvocationResult":
        if (self.payload is None) == (self.failure is None):
            raise ValueError("exactly one of payload or failure must be set")
        return self

    @classmethod
    def success(cls, request_id: str, payload: bytes) -> "InvocationResult":
        return cls(request_id=request_id, payload=payload)

    @classmethod
    def failed(
        cls, request_id: str, failure: FailureDescriptor
    ) -> "InvocationResult":
        return cls(request_id=request_id, failure=failure)

    @property
    def is_success(self) -> bool:
        return self.failure is None
