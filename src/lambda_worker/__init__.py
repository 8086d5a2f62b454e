"""
lambda-worker: pulls invocations from a control endpoint and runs a Python
handler for each, one at a time.
"""

from .adapters import (
    AsyncFunction,
    CodecHandler,
    Handler,
    RawHandler,
    SyncFunction,
    as_handler,
    async_handler,
    raw_handler,
    value_handler,
)
from .client import ControlEndpointClient
from .config import RetryPolicy, RuntimeConfiguration
from .context import InitializationContext, RunContext
from .errors import (
    AlreadyTerminated,
    AlreadyTerminating,
    DeadlineExceeded,
    DecodingError,
    EncodingError,
    EndpointUnavailable,
    HandlerError,
    InitializationError,
    InvocationError,
    MalformedResponse,
    RuntimeStateError,
    TerminationError,
    TransportError,
    WorkerRuntimeError,
)
from .models import FailureDescriptor, Invocation, InvocationResult
from .runner import Runner, RunnerState
from .serialization import BytesCodec, Codec, JsonCodec, PickleCodec
from .terminator import Terminator
from .worker import Worker, start

__version__ = "0.1.0"

__all__ = [
    "AlreadyTerminated",
    "AlreadyTerminating",
    "AsyncFunction",
    "BytesCodec",
    "Codec",
    "CodecHandler",
    "ControlEndpointClient",
    "DeadlineExceeded",
    "DecodingError",
    "EncodingError",
    "EndpointUnavailable",
    "FailureDescriptor",
    "Handler",
    "HandlerError",
    "InitializationContext",
    "InitializationError",
    "Invocation",
    "InvocationError",
    "InvocationResult",
    "JsonCodec",
    "MalformedResponse",
    "PickleCodec",
    "RawHandler",
    "RetryPolicy",
    "RunContext",
    "Runner",
    "RunnerState",
    "RuntimeConfiguration",
    "RuntimeStateError",
    "SyncFunction",
    "TerminationError",
    "Terminator",
    "TransportError",
    "Worker",
    "WorkerRuntimeError",
    "as_handler",
    "async_handler",
    "raw_handler",
    "start",
    "value_handler",
]
