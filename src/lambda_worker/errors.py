"""
Error taxonomy for lambda-worker.

Invocation-scoped errors (InvocationError subclasses) are reported to the
control endpoint and the loop continues. Transport and protocol errors raised
while reporting, and fetch errors that outlive the retry policy, end the run.
"""

from typing import List, Optional, Tuple


class WorkerRuntimeError(Exception):
    """Base class for every error raised by lambda-worker."""


class TransportError(WorkerRuntimeError):
    """The control endpoint could not be reached or did not answer in time."""


EndpointUnavailable = TransportError


class MalformedResponse(WorkerRuntimeError):
    """The control endpoint answered, but not with the expected shape."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvocationError(WorkerRuntimeError):
    """Failure scoped to a single invocation."""


class DecodingError(InvocationError):
    """The invocation payload could not be decoded into the handler's input."""


class EncodingError(InvocationError):
    """The handler's output could not be encoded into a response payload."""


class HandlerError(InvocationError):
    """User handler code raised; the original exception is the __cause__."""


class DeadlineExceeded(InvocationError):
    """The handler did not finish before the invocation deadline."""

    def __init__(self, request_id: str, timeout: float):
        super().__init__(
            f"Invocation {request_id} did not complete within {timeout:.3f}s"
        )
        self.request_id = request_id
        self.timeout = timeout


class InitializationError(WorkerRuntimeError):
    """The handler provider failed; the process is expected to exit."""


class RuntimeStateError(WorkerRuntimeError):
    """An operation was attempted in a runner state that does not allow it."""


class AlreadyTerminating(WorkerRuntimeError):
    """A shutdown hook was registered after termination started."""


class AlreadyTerminated(AlreadyTerminating):
    """Termination already completed."""


class TerminationError(WorkerRuntimeError):
    """Aggregate of every shutdown hook failure, one entry per failing hook."""

    def __init__(self, failures: List[Tuple[str, BaseException]]):
        self.failures = list(failures)
        details = "; ".join(f"{name}: {error!r}" for name, error in self.failures)
        super().__init__(f"{len(self.failures)} shutdown hook(s) failed: {details}")

    @property
    def underlying(self) -> List[BaseException]:
        return [error for _, error in self.failures]
