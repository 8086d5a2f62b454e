"""
Invocation loop.

A Runner goes through two phases. ``initialize`` calls the handler provider
exactly once. ``run`` then repeats fetch, invoke and report, one invocation
at a time, until a stop is requested, the invocation budget is spent, or a
fatal error occurs:

    UNINITIALIZED -> INITIALIZING -> READY <-> INVOKING -> STOPPED
                          |                       |
                          +-------> FAILED <------+
"""

import asyncio
import inspect
import logging
import threading
from concurrent.futures import Executor
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .adapters import Handler, as_handler
from .client import ControlEndpointClient
from .config import RuntimeConfiguration
from .constants import NAMESPACE
from .context import InitializationContext, RunContext
from .errors import (
    DeadlineExceeded,
    EncodingError,
    HandlerError,
    InitializationError,
    RuntimeStateError,
    TransportError,
    WorkerRuntimeError,
)
from .models import FailureDescriptor, Invocation, InvocationResult
from .terminator import Terminator

HandlerProvider = Callable[[InitializationContext], Union[Any, Awaitable[Any]]]


class RunnerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    INVOKING = "invoking"
    STOPPED = "stopped"
    FAILED = "failed"


class Runner:
    """
    Drives the handler against the control endpoint.

    Args:
        configuration: Runtime configuration (defaults when omitted)
        client: Control endpoint client, created from the configuration if None
        executor: Executor offered to handler providers for synchronous work
    """

    def __init__(
        self,
        configuration: Optional[RuntimeConfiguration] = None,
        client: Optional[ControlEndpointClient] = None,
        executor: Optional[Executor] = None,
    ):
        self.configuration = configuration or RuntimeConfiguration()
        self.client = client or ControlEndpointClient(self.configuration)
        self.executor = executor
        self.logger = logging.getLogger(f"{NAMESPACE}.{__name__.split('.')[-1]}")

        self._state = RunnerState.UNINITIALIZED
        self._stop_requested = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending_fetch: Optional["asyncio.Future[Invocation]"] = None

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def request_stop(self) -> None:
        """
        Ask the loop to stop at the next iteration boundary.

        An in-flight invocation is allowed to finish and be reported. A fetch
        that is still waiting for work is abandoned. Safe to call from any
        thread or from a signal handler.
        """
        self._stop_requested.set()
        fetch = self._pending_fetch
        if fetch is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(fetch.cancel)

    async def initialize(
        self,
        handler_provider: HandlerProvider,
        terminator: Terminator,
        logger: Optional[logging.Logger] = None,
    ) -> Handler:
        """
        Build the handler by calling the provider exactly once.

        On failure the error is reported to the control endpoint and the
        runner becomes FAILED.

        Raises:
            InitializationError: If the provider raised or returned no handler
            RuntimeStateError: If the runner was already initialized
        """
        if self._state is not RunnerState.UNINITIALIZED:
            raise RuntimeStateError(f"Cannot initialize a runner in state {self._state.value}")

        log = logger or self.logger
        self._state = RunnerState.INITIALIZING
        log.info("Initializing handler")

        context = InitializationContext(
            logger=log,
            loop=asyncio.get_running_loop(),
            terminator=terminator,
            executor=self.executor,
        )

        try:
            candidate = handler_provider(context)
            if inspect.isawaitable(candidate):
                candidate = await candidate
            handler = as_handler(candidate)
        except Exception as e:
            self._state = RunnerState.FAILED
            log.error(f"Handler initialization failed: {e}")
            await self._report_initialization_error(e, log)
            if isinstance(e, InitializationError):
                raise
            raise InitializationError(f"Handler provider failed: {e}") from e

        self._state = RunnerState.READY
        log.info(f"Handler ready: {type(handler).__name__}")
        return handler

    async def run(self, handler: Handler, logger: Optional[logging.Logger] = None) -> int:
        """
        Process invocations until stopped.

        Returns:
            Number of invocations processed

        Raises:
            TransportError: If fetching kept failing beyond the retry policy,
                or a report could not be delivered
            MalformedResponse: If the control endpoint answered unexpectedly
            RuntimeStateError: If the runner is not READY
        """
        if self._state is not RunnerState.READY:
            raise RuntimeStateError(f"Cannot run a runner in state {self._state.value}")

        log = logger or self.logger
        self._loop = asyncio.get_running_loop()
        max_invocations = self.configuration.max_invocations
        count = 0

        try:
            while True:
                if self._stop_requested.is_set():
                    log.info("Stop requested, leaving invocation loop")
                    break
                if max_invocations and count >= max_invocations:
                    log.info(f"Processed {count} invocation(s), invocation budget reached")
                    break

                invocation = await self._next_invocation(log)
                if invocation is None:
                    log.info("Stop requested while waiting for work")
                    break

                self._state = RunnerState.INVOKING
                result = await self._invoke(handler, invocation, log)
                await self._report(result)
                count += 1
                self._state = RunnerState.READY
        except WorkerRuntimeError as e:
            self._state = RunnerState.FAILED
            log.error(f"Invocation loop failed after {count} invocation(s): {e}")
            raise
        except asyncio.CancelledError:
            self._state = RunnerState.STOPPED
            log.info(f"Invocation loop cancelled after {count} invocation(s)")
            raise
        except BaseException:
            self._state = RunnerState.FAILED
            raise
        finally:
            self._loop = None

        self._state = RunnerState.STOPPED
        return count

    async def _next_invocation(self, log: logging.Logger) -> Optional[Invocation]:
        """Fetch with retries; None when a stop request abandoned the fetch."""
        self._pending_fetch = asyncio.ensure_future(self._fetch_with_retry(log))
        try:
            return await self._pending_fetch
        except asyncio.CancelledError:
            if self._stop_requested.is_set() and self._pending_fetch.cancelled():
                return None
            raise
        finally:
            self._pending_fetch = None

    async def _fetch_with_retry(self, log: logging.Logger) -> Invocation:
        policy = self.configuration.retry

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            log.warning(
                f"Fetch attempt {retry_state.attempt_number}/{policy.max_attempts} "
                f"failed: {error}; retrying in {delay:.2f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.initial_backoff,
                max=policy.max_backoff,
                exp_base=policy.multiplier,
            ),
            retry=retry_if_exception_type(TransportError),
            before_sleep=before_sleep,
            reraise=True,
        )

        invocation = None
        async for attempt in retrying:
            with attempt:
                invocation = await self.client.fetch_next()
        log.debug(f"Fetched invocation {invocation.request_id}")
        return invocation

    async def _invoke(
        self, handler: Handler, invocation: Invocation, log: logging.Logger
    ) -> InvocationResult:
        remaining = invocation.remaining_time()
        if remaining is None:
            timeout = self.configuration.request_timeout
        else:
            timeout = max(remaining, 0.0)

        context = RunContext.for_invocation(invocation, log, timeout)
        request_id = invocation.request_id
        task = asyncio.ensure_future(handler.handle(invocation.payload, context))

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            # The handler keeps running; only its outcome is ignored
            context.cancelled.set()
            task.add_done_callback(_discard_late_outcome(request_id, log))
            error = DeadlineExceeded(request_id, timeout)
            log.warning(str(error))
            return InvocationResult.failed(request_id, FailureDescriptor.from_exception(error))

        try:
            payload = task.result()
        except asyncio.CancelledError:
            error = HandlerError(f"Handler for {request_id} was cancelled")
            return InvocationResult.failed(request_id, FailureDescriptor.from_exception(error))
        except Exception as e:
            log.info(f"Invocation {request_id} failed: {type(e).__name__}: {e}")
            return InvocationResult.failed(request_id, FailureDescriptor.from_exception(e))

        if not isinstance(payload, (bytes, bytearray)):
            error = EncodingError(
                f"Handler returned {type(payload).__name__}, expected bytes"
            )
            return InvocationResult.failed(request_id, FailureDescriptor.from_exception(error))

        log.debug(f"Invocation {request_id} succeeded")
        return InvocationResult.success(request_id, bytes(payload))

    async def _report(self, result: InvocationResult) -> None:
        if result.is_success:
            await self.client.report_success(result.request_id, result.payload)
        else:
            await self.client.report_failure(result.request_id, result.failure)

    async def _report_initialization_error(
        self, error: BaseException, log: logging.Logger
    ) -> None:
        try:
            await self.client.report_initialization_error(
                FailureDescriptor.from_exception(error)
            )
        except WorkerRuntimeError as report_error:
            log.error(f"Could not report initialization error: {report_error}")


def _discard_late_outcome(request_id: str, log: logging.Logger):
    def _callback(task: "asyncio.Future[bytes]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.debug(f"Discarded late failure of timed out invocation {request_id}: {error}")
        else:
            log.debug(f"Discarded late result of timed out invocation {request_id}")

    return _callback
