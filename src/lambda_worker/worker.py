"""
Process-level lifecycle: initialize, run, and always terminate.

``start`` is what an entry point calls; ``Worker`` is the same lifecycle for
callers that already own an event loop.
"""

import asyncio
import logging
import signal
import threading
from typing import Optional

from .client import ControlEndpointClient
from .config import RuntimeConfiguration
from .constants import NAMESPACE
from .errors import InitializationError, WorkerRuntimeError
from .runner import HandlerProvider, Runner
from .terminator import Terminator

log = logging.getLogger(f"{NAMESPACE}.{__name__.split('.')[-1]}")


class Worker:
    """
    Owns one Runner and its Terminator for the lifetime of the process.

    The client is closed by the first registered shutdown hook, which runs
    last, after every hook the handler registered during initialization.
    """

    def __init__(
        self,
        handler_provider: HandlerProvider,
        configuration: Optional[RuntimeConfiguration] = None,
        client: Optional[ControlEndpointClient] = None,
    ):
        self.handler_provider = handler_provider
        self.configuration = configuration or RuntimeConfiguration.from_env()
        self.client = client or ControlEndpointClient(self.configuration)
        self.terminator = Terminator()
        self.runner = Runner(self.configuration, client=self.client)

        self.terminator.register("control-endpoint-client", self.client.aclose)

    def shutdown(self) -> None:
        """Request a graceful stop; the current invocation is still reported."""
        log.info("Shutdown requested")
        self.runner.request_stop()

    async def run(self) -> int:
        """
        Run the full lifecycle.

        Returns:
            Number of invocations processed

        Raises:
            InitializationError: If the handler could not be built
            WorkerRuntimeError: If the invocation loop hit a fatal error
        """
        try:
            handler = await self.runner.initialize(self.handler_provider, self.terminator)
            return await self.runner.run(handler)
        finally:
            termination_error = await self.terminator.terminate()
            if termination_error is not None:
                log.error(str(termination_error))


def start(
    handler_provider: HandlerProvider,
    configuration: Optional[RuntimeConfiguration] = None,
) -> int:
    """
    Run a worker to completion on a fresh event loop.

    SIGTERM and SIGINT request a graceful stop when called from the main
    thread.

    Returns:
        Process exit code: 0 on a clean stop, 1 on a fatal error
    """
    worker = Worker(handler_provider, configuration)

    async def _main() -> int:
        if threading.current_thread() is threading.main_thread():
            loop = asyncio.get_running_loop()
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(signum, worker.shutdown)
        return await worker.run()

    try:
        count = asyncio.run(_main())
    except InitializationError as e:
        log.error(f"Worker failed to initialize: {e}")
        return 1
    except WorkerRuntimeError as e:
        log.error(f"Worker stopped on fatal error: {e}")
        return 1

    log.info(f"Worker stopped after {count} invocation(s)")
    return 0
