"""
Shutdown hook registry.

Hooks run once, sequentially, in reverse registration order so that resources
acquired later are released first. A failing hook never stops the others,
whatever it raises; every failure is collected into one TerminationError.
"""

import asyncio
import inspect
import logging
import threading
import uuid
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from .constants import NAMESPACE
from .errors import AlreadyTerminated, AlreadyTerminating, TerminationError

Hook = Callable[[], Union[None, Awaitable[None]]]


class Terminator:
    """
    Registry of named shutdown hooks and the coordinator that runs them.

    ``register`` may be called from any thread until termination starts.
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{NAMESPACE}.{__name__.split('.')[-1]}")
        self._lock = threading.Lock()
        self._hooks: List[Tuple[str, str, Hook]] = []
        self._run: Optional["asyncio.Future[Optional[TerminationError]]"] = None
        self._terminated = False

    @property
    def terminating(self) -> bool:
        with self._lock:
            return self._run is not None

    @property
    def terminated(self) -> bool:
        with self._lock:
            return self._terminated

    def register(self, name: str, hook: Hook) -> str:
        """
        Add a shutdown hook.

        Args:
            name: Label used in logs and in the TerminationError
            hook: Zero-argument callable, sync or async

        Returns:
            Registration key for the hook

        Raises:
            AlreadyTerminating: If termination has started
            AlreadyTerminated: If termination has finished
        """
        with self._lock:
            if self._terminated:
                raise AlreadyTerminated(f"Cannot register '{name}': already terminated")
            if self._run is not None:
                raise AlreadyTerminating(f"Cannot register '{name}': already terminating")
            key = uuid.uuid4().hex
            self._hooks.append((key, name, hook))

        self.logger.debug(f"Registered shutdown hook '{name}'")
        return key

    def registered(self) -> List[str]:
        """Hook names in the order they will run."""
        with self._lock:
            return [name for _, name, _ in reversed(self._hooks)]

    async def terminate(self) -> Optional[TerminationError]:
        """
        Run every registered hook once.

        Safe to call repeatedly and concurrently: later callers wait for the
        first run and receive the same result.

        Returns:
            None when every hook succeeded, otherwise the aggregate error
        """
        with self._lock:
            if self._run is None:
                hooks = [(name, hook) for _, name, hook in reversed(self._hooks)]
                self._run = asyncio.ensure_future(self._run_hooks(hooks))
            run = self._run

        # Shielded so a cancelled caller does not abort the remaining hooks
        return await asyncio.shield(run)

    async def _run_hooks(
        self, hooks: List[Tuple[str, Hook]]
    ) -> Optional[TerminationError]:
        self.logger.info(f"Running {len(hooks)} shutdown hook(s)")
        failures: List[Tuple[str, BaseException]] = []

        try:
            for name, hook in hooks:
                try:
                    result = hook()
                    if inspect.isawaitable(result):
                        await result
                    self.logger.debug(f"✓ shutdown hook '{name}' completed")
                except BaseException as e:
                    # Cancellation and exit requests from one hook are failures of that hook only
                    failures.append((name, e))
                    self.logger.error(f"✗ shutdown hook '{name}' failed: {e!r}")
        finally:
            with self._lock:
                self._terminated = True

        if failures:
            return TerminationError(failures)
        return None
