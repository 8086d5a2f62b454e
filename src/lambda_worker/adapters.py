"""
Handler adapter chain.

Every handler the runner drives has one shape, the canonical ``Handler``:
an object whose ``handle`` coroutine maps payload bytes to response bytes.
Friendlier shapes are adapted by wrapping:

    value_handler(fn)  -> CodecHandler(SyncFunction(fn), codec)
    async_handler(fn)  -> CodecHandler(AsyncFunction(fn), codec)
    raw_handler(fn)    -> RawHandler(fn)

The codec layer is always outermost. Deadlines are enforced once, by the
runner, never inside an adapter.
"""

import asyncio
import functools
import inspect
from concurrent.futures import Executor
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from .context import RunContext
from .errors import (
    DecodingError,
    EncodingError,
    HandlerError,
    InitializationError,
    InvocationError,
)
from .serialization import Codec, JsonCodec

RawFunction = Callable[[bytes, RunContext], Awaitable[bytes]]
ValueFunction = Callable[[Any, RunContext], Any]
AsyncValueFunction = Callable[[Any, RunContext], Awaitable[Any]]


@runtime_checkable
class Handler(Protocol):
    """Canonical handler: asynchronous, bytes in, bytes out, raises on failure."""

    async def handle(self, payload: bytes, context: RunContext) -> bytes: ...


class RawHandler:
    """Pass-through for functions already written in the canonical shape."""

    def __init__(self, func: RawFunction):
        self.func = func

    async def handle(self, payload: bytes, context: RunContext) -> bytes:
        return await self.func(payload, context)


class SyncFunction:
    """
    Value-level adapter for a synchronous function.

    The function runs on an executor thread so the event loop stays free to
    notice the invocation deadline. A function still running after its
    deadline keeps its thread until it returns; its result is dropped.
    """

    def __init__(self, func: ValueFunction, executor: Optional[Executor] = None):
        self.func = func
        self.executor = executor

    async def __call__(self, value: Any, context: RunContext) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self.executor, functools.partial(self.func, value, context)
        )


class AsyncFunction:
    """Value-level adapter for a coroutine function."""

    def __init__(self, func: AsyncValueFunction):
        self.func = func

    async def __call__(self, value: Any, context: RunContext) -> Any:
        return await self.func(value, context)


class CodecHandler:
    """
    Outermost adapter: decodes the payload, awaits the inner value-level
    adapter and encodes its result.
    """

    def __init__(self, inner: Callable[[Any, RunContext], Awaitable[Any]], codec: Codec):
        self.inner = inner
        self.codec = codec

    async def handle(self, payload: bytes, context: RunContext) -> bytes:
        try:
            value = self.codec.decode(payload)
        except Exception as e:
            raise DecodingError(f"Failed to decode payload: {e}") from e

        try:
            output = await self.inner(value, context)
        except InvocationError:
            raise
        except Exception as e:
            raise HandlerError(str(e)) from e

        try:
            return self.codec.encode(output)
        except Exception as e:
            raise EncodingError(f"Failed to encode handler result: {e}") from e


def value_handler(
    func: ValueFunction,
    codec: Optional[Codec] = None,
    executor: Optional[Executor] = None,
) -> Handler:
    """Adapt a synchronous ``(value, context) -> value`` function."""
    if inspect.iscoroutinefunction(func):
        raise TypeError("value_handler expects a synchronous function, use async_handler")
    return CodecHandler(SyncFunction(func, executor), codec or JsonCodec())


def async_handler(func: AsyncValueFunction, codec: Optional[Codec] = None) -> Handler:
    """Adapt a coroutine ``(value, context) -> value`` function."""
    if not inspect.iscoroutinefunction(func):
        raise TypeError("async_handler expects a coroutine function, use value_handler")
    return CodecHandler(AsyncFunction(func), codec or JsonCodec())


def raw_handler(func: RawFunction) -> Handler:
    """Adapt a coroutine ``(bytes, context) -> bytes`` function."""
    if not inspect.iscoroutinefunction(func):
        raise TypeError("raw_handler expects a coroutine function")
    return RawHandler(func)


def as_handler(candidate: Any) -> Handler:
    """
    Normalize whatever a handler provider produced into a canonical Handler.

    Raises:
        InitializationError: If the object has no usable handler shape
    """
    handle = getattr(candidate, "handle", None)
    if handle is not None and inspect.iscoroutinefunction(handle):
        return candidate
    if inspect.iscoroutinefunction(candidate):
        return RawHandler(candidate)
    raise InitializationError(
        f"Handler provider returned {type(candidate).__name__}, which is not a handler"
    )
