"""Tests for the shutdown hook registry."""

import asyncio
import threading

import pytest

from lambda_worker.errors import AlreadyTerminated, AlreadyTerminating, TerminationError
from lambda_worker.terminator import Terminator


class TestRegister:
    def test_returns_unique_keys(self):
        terminator = Terminator()

        first = terminator.register("a", lambda: None)
        second = terminator.register("b", lambda: None)

        assert first != second

    def test_hooks_run_in_reverse_registration_order(self):
        terminator = Terminator()
        for name in ("db", "cache", "client"):
            terminator.register(name, lambda: None)

        assert terminator.registered() == ["client", "cache", "db"]

    def test_register_from_many_threads(self):
        terminator = Terminator()

        def register_batch(offset):
            for i in range(50):
                terminator.register(f"hook-{offset + i}", lambda: None)

        threads = [threading.Thread(target=register_batch, args=(n * 50,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(terminator.registered()) == 200


class TestTerminate:
    @pytest.mark.asyncio
    async def test_clean_shutdown_returns_none(self):
        terminator = Terminator()
        calls = []
        terminator.register("sync", lambda: calls.append("sync"))

        async def async_hook():
            calls.append("async")

        terminator.register("async", async_hook)

        assert await terminator.terminate() is None
        assert calls == ["async", "sync"]
        assert terminator.terminated

    @pytest.mark.asyncio
    async def test_no_hooks(self):
        assert await Terminator().terminate() is None

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_other_hooks(self):
        terminator = Terminator()
        calls = []

        def failing_sync():
            calls.append("failing_sync")
            raise ValueError("sync broke")

        async def failing_async():
            calls.append("failing_async")
            raise RuntimeError("async broke")

        terminator.register("first", lambda: calls.append("first"))
        terminator.register("failing_sync", failing_sync)
        terminator.register("failing_async", failing_async)

        error = await terminator.terminate()

        assert calls == ["failing_async", "failing_sync", "first"]
        assert isinstance(error, TerminationError)
        assert [name for name, _ in error.failures] == ["failing_async", "failing_sync"]
        assert isinstance(error.underlying[0], RuntimeError)
        assert isinstance(error.underlying[1], ValueError)
        assert "2 shutdown hook(s) failed" in str(error)

    @pytest.mark.asyncio
    async def test_second_call_returns_same_result_without_rerunning(self):
        terminator = Terminator()
        calls = []

        def hook():
            calls.append("hook")
            raise ValueError("broken")

        terminator.register("hook", hook)

        first = await terminator.terminate()
        second = await terminator.terminate()

        assert first is second
        assert calls == ["hook"]

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_run(self):
        terminator = Terminator()
        calls = []

        async def slow_hook():
            calls.append("slow")
            await asyncio.sleep(0.01)

        terminator.register("slow", slow_hook)

        results = await asyncio.gather(terminator.terminate(), terminator.terminate())

        assert results == [None, None]
        assert calls == ["slow"]

    @pytest.mark.asyncio
    async def test_register_while_terminating(self):
        terminator = Terminator()
        errors = []

        async def hook():
            try:
                terminator.register("late", lambda: None)
            except AlreadyTerminating as e:
                errors.append(e)

        terminator.register("hook", hook)
        await terminator.terminate()

        assert len(errors) == 1
        assert not isinstance(errors[0], AlreadyTerminated)

    @pytest.mark.asyncio
    async def test_register_after_termination(self):
        terminator = Terminator()
        await terminator.terminate()

        with pytest.raises(AlreadyTerminating):
            terminator.register("late", lambda: None)
        with pytest.raises(AlreadyTerminated):
            terminator.register("late", lambda: None)

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_hooks(self):
        terminator = Terminator()
        release = asyncio.Event()
        finished = []

        async def hook():
            await release.wait()
            finished.append("hook")

        terminator.register("hook", hook)

        caller = asyncio.ensure_future(terminator.terminate())
        await asyncio.sleep(0)
        caller.cancel()
        release.set()

        assert await terminator.terminate() is None
        assert finished == ["hook"]

    @pytest.mark.asyncio
    async def test_cancelled_hook_does_not_stop_other_hooks(self):
        terminator = Terminator()
        calls = []

        async def interrupted():
            raise asyncio.CancelledError()

        terminator.register("first", lambda: calls.append("first"))
        terminator.register("interrupted", interrupted)

        result = await terminator.terminate()

        assert calls == ["first"]
        assert isinstance(result, TerminationError)
        assert [name for name, _ in result.failures] == ["interrupted"]
        assert isinstance(result.underlying[0], asyncio.CancelledError)
        assert terminator.terminated
        assert await terminator.terminate() is result
        with pytest.raises(AlreadyTerminated):
            terminator.register("late", lambda: None)

    @pytest.mark.asyncio
    async def test_exiting_hook_is_collected(self):
        terminator = Terminator()
        calls = []

        def exits():
            raise SystemExit(3)

        terminator.register("first", lambda: calls.append("first"))
        terminator.register("exits", exits)
        terminator.register("last", lambda: calls.append("last"))

        result = await terminator.terminate()

        assert calls == ["last", "first"]
        assert [name for name, _ in result.failures] == ["exits"]
        assert result.underlying[0].code == 3
        assert terminator.terminated
