"""Automatically apply unit marker to all tests in tests/unit/"""

import asyncio
from typing import Any, List, Optional, Tuple

import pytest

from lambda_worker.models import FailureDescriptor, Invocation


def pytest_collection_modifyitems(config, items):
    """Add unit marker to all tests in the unit directory"""
    for item in items:
        if "tests/unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


class ScriptedClient:
    """
    Control endpoint stand-in for runner tests.

    ``fetch_next`` pops the script: Invocation items are returned, exceptions
    raised. An exhausted script blocks like an idle long poll.
    """

    def __init__(self, script: Optional[List[Any]] = None):
        self.script = list(script or [])
        self.fetch_calls = 0
        self.reports: List[Tuple[str, str, Any]] = []
        self.init_errors: List[FailureDescriptor] = []
        self.report_error: Optional[Exception] = None
        self.closed = False

    async def fetch_next(self) -> Invocation:
        self.fetch_calls += 1
        if not self.script:
            await asyncio.Event().wait()
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def report_success(self, request_id: str, payload: bytes) -> None:
        if self.report_error is not None:
            raise self.report_error
        self.reports.append(("success", request_id, payload))

    async def report_failure(self, request_id: str, failure: FailureDescriptor) -> None:
        if self.report_error is not None:
            raise self.report_error
        self.reports.append(("failure", request_id, failure))

    async def report_initialization_error(self, failure: FailureDescriptor) -> None:
        self.init_errors.append(failure)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def scripted_client():
    return ScriptedClient


@pytest.fixture
def make_invocation():
    counter = iter(range(1, 10_000))

    def _make(payload: bytes = b"{}", deadline_ms=None, metadata=None) -> Invocation:
        return Invocation(
            request_id=f"req-{next(counter)}",
            payload=payload,
            deadline_ms=deadline_ms,
            metadata=metadata or {},
        )

    return _make
