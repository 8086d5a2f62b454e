import time

import httpx
import pytest

from lambda_worker.client import ControlEndpointClient
from lambda_worker.config import RetryPolicy, RuntimeConfiguration
from lambda_worker.constants import NEXT_INVOCATION_PATH
from lambda_worker.local_server import LocalControlPlane


class FlakyTransport(httpx.AsyncBaseTransport):
    """Fails the first ``failures`` next-invocation fetches with a connect error."""

    def __init__(self, inner: httpx.AsyncBaseTransport, failures: int):
        self.inner = inner
        self.remaining_failures = failures
        self.fetch_attempts = 0

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == NEXT_INVOCATION_PATH:
            self.fetch_attempts += 1
            if self.remaining_failures > 0:
                self.remaining_failures -= 1
                raise httpx.ConnectError("Connection refused", request=request)
        return await self.inner.handle_async_request(request)


def deadline_in(seconds: float) -> int:
    """Absolute deadline in epoch milliseconds, ``seconds`` from now."""
    return int((time.time() + seconds) * 1000)


@pytest.fixture
def configuration():
    """Fast configuration: short timeouts and no backoff delay."""
    return RuntimeConfiguration(
        address="127.0.0.1:7000",
        request_timeout=1.0,
        retry=RetryPolicy(max_retries=3, initial_backoff=0, max_backoff=0),
    )


@pytest.fixture
def control_plane():
    """In-process control endpoint."""
    return LocalControlPlane(invoke_timeout=2.0)


@pytest.fixture
def asgi_transport(control_plane):
    return httpx.ASGITransport(app=control_plane.app)


@pytest.fixture
def endpoint_client(configuration, asgi_transport):
    """Client wired to the in-process control endpoint."""
    return ControlEndpointClient(configuration, transport=asgi_transport)


@pytest.fixture
def flaky_transport(asgi_transport):
    """Factory for a transport failing the first N fetches."""

    def _make(failures: int) -> FlakyTransport:
        return FlakyTransport(asgi_transport, failures)

    return _make


@pytest.fixture
def deadline():
    """Factory for absolute deadlines relative to now."""
    return deadline_in
