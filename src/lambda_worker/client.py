"""
Control endpoint client.

One network round trip per call, no retries and no caching: whether a failed
call is worth repeating is the runner's decision.
"""

import logging
from typing import Dict, Optional

import httpx

from .config import RuntimeConfiguration
from .constants import (
    DEADLINE_HEADER,
    FUNCTION_ERROR_TYPE_HEADER,
    HEADER_PREFIX,
    INIT_ERROR_PATH,
    INVOCATION_ERROR_PATH,
    INVOCATION_RESPONSE_PATH,
    METADATA_HEADERS,
    NAMESPACE,
    NEXT_INVOCATION_PATH,
    REQUEST_ID_HEADER,
    UNHANDLED_ERROR_TYPE,
)
from .errors import MalformedResponse, TransportError
from .models import FailureDescriptor, Invocation


class ControlEndpointClient:
    """
    Async client for the control endpoint.

    Args:
        configuration: Runtime configuration supplying address and timeouts
        http_client: Optional pre-configured httpx.AsyncClient. When provided,
            the caller retains ownership and must close it.
        transport: Optional httpx transport for a client created here
    """

    def __init__(
        self,
        configuration: RuntimeConfiguration,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.configuration = configuration
        self.logger = logging.getLogger(f"{NAMESPACE}.{__name__.split('.')[-1]}")

        if http_client is not None:
            self._http_client = http_client
            self._owns_http_client = False
        else:
            self._http_client = httpx.AsyncClient(
                base_url=configuration.base_url,
                timeout=httpx.Timeout(configuration.request_timeout),
                transport=transport,
            )
            self._owns_http_client = True

    @property
    def closed(self) -> bool:
        return self._http_client.is_closed

    async def __aenter__(self) -> "ControlEndpointClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def fetch_next(self) -> Invocation:
        """
        Long-poll the control endpoint for the next invocation.

        Raises:
            TransportError: On connection failure or timeout
            MalformedResponse: On a non-2xx status or missing/invalid headers
        """
        timeout = self.configuration.fetch_timeout
        response = await self._request(
            "GET", NEXT_INVOCATION_PATH, "fetch next invocation", timeout=timeout
        )
        return self._parse_invocation(response)

    async def report_success(self, request_id: str, payload: bytes) -> None:
        path = INVOCATION_RESPONSE_PATH.format(request_id=request_id)
        await self._request("POST", path, f"report response for {request_id}", content=payload)

    async def report_failure(self, request_id: str, failure: FailureDescriptor) -> None:
        path = INVOCATION_ERROR_PATH.format(request_id=request_id)
        await self._request(
            "POST",
            path,
            f"report error for {request_id}",
            json=failure.to_wire(),
            headers={FUNCTION_ERROR_TYPE_HEADER: UNHANDLED_ERROR_TYPE},
        )

    async def report_initialization_error(self, failure: FailureDescriptor) -> None:
        await self._request(
            "POST",
            INIT_ERROR_PATH,
            "report initialization error",
            json=failure.to_wire(),
            headers={FUNCTION_ERROR_TYPE_HEADER: UNHANDLED_ERROR_TYPE},
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        timeout=httpx.USE_CLIENT_DEFAULT,
        **kwargs,
    ) -> httpx.Response:
        try:
            response = await self._http_client.request(
                method, path, timeout=timeout, **kwargs
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out trying to {operation}: {e}") from e
        except httpx.TransportError as e:
            raise TransportError(f"Failed to {operation}: {e}") from e

        if not response.is_success:
            raise MalformedResponse(
                f"Unexpected status {response.status_code} trying to {operation}",
                status_code=response.status_code,
            )
        self.logger.debug(f"{operation}: {response.status_code}")
        return response

    def _parse_invocation(self, response: httpx.Response) -> Invocation:
        request_id = response.headers.get(REQUEST_ID_HEADER)
        if not request_id:
            raise MalformedResponse(
                f"Next invocation response is missing {REQUEST_ID_HEADER}",
                status_code=response.status_code,
            )

        deadline_ms: Optional[int] = None
        raw_deadline = response.headers.get(DEADLINE_HEADER)
        if raw_deadline:
            try:
                deadline_ms = int(raw_deadline)
            except ValueError as e:
                raise MalformedResponse(
                    f"Invalid {DEADLINE_HEADER} header: '{raw_deadline}'",
                    status_code=response.status_code,
                ) from e

        metadata: Dict[str, str] = {}
        for header in METADATA_HEADERS:
            value = response.headers.get(header)
            if value is not None:
                metadata[header[len(HEADER_PREFIX):].lower()] = value

        return Invocation(
            request_id=request_id,
            payload=response.content,
            deadline_ms=deadline_ms,
            metadata=metadata,
        )
