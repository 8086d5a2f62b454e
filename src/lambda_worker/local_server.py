"""
Local control plane.

A FastAPI application that speaks the control endpoint protocol, for running
a handler locally without the real service. Developers push work with
``POST /invoke`` (or ``enqueue`` in-process) and a worker pointed at this
server picks it up. Every reported outcome is recorded.

    plane = LocalControlPlane()
    plane.serve(port=7000)   # then AWS_LAMBDA_RUNTIME_API=127.0.0.1:7000
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from .constants import (
    DEADLINE_HEADER,
    DEFAULT_REQUEST_TIMEOUT,
    HEADER_PREFIX,
    INIT_ERROR_PATH,
    INVOCATION_ERROR_PATH,
    INVOCATION_RESPONSE_PATH,
    NAMESPACE,
    NEXT_INVOCATION_PATH,
    REQUEST_ID_HEADER,
)

log = logging.getLogger(f"{NAMESPACE}.{__name__.split('.')[-1]}")


@dataclass
class PendingInvocation:
    request_id: str
    payload: bytes
    deadline_ms: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def headers(self) -> Dict[str, str]:
        headers = {REQUEST_ID_HEADER: self.request_id}
        if self.deadline_ms is not None:
            headers[DEADLINE_HEADER] = str(self.deadline_ms)
        for key, value in self.metadata.items():
            name = "-".join(part.capitalize() for part in key.split("-"))
            headers[f"{HEADER_PREFIX}{name}"] = value
        return headers


class LocalControlPlane:
    """
    In-process control endpoint.

    Args:
        invoke_timeout: Seconds ``POST /invoke`` waits for an outcome, also
            used as the deadline of invocations it enqueues
    """

    def __init__(self, invoke_timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.invoke_timeout = invoke_timeout
        self.responses: Dict[str, bytes] = {}
        self.errors: Dict[str, Dict[str, Any]] = {}
        self.init_errors: List[Dict[str, Any]] = []
        self.delivered: List[str] = []

        self._pending: "asyncio.Queue[PendingInvocation]" = asyncio.Queue()
        self._outcomes: Dict[str, "asyncio.Future[Response]"] = {}

        self.app = FastAPI(title="Local Control Plane")
        self._setup_routes()

    @property
    def completed(self) -> List[str]:
        """Request ids with a reported outcome, in delivery order."""
        return [
            request_id
            for request_id in self.delivered
            if request_id in self.responses or request_id in self.errors
        ]

    def enqueue(
        self,
        payload: bytes = b"",
        request_id: Optional[str] = None,
        deadline_ms: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Queue an invocation for the next fetch and return its request id."""
        request_id = request_id or str(uuid.uuid4())
        self._pending.put_nowait(
            PendingInvocation(
                request_id=request_id,
                payload=payload,
                deadline_ms=deadline_ms,
                metadata=dict(metadata or {}),
            )
        )
        return request_id

    def _setup_routes(self) -> None:
        """Setup FastAPI routes for the control endpoint protocol."""

        @self.app.get(NEXT_INVOCATION_PATH)
        async def next_invocation() -> Response:
            pending = await self._pending.get()
            self.delivered.append(pending.request_id)
            log.debug(f"Delivering invocation {pending.request_id}")
            return Response(
                content=pending.payload,
                headers=pending.headers(),
                media_type="application/octet-stream",
            )

        @self.app.post(INVOCATION_RESPONSE_PATH, status_code=202)
        async def invocation_response(request_id: str, request: Request) -> Dict[str, str]:
            self._check_reportable(request_id)
            body = await request.body()
            self.responses[request_id] = body
            self._resolve(request_id, Response(content=body, media_type="application/octet-stream"))
            return {"status": "OK"}

        @self.app.post(INVOCATION_ERROR_PATH, status_code=202)
        async def invocation_error(request_id: str, request: Request) -> Dict[str, str]:
            self._check_reportable(request_id)
            error = await request.json()
            self.errors[request_id] = error
            self._resolve(request_id, JSONResponse(content=error, status_code=500))
            return {"status": "OK"}

        @self.app.post(INIT_ERROR_PATH, status_code=202)
        async def init_error(request: Request) -> Dict[str, str]:
            error = await request.json()
            self.init_errors.append(error)
            log.error(f"Handler initialization failed: {error}")
            return {"status": "OK"}

        @self.app.post("/invoke")
        async def invoke(request: Request) -> Response:
            """Run one invocation through the connected worker and return its outcome."""
            deadline_ms = int((time.time() + self.invoke_timeout) * 1000)
            request_id = self.enqueue(await request.body(), deadline_ms=deadline_ms)
            outcome = asyncio.get_running_loop().create_future()
            self._outcomes[request_id] = outcome
            try:
                return await asyncio.wait_for(outcome, timeout=self.invoke_timeout)
            except asyncio.TimeoutError:
                raise HTTPException(
                    status_code=504, detail=f"No outcome for {request_id} in time"
                )
            finally:
                self._outcomes.pop(request_id, None)

    def _check_reportable(self, request_id: str) -> None:
        if request_id not in self.delivered:
            raise HTTPException(status_code=400, detail=f"Unknown request id {request_id}")
        if request_id in self.responses or request_id in self.errors:
            raise HTTPException(
                status_code=400, detail=f"Outcome for {request_id} already reported"
            )

    def _resolve(self, request_id: str, response: Response) -> None:
        outcome = self._outcomes.get(request_id)
        if outcome is not None and not outcome.done():
            outcome.set_result(response)

    def serve(self, host: str = "127.0.0.1", port: int = 7000) -> None:
        log.info(f"Starting local control plane on {host}:{port}")
        uvicorn.run(self.app, host=host, port=port, log_level="info")
