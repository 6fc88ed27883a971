from __future__ import annotations
import time, uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import logging

from .contracts import MetaPayload, UWFResponse
from .errors import AuthFailure

logger = logging.getLogger("authservice.http")


def request_meta(request: Request) -> MetaPayload:
    return MetaPayload(request_id=getattr(request.state, "request_id", None))


async def auth_failure_handler(request: Request, exc: AuthFailure) -> JSONResponse:
    """Render guard failures in the unified wire format."""
    body = UWFResponse(ok=False, error=exc.to_payload(), meta=request_meta(request))
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"), headers=headers)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        logger.info(
            "request.start",
            extra={"request_id": request_id, "path": request.url.path, "method": request.method}
        )
        try:
            response: Response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.exception(
                "request.exception",
                extra={"request_id": request_id, "duration_ms": duration_ms}
            )
            raise
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["x-request-id"] = request_id
        logger.info(
            "request.end",
            extra={"request_id": request_id, "status": response.status_code, "duration_ms": duration_ms}
        )
        return response
