"""CORS and request tracing middleware."""

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("ims_backend.http")

QUIET_PATHS = {"/api/health"}


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id (client supplied or generated) and log its outcome."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)

        if request.url.path not in QUIET_PATHS:
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            client = request.client.host if request.client else "-"
            logger.log(
                level, "[%s] %s %s %s -> %s in %sms",
                request_id, client, request.method, request.url.path,
                response.status_code, elapsed_ms,
            )
        return response


def setup_middleware(app: FastAPI, cors_origins: list[str]) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    app.add_middleware(RequestIdMiddleware)
