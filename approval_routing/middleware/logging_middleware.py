"""
Logging Middleware
Tags each request with an id and logs it with status and duration
"""

import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from approval_routing.utils.logger import setup_logger

logger = setup_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Request logging for the approval API

    A caller-supplied X-Request-ID is reused, otherwise one is generated. The
    id is bound to every log line written while the request is handled and
    echoed on the response, so a decision can be traced from the client to
    the audit trail.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            logger.info(f"[{request_id}] {request.method} {request.url.path}")

            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    f"[{request_id}] {request.method} {request.url.path} failed after "
                    f"{time.perf_counter() - started:.3f}s"
                )
                raise

            elapsed = time.perf_counter() - started
            log = logger.warning if response.status_code >= 400 else logger.info
            log(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} in {elapsed:.3f}s")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
