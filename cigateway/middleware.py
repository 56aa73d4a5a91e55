import time
import uuid

import structlog
from fastapi import Request

logger = structlog.get_logger()


async def request_context(request: Request, call_next):
    """Tag every request with an id, bind it for logging and log completion."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    start = time.monotonic()
    response = await call_next(request)
    duration_ms = int((time.monotonic() - start) * 1000)
    response.headers["X-Request-ID"] = request_id

    if response.status_code >= 500:
        log = logger.error
    elif response.status_code >= 400:
        log = logger.warning
    else:
        log = logger.info
    log("Request completed", status=response.status_code, duration_ms=duration_ms)
    return response
