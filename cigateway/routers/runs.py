import asyncio
import json
import threading
from collections.abc import AsyncIterator, Iterator

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.concurrency import iterate_in_threadpool, run_in_threadpool
from fastapi.responses import StreamingResponse

from cigateway.cancellation import run_cancellable, watch_disconnect
from cigateway.dependencies import get_service, verify_api_key
from cigateway.schemas import RunEnvelope, RunResponse
from cigateway.services.run_service import GatewayService, ServiceError

logger = structlog.get_logger()

router = APIRouter(
    prefix="/v1/runs",
    tags=["runs"],
    dependencies=[Depends(verify_api_key)],
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/{run_id}", response_model=RunEnvelope, response_model_exclude_none=True)
async def get_run(
    run_id: str, request: Request, service: GatewayService = Depends(get_service)
):
    try:
        run = await run_cancellable(request, service.get_run, run_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return RunEnvelope(run=RunResponse.model_validate(run))


@router.get("/{run_id}/events")
async def stream_events(
    run_id: str,
    request: Request,
    service: GatewayService = Depends(get_service),
):
    cancel = threading.Event()
    try:
        frames = await run_in_threadpool(service.open_run_events, run_id, cancel=cancel)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    request_id = getattr(request.state, "request_id", "")
    return StreamingResponse(
        _sse(request, frames, run_id, request_id, cancel),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def _sse(
    request: Request,
    frames: Iterator[bytes],
    run_id: str,
    request_id: str,
    cancel: threading.Event,
) -> AsyncIterator[bytes]:
    # A disconnect sets cancel, so the relay stops at its next backend line.
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        yield _frame("connected", {"request_id": request_id})
        async for frame in iterate_in_threadpool(frames):
            yield frame
    except ServiceError as e:
        # Headers are already sent; all that is left is a best-effort error frame.
        logger.error("Event stream failed", run_id=run_id, error=e.detail)
        yield _frame("error", {"message": "stream error", "request_id": request_id})
    finally:
        cancel.set()
        watcher.cancel()
        close = getattr(frames, "close", None)
        if callable(close):
            close()


def _frame(event: str, data: dict) -> bytes:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n".encode()


@router.post("/{run_id}/cancel", status_code=204)
async def cancel_run(
    run_id: str, request: Request, service: GatewayService = Depends(get_service)
):
    try:
        await run_cancellable(request, service.cancel_run, run_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return Response(status_code=204)
