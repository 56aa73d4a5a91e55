import datetime
import json

import httpx

from cigateway.ci_adapters.concourse.refs import ConcourseRunRef
from cigateway.ci_adapters.concourse.resources import Build
from cigateway.ci_adapters.errors import (
    BackendResponseError,
    NotFoundError,
    ProviderError,
    UnauthorizedError,
    UnavailableError,
)
from cigateway.models import Run, RunStatus

STATUS_MAP = {
    "pending": RunStatus.queued,
    "started": RunStatus.running,
    "succeeded": RunStatus.succeeded,
    "failed": RunStatus.failed,
    "aborted": RunStatus.canceled,
    "errored": RunStatus.errored,
}

SSE_FIELDS = ("event", "id", "retry")


def map_status(concourse_status: str) -> RunStatus:
    """Unrecognized statuses map to ``unknown`` instead of failing."""
    return STATUS_MAP.get(concourse_status, RunStatus.unknown)


def _timestamp(seconds: int) -> datetime.datetime | None:
    if seconds <= 0:
        return None
    return datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)


def build_to_run(build: Build, run_ref: ConcourseRunRef) -> Run:
    return Run(
        run_id=run_ref.run_id,
        status=map_status(build.status),
        created_at=_timestamp(build.create_time),
        started_at=_timestamp(build.start_time),
        finished_at=_timestamp(build.end_time),
    )


def error_from_response(resp: httpx.Response) -> ProviderError:
    """Convert a non-2xx Concourse response into a provider error.

    The response body must already be read.
    """
    code = resp.status_code
    if code == 404:
        return NotFoundError("resource not found in provider")
    if code in (401, 403):
        return UnauthorizedError(f"provider authentication failed ({code})")
    if code in (502, 503):
        return UnavailableError(f"provider temporarily unavailable ({code})")

    message = resp.text
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        message = str(payload["error"])
    return BackendResponseError(code, message)


def transform_event_line(line: str) -> bytes | None:
    """Turn one line of the Concourse event stream into an SSE frame chunk.

    Returns ``None`` for lines that carry nothing to relay. Raises
    ``ValueError`` for malformed lines.
    """
    if not line or line.startswith(":"):
        return None

    field, sep, value = line.partition(":")
    if sep and field == "data":
        value = value.removeprefix(" ")
        # Concourse's closing "end" event carries empty data.
        if value:
            json.loads(value)
        return f"data: {value}\n\n".encode()
    if sep and field in SSE_FIELDS:
        return f"{field}: {value.removeprefix(' ')}\n".encode()

    # Bare newline-delimited JSON
    json.loads(line)
    return f"data: {line}\n\n".encode()
