import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cigateway.models import Run


class EventSink(Protocol):
    """Anything accepting byte writes; ``flush`` is optional."""

    def write(self, data: bytes) -> Any: ...


@dataclass
class TriggerParams:
    parameters: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str | None = None


class CIAdapterProtocol(Protocol):
    kind: str

    def build_job_ref(self, provider_ref: dict[str, Any]) -> Any: ...

    def parse_run_id(self, run_id: str) -> Any: ...

    def trigger(
        self,
        job_ref: Any,
        params: TriggerParams,
        cancel: threading.Event | None = None,
    ) -> Any:
        """Start a build and return the provider's run reference."""
        ...

    def get_run(self, run_ref: Any, cancel: threading.Event | None = None) -> Run: ...

    def open_event_stream(
        self, run_ref: Any, cancel: threading.Event | None = None
    ) -> Iterator[bytes]: ...

    def stream_events(
        self,
        run_ref: Any,
        sink: EventSink,
        cancel: threading.Event | None = None,
    ) -> None: ...

    def cancel(self, run_ref: Any, cancel: threading.Event | None = None) -> None: ...

    def health_check(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


@runtime_checkable
class DiscoveryCapable(Protocol):
    """Optional read-only listing operations a provider may support."""

    def list_teams(self) -> list: ...

    def list_pipelines(self, team: str | None = None) -> list: ...

    def list_jobs(self, pipeline: str, team: str | None = None) -> list: ...

    def list_builds(
        self, pipeline: str, job: str, limit: int = 20, team: str | None = None
    ) -> list: ...

    def get_build_details(self, build_id: int) -> tuple[Any, dict | None]: ...
