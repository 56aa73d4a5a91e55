import threading
from collections.abc import Iterator
from enum import Enum
from typing import Any

import structlog

from cigateway.ci_adapters.base import (
    CIAdapterProtocol,
    DiscoveryCapable,
    EventSink,
    TriggerParams,
)
from cigateway.ci_adapters.errors import (
    BackendResponseError,
    InvalidJobRefError,
    MalformedReferenceError,
    NotFoundError,
    ProviderError,
    RequestCanceledError,
    UnauthorizedError,
    UnavailableError,
)
from cigateway.models import Job, Run
from cigateway.registry import JobRegistry


class ErrorKind(str, Enum):
    job_not_found = "job_not_found"
    run_not_found = "run_not_found"
    not_found = "not_found"
    unauthorized = "unauthorized"
    unavailable = "unavailable"
    provider_error = "provider_error"
    canceled = "canceled"
    configuration_error = "configuration_error"
    not_supported = "not_supported"


class ServiceError(Exception):
    def __init__(self, status_code: int, detail: str, kind: ErrorKind):
        self.status_code = status_code
        self.detail = detail
        self.kind = kind
        super().__init__(detail)


def translate_error(
    err: ProviderError, not_found: ErrorKind = ErrorKind.not_found
) -> ServiceError:
    """Normalize a provider error into the gateway's fixed set of kinds."""
    if isinstance(err, NotFoundError):
        detail = "run not found" if not_found == ErrorKind.run_not_found else str(err)
        return ServiceError(404, detail, not_found)
    if isinstance(err, UnauthorizedError):
        return ServiceError(401, "provider authentication failed", ErrorKind.unauthorized)
    if isinstance(err, UnavailableError):
        return ServiceError(502, "provider temporarily unavailable", ErrorKind.unavailable)
    if isinstance(err, RequestCanceledError):
        return ServiceError(499, "request canceled", ErrorKind.canceled)
    if isinstance(err, BackendResponseError) and 400 <= err.code < 500:
        return ServiceError(err.code, err.message, ErrorKind.provider_error)
    if isinstance(err, BackendResponseError):
        return ServiceError(502, "provider error", ErrorKind.unavailable)
    return ServiceError(502, str(err), ErrorKind.provider_error)


class GatewayService:
    """Resolves public ids and delegates to the configured CI adapter."""

    def __init__(self, registry: JobRegistry, provider: CIAdapterProtocol, logger=None):
        self._registry = registry
        self._provider = provider
        self._logger = (logger or structlog.get_logger()).bind(component="service")

    def close(self) -> None:
        self._provider.close()

    def list_jobs(self) -> list[Job]:
        return self._registry.get_all_jobs()

    # --- runs ---

    def trigger_run(
        self,
        job_id: str,
        params: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Run:
        """Trigger a run and return its first real status.

        ``idempotency_key`` is passed to the provider and logged but not
        enforced: repeating a key still starts a new build.
        """
        params = params or {}
        self._logger.debug(
            "Triggering run",
            job_id=job_id,
            param_count=len(params),
            has_idempotency_key=bool(idempotency_key),
        )

        job = self._registry.get_job(job_id)
        if job is None:
            raise ServiceError(404, "job not found", ErrorKind.job_not_found)

        if job.provider_kind != self._provider.kind:
            raise ServiceError(
                500,
                f"unsupported provider kind '{job.provider_kind}' for job '{job_id}'",
                ErrorKind.configuration_error,
            )
        try:
            job_ref = self._provider.build_job_ref(job.provider_ref)
        except InvalidJobRefError as e:
            self._logger.error("Invalid job ref", job_id=job_id, error=str(e))
            raise ServiceError(500, str(e), ErrorKind.configuration_error) from e

        try:
            run_ref = self._provider.trigger(
                job_ref,
                TriggerParams(parameters=params, idempotency_key=idempotency_key),
                cancel=cancel,
            )
            run = self._provider.get_run(run_ref, cancel=cancel)
        except ProviderError as e:
            self._logger.error("Trigger failed", job_id=job_id, error=str(e))
            raise translate_error(e) from e

        run.job_id = job_id
        self._logger.info(
            "Run triggered", job_id=job_id, run_id=run.run_id, status=run.status.value
        )
        return run

    def get_run(self, run_id: str, cancel: threading.Event | None = None) -> Run:
        run_ref = self._parse_run_id(run_id)
        try:
            return self._provider.get_run(run_ref, cancel=cancel)
        except ProviderError as e:
            self._logger.warning("Get run failed", run_id=run_id, error=str(e))
            raise translate_error(e, ErrorKind.run_not_found) from e

    def open_run_events(
        self, run_id: str, cancel: threading.Event | None = None
    ) -> Iterator[bytes]:
        """Open the run's event stream; errors before the first frame raise here."""
        run_ref = self._parse_run_id(run_id)
        try:
            frames = self._provider.open_event_stream(run_ref, cancel=cancel)
        except ProviderError as e:
            self._logger.warning("Event stream failed to open", run_id=run_id, error=str(e))
            raise translate_error(e, ErrorKind.run_not_found) from e
        self._logger.info("Event stream started", run_id=run_id)
        return self._translated(frames, run_id)

    def _translated(self, frames: Iterator[bytes], run_id: str) -> Iterator[bytes]:
        try:
            yield from frames
        except ProviderError as e:
            self._logger.error("Event stream failed", run_id=run_id, error=str(e))
            raise translate_error(e, ErrorKind.run_not_found) from e
        finally:
            close = getattr(frames, "close", None)
            if callable(close):
                close()

    def stream_run_events(
        self,
        run_id: str,
        sink: EventSink,
        cancel: threading.Event | None = None,
    ) -> None:
        run_ref = self._parse_run_id(run_id)
        self._logger.info("Streaming run events", run_id=run_id)
        try:
            self._provider.stream_events(run_ref, sink, cancel=cancel)
        except ProviderError as e:
            self._logger.error("Event stream failed", run_id=run_id, error=str(e))
            raise translate_error(e, ErrorKind.run_not_found) from e
        self._logger.info("Event stream completed", run_id=run_id)

    def cancel_run(self, run_id: str, cancel: threading.Event | None = None) -> None:
        run_ref = self._parse_run_id(run_id)
        try:
            self._provider.cancel(run_ref, cancel=cancel)
        except ProviderError as e:
            self._logger.error("Cancel run failed", run_id=run_id, error=str(e))
            raise translate_error(e, ErrorKind.run_not_found) from e
        self._logger.info("Run canceled", run_id=run_id)

    def _parse_run_id(self, run_id: str):
        # A malformed id is reported exactly like a missing run.
        try:
            return self._provider.parse_run_id(run_id)
        except MalformedReferenceError as e:
            self._logger.debug("Unparseable run_id", run_id=run_id, error=str(e))
            raise ServiceError(404, "run not found", ErrorKind.run_not_found) from e

    # --- discovery ---

    def _discovery(self, operation: str) -> DiscoveryCapable:
        if not isinstance(self._provider, DiscoveryCapable):
            raise ServiceError(
                501,
                f"provider does not support {operation}",
                ErrorKind.not_supported,
            )
        return self._provider

    def list_teams(self) -> list:
        provider = self._discovery("team listing")
        try:
            return provider.list_teams()
        except ProviderError as e:
            raise translate_error(e) from e

    def list_pipelines(self, team: str | None = None) -> list:
        provider = self._discovery("pipeline listing")
        try:
            return provider.list_pipelines(team=team)
        except ProviderError as e:
            raise translate_error(e) from e

    def list_pipeline_jobs(self, pipeline: str, team: str | None = None) -> list:
        provider = self._discovery("job listing")
        try:
            return provider.list_jobs(pipeline, team=team)
        except ProviderError as e:
            raise translate_error(e) from e

    def list_job_builds(
        self, pipeline: str, job: str, limit: int = 20, team: str | None = None
    ) -> list:
        provider = self._discovery("build listing")
        try:
            return provider.list_builds(pipeline, job, limit=limit, team=team)
        except ProviderError as e:
            raise translate_error(e) from e

    def get_build_details(self, build_id: int) -> tuple[Any, dict | None]:
        provider = self._discovery("build details")
        try:
            return provider.get_build_details(build_id)
        except ProviderError as e:
            raise translate_error(e) from e

    # --- health ---

    def health_check(self) -> dict[str, Any]:
        checks: dict[str, Any] = {
            "job_config": {"status": "healthy", "count": len(self._registry)},
        }
        health = {"status": "healthy", "service": "cigateway", "checks": checks}
        try:
            info = self._provider.health_check()
        except ProviderError as e:
            self._logger.warning("Provider health check failed", error=str(e))
            checks["provider"] = {"status": "unhealthy", "error": str(e)}
            health["status"] = "degraded"
        else:
            checks["provider"] = {
                "status": "healthy",
                "provider": self._provider.kind,
                "version": (info or {}).get("version"),
            }
        return health
