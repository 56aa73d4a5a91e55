import contextlib
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from cigateway.ci_adapters.base import EventSink, TriggerParams
from cigateway.ci_adapters.concourse.auth import TokenManager
from cigateway.ci_adapters.concourse.client import ConcourseClient
from cigateway.ci_adapters.concourse.mapper import (
    build_to_run,
    error_from_response,
    transform_event_line,
)
from cigateway.ci_adapters.concourse.refs import (
    ConcourseJobRef,
    ConcourseRunRef,
    job_ref_from_provider_ref,
    parse_run_id,
)
from cigateway.ci_adapters.concourse.resources import Build, Pipeline, PipelineJob, Team
from cigateway.ci_adapters.errors import (
    BackendResponseError,
    ProviderError,
    UnavailableError,
)
from cigateway.models import Run


@dataclass
class ConcourseConfig:
    url: str
    team: str = "main"
    username: str | None = None
    password: str | None = None
    bearer_token: str | None = None
    token_refresh_margin: float = 300.0
    timeout: float = 30.0


def _seg(value: str) -> str:
    return quote(value, safe="")


def _byte_lines(resp: httpx.Response) -> Iterator[bytes]:
    # Undecoded, so invalid UTF-8 surfaces per line instead of being replaced.
    pending = b""
    for chunk in resp.iter_bytes():
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line.rstrip(b"\r")
    if pending:
        yield pending.rstrip(b"\r")


class ConcourseAdapter:
    """Runs, event streams and discovery on top of the Concourse API."""

    kind = "concourse"

    def __init__(
        self,
        config: ConcourseConfig,
        logger=None,
        client: ConcourseClient | None = None,
    ):
        self._config = config
        self._logger = logger or structlog.get_logger()
        self._http: httpx.Client | None = None
        if client is None:
            self._http = httpx.Client(timeout=config.timeout)
            tokens = TokenManager(
                config.url,
                self._http,
                username=config.username,
                password=config.password,
                bearer_token=config.bearer_token,
                refresh_margin=config.token_refresh_margin,
                logger=self._logger.bind(component="token_manager"),
            )
            client = ConcourseClient(
                config.url,
                tokens,
                self._http,
                logger=self._logger.bind(component="concourse_client"),
            )
        self._client = client
        self._logger = self._logger.bind(component="concourse_adapter")

    @property
    def team(self) -> str:
        return self._config.team

    def close(self) -> None:
        if self._http is not None:
            self._http.close()

    # --- references ---

    def build_job_ref(self, provider_ref: dict[str, Any]) -> ConcourseJobRef:
        return job_ref_from_provider_ref(provider_ref)

    def parse_run_id(self, run_id: str) -> ConcourseRunRef:
        return parse_run_id(run_id)

    # --- runs ---

    def trigger(
        self,
        job_ref: ConcourseJobRef,
        params: TriggerParams,
        cancel: threading.Event | None = None,
    ) -> ConcourseRunRef:
        if not isinstance(job_ref, ConcourseJobRef):
            raise TypeError("invalid job ref type: expected ConcourseJobRef")

        self._logger.debug(
            "Triggering build",
            team=job_ref.team,
            pipeline=job_ref.pipeline,
            job=job_ref.job,
            param_count=len(params.parameters),
        )
        path = (
            f"/api/v1/teams/{_seg(job_ref.team)}/pipelines/{_seg(job_ref.pipeline)}"
            f"/jobs/{_seg(job_ref.job)}/builds"
        )
        # No body at all when there are no parameters.
        resp = self._client.request(
            "POST", path, json=params.parameters or None, cancel=cancel
        )
        if resp.status_code not in (200, 201):
            raise error_from_response(resp)

        build = self._build_from(resp)
        self._logger.info(
            "Build triggered",
            team=job_ref.team,
            pipeline=job_ref.pipeline,
            job=job_ref.job,
            build_id=build.id,
            build_name=build.name,
        )
        return ConcourseRunRef(
            team=job_ref.team,
            pipeline=job_ref.pipeline,
            job=job_ref.job,
            build_id=build.id,
            build_name=build.name,
        )

    def get_run(
        self, run_ref: ConcourseRunRef, cancel: threading.Event | None = None
    ) -> Run:
        build = self.get_build(run_ref.build_id, cancel=cancel)
        self._logger.debug(
            "Build status retrieved", build_id=run_ref.build_id, status=build.status
        )
        return build_to_run(build, run_ref)

    def get_build(self, build_id: int, cancel: threading.Event | None = None) -> Build:
        resp = self._client.request("GET", f"/api/v1/builds/{build_id}", cancel=cancel)
        if resp.status_code != 200:
            raise error_from_response(resp)
        return self._build_from(resp)

    def cancel(
        self, run_ref: ConcourseRunRef, cancel: threading.Event | None = None
    ) -> None:
        self._logger.info("Aborting build", run_id=run_ref.run_id)
        resp = self._client.request(
            "PUT", f"/api/v1/builds/{run_ref.build_id}/abort", cancel=cancel
        )
        if resp.status_code not in (200, 204):
            raise error_from_response(resp)
        self._logger.info("Build aborted", build_id=run_ref.build_id)

    # --- event streaming ---

    def open_event_stream(
        self, run_ref: ConcourseRunRef, cancel: threading.Event | None = None
    ) -> Iterator[bytes]:
        """Open the build's event stream and return an iterator of SSE chunks.

        Errors up to and including the response status are raised here, before
        any frame is produced. Once iteration starts a failure simply ends the
        stream with an exception from the iterator.
        """
        path = f"/api/v1/builds/{run_ref.build_id}/events"
        resp = self._client.open_stream("GET", path, cancel=cancel)
        if resp.status_code != 200:
            try:
                resp.read()
            except httpx.HTTPError as e:
                raise UnavailableError(f"reading error response failed: {e}") from e
            finally:
                resp.close()
            raise error_from_response(resp)

        self._logger.info("Build event stream opened", build_id=run_ref.build_id)
        return self._relay(resp, run_ref, cancel)

    def _relay(
        self,
        resp: httpx.Response,
        run_ref: ConcourseRunRef,
        cancel: threading.Event | None,
    ) -> Iterator[bytes]:
        # id/event/retry lines are held back until their data line arrives,
        # so a frame is relayed whole or not at all.
        pending: list[bytes] = []
        try:
            for line in _byte_lines(resp):
                if cancel is not None and cancel.is_set():
                    self._logger.info(
                        "Build event stream canceled", build_id=run_ref.build_id
                    )
                    return
                if not line:
                    pending.clear()
                    continue
                try:
                    chunk = transform_event_line(line.decode("utf-8"))
                except ValueError:
                    self._logger.debug(
                        "Skipping malformed event line",
                        build_id=run_ref.build_id,
                        dropped_fields=len(pending),
                    )
                    pending.clear()
                    continue
                if chunk is None:
                    continue
                if not chunk.endswith(b"\n\n"):
                    pending.append(chunk)
                    continue
                yield b"".join(pending) + chunk
                pending.clear()
        except httpx.HTTPError as e:
            raise UnavailableError(f"event stream interrupted: {e}") from e
        finally:
            resp.close()
        self._logger.info("Build event stream completed", build_id=run_ref.build_id)

    def stream_events(
        self,
        run_ref: ConcourseRunRef,
        sink: EventSink,
        cancel: threading.Event | None = None,
    ) -> None:
        """Copy the event stream to ``sink``, flushing after every frame."""
        flush = getattr(sink, "flush", None)
        with contextlib.closing(self.open_event_stream(run_ref, cancel)) as frames:
            for frame in frames:
                sink.write(frame)
                if callable(flush):
                    flush()

    # --- discovery ---

    def list_teams(self) -> list[Team]:
        teams = [Team.from_api(t) for t in self._get_json("/api/v1/teams") or []]
        self._logger.info("Teams listed", count=len(teams))
        return teams

    def list_pipelines(self, team: str | None = None) -> list[Pipeline]:
        team = team or self._config.team
        data = self._get_json(f"/api/v1/teams/{_seg(team)}/pipelines")
        pipelines = [Pipeline.from_api(p) for p in data or []]
        self._logger.info("Pipelines listed", team=team, count=len(pipelines))
        return pipelines

    def list_jobs(self, pipeline: str, team: str | None = None) -> list[PipelineJob]:
        team = team or self._config.team
        data = self._get_json(
            f"/api/v1/teams/{_seg(team)}/pipelines/{_seg(pipeline)}/jobs"
        )
        jobs = [PipelineJob.from_api(j) for j in data or []]
        self._logger.info("Jobs listed", team=team, pipeline=pipeline, count=len(jobs))
        return jobs

    def list_builds(
        self, pipeline: str, job: str, limit: int = 20, team: str | None = None
    ) -> list[Build]:
        team = team or self._config.team
        data = self._get_json(
            f"/api/v1/teams/{_seg(team)}/pipelines/{_seg(pipeline)}"
            f"/jobs/{_seg(job)}/builds",
            params={"limit": limit},
        )
        builds = [Build.from_api(b) for b in data or []]
        self._logger.info(
            "Builds listed", team=team, pipeline=pipeline, job=job, count=len(builds)
        )
        return builds

    def get_build_details(self, build_id: int) -> tuple[Build, dict | None]:
        """Return the build and, when available, its plan.

        The plan is diagnostic only: failing to fetch it is logged and the
        build is returned without one.
        """
        build = self.get_build(build_id)
        try:
            plan = self._get_json(f"/api/v1/builds/{build_id}/plan")
        except ProviderError as e:
            self._logger.warning(
                "Build plan unavailable", build_id=build_id, error=str(e)
            )
            plan = None
        return build, plan

    def health_check(self) -> dict[str, Any]:
        return self._get_json("/api/v1/info")

    # --- helpers ---

    def _get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> Any:
        resp = self._client.request("GET", path, params=params, cancel=cancel)
        if resp.status_code != 200:
            raise error_from_response(resp)
        return self._decode(resp)

    def _build_from(self, resp: httpx.Response) -> Build:
        try:
            return Build.from_api(self._decode(resp))
        except (KeyError, TypeError, ValueError) as e:
            raise BackendResponseError(
                resp.status_code, "unexpected build payload from provider"
            ) from e

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise BackendResponseError(
                resp.status_code, "invalid JSON in provider response"
            ) from e
