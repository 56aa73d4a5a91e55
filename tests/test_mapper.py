import datetime

import httpx
import pytest

from cigateway.ci_adapters.concourse.mapper import (
    build_to_run,
    error_from_response,
    map_status,
    transform_event_line,
)
from cigateway.ci_adapters.concourse.refs import ConcourseRunRef
from cigateway.ci_adapters.concourse.resources import Build
from cigateway.ci_adapters.errors import (
    BackendResponseError,
    NotFoundError,
    UnauthorizedError,
    UnavailableError,
)
from cigateway.models import RunStatus


@pytest.mark.parametrize(
    "concourse_status,expected",
    [
        ("pending", RunStatus.queued),
        ("started", RunStatus.running),
        ("succeeded", RunStatus.succeeded),
        ("failed", RunStatus.failed),
        ("aborted", RunStatus.canceled),
        ("errored", RunStatus.errored),
        ("paused", RunStatus.unknown),
        ("", RunStatus.unknown),
    ],
)
def test_map_status(concourse_status, expected):
    assert map_status(concourse_status) == expected


class TestBuildToRun:
    def test_timestamps(self):
        build = Build(
            id=42,
            name="7",
            status="succeeded",
            create_time=1700000000,
            start_time=1700000010,
            end_time=1700000100,
        )
        run = build_to_run(build, ConcourseRunRef("main", "p", "j", 42))

        assert run.run_id == "main:p:j:42"
        assert run.status == RunStatus.succeeded
        assert run.created_at == datetime.datetime(
            2023, 11, 14, 22, 13, 20, tzinfo=datetime.timezone.utc
        )
        assert run.started_at.timestamp() == 1700000010
        assert run.finished_at.timestamp() == 1700000100
        assert run.job_id is None

    def test_zero_timestamps_are_absent(self):
        run = build_to_run(
            Build(id=1, status="pending"), ConcourseRunRef("main", "p", "j", 1)
        )

        assert run.status == RunStatus.queued
        assert run.created_at is None
        assert run.started_at is None
        assert run.finished_at is None


class TestErrorFromResponse:
    def test_404(self):
        err = error_from_response(httpx.Response(404, text="no such build"))
        assert isinstance(err, NotFoundError)

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth(self, status):
        assert isinstance(error_from_response(httpx.Response(status)), UnauthorizedError)

    @pytest.mark.parametrize("status", [502, 503])
    def test_unavailable(self, status):
        assert isinstance(error_from_response(httpx.Response(status)), UnavailableError)

    def test_other_uses_error_field(self):
        err = error_from_response(
            httpx.Response(409, json={"error": "build already running"})
        )
        assert isinstance(err, BackendResponseError)
        assert err.code == 409
        assert err.message == "build already running"

    def test_other_falls_back_to_body(self):
        err = error_from_response(httpx.Response(500, text="internal"))
        assert err.code == 500
        assert err.message == "internal"


class TestTransformEventLine:
    @pytest.mark.parametrize("line", ["", ": keepalive", ":"])
    def test_nothing_to_relay(self, line):
        assert transform_event_line(line) is None

    def test_data_line(self):
        frame = transform_event_line('data: {"event":"log","data":{"payload":"hi"}}')
        assert frame == b'data: {"event":"log","data":{"payload":"hi"}}\n\n'

    @pytest.mark.parametrize("line", ["data: ", "data:"])
    def test_empty_data_line(self, line):
        assert transform_event_line(line) == b"data: \n\n"

    def test_end_event_forms_complete_frame(self):
        lines = ["id: 9", "event: end", "data: ", ""]
        chunks = [transform_event_line(line) for line in lines]

        out = b"".join(c for c in chunks if c is not None)

        assert out == b"id: 9\nevent: end\ndata: \n\n"

    def test_data_line_without_space(self):
        assert transform_event_line('data:{"a":1}') == b'data: {"a":1}\n\n'

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("event: event", b"event: event\n"),
            ("id: 12", b"id: 12\n"),
            ("retry: 3000", b"retry: 3000\n"),
        ],
    )
    def test_sse_fields(self, line, expected):
        assert transform_event_line(line) == expected

    def test_bare_json(self):
        assert transform_event_line('{"event":"status"}') == b'data: {"event":"status"}\n\n'

    @pytest.mark.parametrize("line", ["data: {not json", "garbage", "foo: bar"])
    def test_malformed(self, line):
        with pytest.raises(ValueError):
            transform_event_line(line)
