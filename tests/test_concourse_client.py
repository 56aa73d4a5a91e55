"""Tests for cigateway.ci_adapters.concourse.client.ConcourseClient."""

import threading
from unittest.mock import MagicMock

import httpx
import pytest

from cigateway.ci_adapters.concourse.auth import TokenManager
from cigateway.ci_adapters.concourse.client import ConcourseClient
from cigateway.ci_adapters.errors import (
    RequestCanceledError,
    UnauthorizedError,
    UnavailableError,
)

BASE_URL = "https://concourse.example.com/"


@pytest.fixture
def tokens():
    tokens = MagicMock(spec=TokenManager)
    tokens.get_token.side_effect = ["tok-1", "tok-2", "tok-3"]
    return tokens


@pytest.fixture
def http():
    return MagicMock(spec=httpx.Client)


@pytest.fixture
def client(tokens, http):
    return ConcourseClient(BASE_URL, tokens, http)


class TestRequest:
    def test_sends_bearer_token(self, client, http):
        http.send.return_value = httpx.Response(200, json={"id": 1})

        resp = client.request("GET", "/api/v1/builds/1")

        assert resp.status_code == 200
        call_args = http.build_request.call_args
        assert call_args[0] == ("GET", "https://concourse.example.com/api/v1/builds/1")
        assert call_args[1]["headers"] == {"Authorization": "Bearer tok-1"}
        assert call_args[1]["json"] is None
        http.send.assert_called_once_with(http.build_request.return_value, stream=False)

    def test_json_body_sets_content_type(self, client, http):
        http.send.return_value = httpx.Response(200, json={})

        client.request("POST", "/api/v1/x", json={"a": 1})

        call_args = http.build_request.call_args
        assert call_args[1]["headers"]["Content-Type"] == "application/json"
        assert call_args[1]["json"] == {"a": 1}

    def test_params_passed_through(self, client, http):
        http.send.return_value = httpx.Response(200, json=[])

        client.request("GET", "/api/v1/x", params={"limit": 5})

        assert http.build_request.call_args[1]["params"] == {"limit": 5}

    def test_open_stream_does_not_read_body(self, client, http):
        http.send.return_value = httpx.Response(200)

        client.open_stream("GET", "/api/v1/builds/1/events")

        http.send.assert_called_once_with(http.build_request.return_value, stream=True)


class TestUnauthorizedRetry:
    def test_retries_once_with_fresh_token(self, client, http, tokens):
        http.send.side_effect = [httpx.Response(401), httpx.Response(200, json={})]

        resp = client.request("GET", "/api/v1/info")

        assert resp.status_code == 200
        tokens.invalidate.assert_called_once()
        assert tokens.get_token.call_count == 2
        headers = [c[1]["headers"] for c in http.build_request.call_args_list]
        assert headers == [
            {"Authorization": "Bearer tok-1"},
            {"Authorization": "Bearer tok-2"},
        ]

    def test_second_401_raises_without_third_attempt(self, client, http, tokens):
        http.send.side_effect = [httpx.Response(401), httpx.Response(401)]

        with pytest.raises(UnauthorizedError):
            client.request("GET", "/api/v1/info")

        assert http.send.call_count == 2
        tokens.invalidate.assert_called_once()

    def test_403_is_not_retried(self, client, http, tokens):
        http.send.return_value = httpx.Response(403)

        resp = client.request("GET", "/api/v1/info")

        assert resp.status_code == 403
        assert http.send.call_count == 1
        tokens.invalidate.assert_not_called()

    def test_stream_retried_on_401(self, client, http):
        first = MagicMock(status_code=401)
        http.send.side_effect = [first, httpx.Response(200)]

        resp = client.open_stream("GET", "/api/v1/builds/1/events")

        assert resp.status_code == 200
        first.close.assert_called_once()


class TestFailures:
    def test_transport_error_is_unavailable(self, client, http):
        http.send.side_effect = httpx.ConnectError("refused")

        with pytest.raises(UnavailableError):
            client.request("GET", "/api/v1/info")

    def test_transport_error_not_retried(self, client, http):
        http.send.side_effect = httpx.ReadTimeout("slow")

        with pytest.raises(UnavailableError):
            client.request("GET", "/api/v1/info")

        assert http.send.call_count == 1

    def test_canceled_before_dispatch(self, client, http, tokens):
        tokens.get_token.side_effect = None
        tokens.get_token.return_value = "tok-1"
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RequestCanceledError):
            client.request("GET", "/api/v1/info", cancel=cancel)

        http.send.assert_not_called()

    def test_token_errors_propagate(self, client, http, tokens):
        tokens.get_token.side_effect = UnavailableError("token endpoint unreachable")

        with pytest.raises(UnavailableError):
            client.request("GET", "/api/v1/info")

        http.send.assert_not_called()
