import threading
from typing import Any

import httpx
import structlog

from cigateway.ci_adapters.concourse.auth import TokenManager
from cigateway.ci_adapters.errors import (
    RequestCanceledError,
    UnauthorizedError,
    UnavailableError,
)


class ConcourseClient:
    """Authenticated calls against the Concourse ATC API.

    A 401 invalidates the cached token and the call is retried exactly once
    with a fresh one; a second 401 raises ``UnauthorizedError``. Transport
    failures raise ``UnavailableError`` and are never retried here.
    """

    def __init__(self, base_url: str, tokens: TokenManager, http: httpx.Client, logger=None):
        self._base_url = base_url.rstrip("/")
        self._tokens = tokens
        self._http = http
        self._logger = logger or structlog.get_logger().bind(component="concourse_client")

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> httpx.Response:
        """Send a request and return the fully read response."""
        return self._send(method, path, json=json, params=params, cancel=cancel, stream=False)

    def open_stream(
        self, method: str, path: str, cancel: threading.Event | None = None
    ) -> httpx.Response:
        """Send a request without reading the body. The caller must close it."""
        return self._send(method, path, json=None, params=None, cancel=cancel, stream=True)

    def _send(self, method, path, json, params, cancel, stream) -> httpx.Response:
        self._logger.debug("HTTP request", method=method, path=path)

        token = self._tokens.get_token(cancel)
        resp = self._dispatch(method, path, token, json, params, cancel, stream)

        if resp.status_code == 401:
            resp.close()
            self._logger.info(
                "Received 401, invalidating token and retrying", method=method, path=path
            )
            self._tokens.invalidate()
            token = self._tokens.get_token(cancel)
            resp = self._dispatch(method, path, token, json, params, cancel, stream)
            if resp.status_code == 401:
                resp.close()
                self._logger.warning("Retry rejected with 401", method=method, path=path)
                raise UnauthorizedError(f"{method} {path} rejected after token refresh")

        self._logger.debug(
            "HTTP response", method=method, path=path, status=resp.status_code
        )
        return resp

    def _dispatch(self, method, path, token, json, params, cancel, stream) -> httpx.Response:
        if cancel is not None and cancel.is_set():
            raise RequestCanceledError(f"{method} {path} canceled")

        headers = {"Authorization": f"Bearer {token}"}
        if json is not None:
            headers["Content-Type"] = "application/json"
        request = self._http.build_request(
            method,
            f"{self._base_url}{path}",
            headers=headers,
            json=json,
            params=params,
        )
        try:
            return self._http.send(request, stream=stream)
        except httpx.TransportError as e:
            self._logger.error(
                "HTTP request failed", method=method, path=path, error=str(e)
            )
            raise UnavailableError(f"{method} {path} failed: {e}") from e
