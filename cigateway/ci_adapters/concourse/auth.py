import threading
import time
from collections.abc import Callable

import httpx
import structlog

from cigateway.ci_adapters.errors import (
    BackendResponseError,
    RequestCanceledError,
    UnauthorizedError,
    UnavailableError,
)

TOKEN_PATH = "/sky/issuer/token"

# Public client credentials of the fly CLI, accepted by every Concourse.
FLY_CLIENT_AUTH = ("fly", "Zmx5")

STATIC_TOKEN_LIFETIME = 365 * 24 * 3600


class TokenManager:
    """Caches one Concourse bearer token and refreshes it before it expires.

    Readers take a lock-free snapshot of ``(token, expiry)``; refresh and
    invalidation happen under an exclusive lock with a re-check, so callers
    that race on an expired token trigger a single fetch between them.

    A pre-supplied ``bearer_token`` is installed with a one year lifetime and
    never refreshed over the network: after ``invalidate`` the same token is
    installed again.
    """

    def __init__(
        self,
        base_url: str,
        http: httpx.Client,
        username: str | None = None,
        password: str | None = None,
        bearer_token: str | None = None,
        refresh_margin: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        logger=None,
    ):
        self._base_url = base_url.rstrip("/")
        self._http = http
        self._username = username
        self._password = password
        self._bearer_token = bearer_token
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._logger = logger or structlog.get_logger().bind(component="token_manager")

        self._lock = threading.Lock()
        self._credential: tuple[str, float] | None = None
        if bearer_token:
            self._credential = self._static_credential()

    def get_token(self, cancel: threading.Event | None = None) -> str:
        credential = self._credential
        if self._is_fresh(credential):
            return credential[0]

        with self._lock:
            credential = self._credential
            if self._is_fresh(credential):
                return credential[0]

            if self._bearer_token:
                credential = self._static_credential()
            else:
                credential = self._fetch(cancel)
            self._credential = credential
            return credential[0]

    def invalidate(self) -> None:
        with self._lock:
            self._credential = None
        self._logger.debug("Token invalidated")

    def _is_fresh(self, credential: tuple[str, float] | None) -> bool:
        if credential is None:
            return False
        token, expiry = credential
        return bool(token) and self._clock() < expiry - self._refresh_margin

    def _static_credential(self) -> tuple[str, float]:
        return self._bearer_token, self._clock() + STATIC_TOKEN_LIFETIME

    def _fetch(self, cancel: threading.Event | None) -> tuple[str, float]:
        if cancel is not None and cancel.is_set():
            raise RequestCanceledError("token fetch canceled")

        url = f"{self._base_url}{TOKEN_PATH}"
        self._logger.debug("Fetching token", url=url)
        try:
            resp = self._http.post(
                url,
                data={
                    "grant_type": "password",
                    "username": self._username or "",
                    "password": self._password or "",
                    "scope": "openid",
                },
                auth=FLY_CLIENT_AUTH,
            )
        except httpx.TransportError as e:
            raise UnavailableError(f"token endpoint unreachable: {e}") from e

        if resp.status_code in (400, 401, 403):
            raise UnauthorizedError(f"token fetch rejected ({resp.status_code})")
        if resp.status_code != 200:
            raise BackendResponseError(resp.status_code, resp.text)

        try:
            payload = resp.json()
            token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise BackendResponseError(
                resp.status_code, "malformed token response"
            ) from e

        self._logger.info("Token refreshed", expires_in=expires_in)
        return token, self._clock() + expires_in
