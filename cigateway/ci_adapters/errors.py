"""Errors raised by CI adapters and their backend clients."""


class ProviderError(Exception):
    """Base class for every failure reported by a CI provider."""


class NotFoundError(ProviderError):
    """The backend has no such job, build or pipeline."""


class UnauthorizedError(ProviderError):
    """The backend rejected our credential, even after a refresh."""


class UnavailableError(ProviderError):
    """The backend is unreachable or answered 502/503."""


class RequestCanceledError(ProviderError):
    """The caller canceled before the backend call was issued."""


class MalformedReferenceError(ProviderError, ValueError):
    """A public run id does not parse into a run reference."""


class InvalidJobRefError(ProviderError, ValueError):
    """A job's provider_ref mapping is missing keys or has wrong types."""


class BackendResponseError(ProviderError):
    """Any other non-2xx answer, carrying the backend's own status code."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"provider error {code}: {message}")
