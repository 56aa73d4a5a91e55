import hmac
from collections.abc import Callable

import structlog
from fastapi import Depends, Header, HTTPException

from cigateway.ci_adapters.base import CIAdapterProtocol
from cigateway.ci_adapters.concourse.adapter import ConcourseAdapter, ConcourseConfig
from cigateway.config import Settings, parse_api_keys, settings
from cigateway.registry import load_jobs
from cigateway.services.run_service import GatewayService

logger = structlog.get_logger()

_service: GatewayService | None = None


def _concourse_adapter(cfg: Settings) -> CIAdapterProtocol:
    if not cfg.concourse_url:
        raise ValueError("CIGATEWAY_CONCOURSE_URL is required for the concourse provider")
    if not cfg.concourse_bearer_token and not cfg.concourse_username:
        raise ValueError(
            "Either CIGATEWAY_CONCOURSE_BEARER_TOKEN or "
            "CIGATEWAY_CONCOURSE_USERNAME/PASSWORD must be set"
        )
    return ConcourseAdapter(
        ConcourseConfig(
            url=cfg.concourse_url,
            team=cfg.concourse_team,
            username=cfg.concourse_username,
            password=cfg.concourse_password,
            bearer_token=cfg.concourse_bearer_token,
            token_refresh_margin=cfg.token_refresh_margin_seconds,
            timeout=cfg.httpx_timeout,
        ),
        logger=logger,
    )


_provider_factories: dict[str, Callable[[Settings], CIAdapterProtocol]] = {
    "concourse": _concourse_adapter,
}


def register_provider(name: str, factory: Callable[[Settings], CIAdapterProtocol]) -> None:
    """Register a CI provider factory (for extensibility)."""
    _provider_factories[name] = factory


def build_provider(cfg: Settings) -> CIAdapterProtocol:
    factory = _provider_factories.get(cfg.provider)
    if factory is None:
        raise ValueError(f"Unknown CI provider: {cfg.provider}")
    return factory(cfg)


def build_service(cfg: Settings | None = None) -> GatewayService:
    """Load the job registry and wire the configured provider into a service."""
    cfg = cfg or settings
    registry = load_jobs(cfg.jobs_path)
    provider = build_provider(cfg)
    logger.info(
        "Gateway service built",
        provider=cfg.provider,
        jobs=len(registry),
        url=cfg.concourse_url,
        team=cfg.concourse_team,
    )
    return GatewayService(registry, provider, logger=logger)


def get_service() -> GatewayService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Gateway not initialized")
    return _service


def set_service(service: GatewayService | None) -> None:
    """Install the process-wide service (also used by tests)."""
    global _service
    _service = service


def get_api_keys() -> dict[str, str]:
    return parse_api_keys(settings.api_keys)


def verify_api_key(
    authorization: str | None = Header(None),
    api_keys: dict[str, str] = Depends(get_api_keys),
) -> str:
    """Verify the bearer API key and return the key's name."""
    if not api_keys:
        raise HTTPException(status_code=503, detail="API keys not configured")

    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization format, expected 'Bearer <token>'",
        )

    token = authorization[7:]
    for key, name in api_keys.items():
        if hmac.compare_digest(token, key):
            structlog.contextvars.bind_contextvars(api_key_name=name)
            return name

    logger.warning("Invalid API key", key_prefix=token[:8])
    raise HTTPException(status_code=403, detail="Invalid API key")
