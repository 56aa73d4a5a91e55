from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8081

    # Static job registry
    jobs_path: str = "jobs.yaml"

    # API keys accepted by the gateway, "name:key,name:key"
    api_keys: str = ""

    # CI provider
    provider: str = "concourse"

    # Concourse
    concourse_url: str | None = None
    concourse_team: str = "main"
    concourse_username: str | None = None
    concourse_password: str | None = None
    concourse_bearer_token: str | None = None
    token_refresh_margin_seconds: int = 300  # 5 minutes

    # HTTP client
    httpx_timeout: int = 30

    # Logging
    log_level: str = "info"
    log_format: str = "json"  # "json" or "console"

    model_config = {"env_prefix": "CIGATEWAY_"}


settings = Settings()


def parse_api_keys(value: str) -> dict[str, str]:
    """Parse "name:key,name:key" into a key -> name mapping."""
    keys: dict[str, str] = {}
    for pair in value.split(","):
        pair = pair.strip()
        if not pair:
            continue
        name, sep, key = pair.partition(":")
        name, key = name.strip(), key.strip()
        if not sep or not name or not key:
            raise ValueError(f"Invalid API key entry '{pair}' (expected name:key)")
        keys[key] = name
    return keys
