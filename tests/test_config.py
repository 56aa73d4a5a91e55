import pytest

from cigateway.config import Settings, parse_api_keys


class TestParseApiKeys:
    def test_parse(self):
        assert parse_api_keys("ci:abc123, ops:def456") == {"abc123": "ci", "def456": "ops"}

    def test_empty(self):
        assert parse_api_keys("") == {}
        assert parse_api_keys(" , ") == {}

    def test_key_may_contain_colon(self):
        assert parse_api_keys("ci:a:b") == {"a:b": "ci"}

    @pytest.mark.parametrize("value", ["justakey", ":abc", "ci:"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_api_keys(value)


class TestSettings:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CIGATEWAY_PORT", "9000")
        monkeypatch.setenv("CIGATEWAY_CONCOURSE_TEAM", "ops")
        monkeypatch.setenv("CIGATEWAY_CONCOURSE_BEARER_TOKEN", "tok")

        cfg = Settings()

        assert cfg.port == 9000
        assert cfg.concourse_team == "ops"
        assert cfg.concourse_bearer_token == "tok"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CIGATEWAY_CONCOURSE_TEAM", raising=False)
        monkeypatch.delenv("CIGATEWAY_PROVIDER", raising=False)

        cfg = Settings()

        assert cfg.provider == "concourse"
        assert cfg.concourse_team == "main"
        assert cfg.token_refresh_margin_seconds == 300
        assert cfg.log_format == "json"
