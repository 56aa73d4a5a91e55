"""
Tests for cigateway.dependencies: provider and service wiring from settings.
"""

from unittest.mock import MagicMock

import pytest

from cigateway.ci_adapters.concourse.adapter import ConcourseAdapter
from cigateway.config import Settings
from cigateway.dependencies import (
    _provider_factories,
    build_provider,
    build_service,
    register_provider,
)
from cigateway.services.run_service import GatewayService
from tests.test_registry import JOBS_YAML


def _settings(**kwargs):
    defaults = {
        "concourse_url": "https://concourse.example.com",
        "concourse_username": "gateway",
        "concourse_password": "secret",
        "concourse_bearer_token": None,
        "provider": "concourse",
    }
    defaults.update(kwargs)
    return Settings(**defaults)


class TestBuildProvider:
    def test_concourse(self):
        adapter = build_provider(_settings(concourse_team="ops"))
        try:
            assert isinstance(adapter, ConcourseAdapter)
            assert adapter.team == "ops"
        finally:
            adapter.close()

    def test_bearer_token_is_enough(self):
        adapter = build_provider(
            _settings(concourse_username=None, concourse_bearer_token="tok")
        )
        adapter.close()

    def test_missing_url(self):
        with pytest.raises(ValueError, match="CONCOURSE_URL"):
            build_provider(_settings(concourse_url=None))

    def test_missing_credentials(self):
        with pytest.raises(ValueError, match="BEARER_TOKEN"):
            build_provider(_settings(concourse_username=None))

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown CI provider"):
            build_provider(_settings(provider="jenkins"))

    def test_register_provider(self):
        provider = MagicMock()
        register_provider("fake", lambda cfg: provider)
        try:
            assert build_provider(_settings(provider="fake")) is provider
        finally:
            _provider_factories.pop("fake")


class TestBuildService:
    def test_build_service(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text(JOBS_YAML)

        service = build_service(_settings(jobs_path=str(path)))
        try:
            assert isinstance(service, GatewayService)
            assert {j.job_id for j in service.list_jobs()} == {"deploy-api", "nightly"}
        finally:
            service.close()

    def test_missing_jobs_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            build_service(_settings(jobs_path=str(tmp_path / "missing.yaml")))
