import os
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("CIGATEWAY_CONCOURSE_URL", "https://concourse.example.com")
os.environ.setdefault("CIGATEWAY_CONCOURSE_USERNAME", "gateway")
os.environ.setdefault("CIGATEWAY_CONCOURSE_PASSWORD", "secret")
os.environ.setdefault("CIGATEWAY_JOBS_PATH", "jobs.example.yaml")

from cigateway.ci_adapters.concourse.adapter import ConcourseAdapter, ConcourseConfig
from cigateway.ci_adapters.concourse.client import ConcourseClient
from cigateway.ci_adapters.concourse.refs import job_ref_from_provider_ref, parse_run_id
from cigateway.dependencies import get_api_keys, set_service
from cigateway.main import app
from cigateway.models import Job
from cigateway.registry import JobRegistry
from cigateway.services.run_service import GatewayService

API_KEY = "test-api-key"
AUTH_HEADER = {"Authorization": f"Bearer {API_KEY}"}

CONCOURSE_URL = "https://concourse.example.com"


def make_job(job_id="deploy-api", **kwargs):
    defaults = {
        "job_id": job_id,
        "provider_kind": "concourse",
        "project": "api",
        "display_name": "Deploy API",
        "environment": "staging",
        "provider_ref": {"team": "main", "pipeline": "p", "job": "j"},
    }
    defaults.update(kwargs)
    return Job(**defaults)


def json_response(status_code, payload=None, **kwargs):
    if payload is None:
        return httpx.Response(status_code, **kwargs)
    return httpx.Response(status_code, json=payload, **kwargs)


@pytest.fixture
def registry():
    job = make_job()
    broken = make_job(
        "broken-ref",
        provider_ref={"team": "main", "pipeline": 7},
    )
    return JobRegistry({job.job_id: job, broken.job_id: broken})


@pytest.fixture
def mock_client():
    """A ConcourseClient double; tests queue httpx.Response objects on it."""
    return MagicMock(spec=ConcourseClient)


@pytest.fixture
def adapter(mock_client):
    return ConcourseAdapter(
        ConcourseConfig(url=CONCOURSE_URL, team="main"), client=mock_client
    )


@pytest.fixture
def service(registry, adapter):
    return GatewayService(registry, adapter)


@pytest.fixture
def mock_provider():
    provider = MagicMock(spec=ConcourseAdapter)
    provider.kind = "concourse"
    provider.parse_run_id.side_effect = parse_run_id
    provider.build_job_ref.side_effect = job_ref_from_provider_ref
    return provider


@pytest.fixture
def api_service(registry, mock_provider):
    return GatewayService(registry, mock_provider)


@pytest.fixture
def client(api_service):
    """TestClient with the service installed and a fixed API key set."""
    app.dependency_overrides[get_api_keys] = lambda: {API_KEY: "ci"}
    set_service(api_service)
    yield TestClient(app)
    set_service(None)
    app.dependency_overrides.clear()
