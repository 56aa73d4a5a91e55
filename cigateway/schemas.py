import datetime
from typing import Any

from pydantic import BaseModel, Field

from cigateway.models import Job, RunStatus


class TriggerRunRequest(BaseModel):
    parameters: dict[str, Any] = {}
    idempotency_key: str | None = Field(default=None, max_length=255)


class RunResponse(BaseModel):
    run_id: str
    job_id: str | None = None
    status: RunStatus
    created_at: datetime.datetime | None = None
    started_at: datetime.datetime | None = None
    finished_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}


class RunEnvelope(BaseModel):
    run: RunResponse


class JobProviderResponse(BaseModel):
    kind: str
    ref: dict[str, Any] = {}


class JobResponse(BaseModel):
    job_id: str
    project: str = ""
    display_name: str = ""
    environment: str = ""
    provider: JobProviderResponse

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            job_id=job.job_id,
            project=job.project,
            display_name=job.display_name,
            environment=job.environment,
            provider=JobProviderResponse(kind=job.provider_kind, ref=job.provider_ref),
        )


class JobListResponse(BaseModel):
    jobs: list[JobResponse]


class HealthResponse(BaseModel):
    status: str
    service: str = "cigateway"
    checks: dict[str, Any] = {}
