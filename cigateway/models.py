import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunStatus(str, Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    canceled = "canceled"
    errored = "errored"
    unknown = "unknown"


@dataclass(frozen=True)
class Job:
    job_id: str
    provider_kind: str
    project: str = ""
    display_name: str = ""
    environment: str = ""
    provider_ref: dict[str, Any] = field(default_factory=dict)


@dataclass
class Run:
    run_id: str
    status: RunStatus
    created_at: datetime.datetime | None = None
    started_at: datetime.datetime | None = None
    finished_at: datetime.datetime | None = None
    job_id: str | None = None
