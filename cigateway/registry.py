from pathlib import Path

import yaml

from cigateway.models import Job


class JobRegistry:
    def __init__(self, jobs: dict[str, Job]):
        self._jobs = jobs

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def get_all_jobs(self) -> list[Job]:
        return list(self._jobs.values())

    @property
    def job_ids(self) -> list[str]:
        return list(self._jobs.keys())

    def __len__(self) -> int:
        return len(self._jobs)


def parse_jobs(data: dict | None) -> JobRegistry:
    """Validate the ``jobs:`` list of a jobs document and build a registry."""
    jobs: dict[str, Job] = {}
    for index, job_data in enumerate((data or {}).get("jobs") or []):
        if not isinstance(job_data, dict):
            raise ValueError(f"Job at index {index} is not a mapping.")
        job_id = job_data.get("job_id")
        if not job_id:
            raise ValueError(f"Job at index {index} is missing 'job_id'.")
        if job_id in jobs:
            raise ValueError(f"Duplicate job_id '{job_id}'.")

        provider = job_data.get("provider") or {}
        kind = provider.get("kind")
        if not kind:
            raise ValueError(f"Job '{job_id}' is missing 'provider.kind'.")

        ref = provider.get("ref") or {}
        if not isinstance(ref, dict):
            raise ValueError(f"Job '{job_id}' has a non-mapping 'provider.ref'.")

        jobs[job_id] = Job(
            job_id=job_id,
            provider_kind=kind,
            project=job_data.get("project") or "",
            display_name=job_data.get("display_name") or "",
            environment=job_data.get("environment") or "",
            provider_ref=dict(ref),
        )
    return JobRegistry(jobs)


def load_jobs(path: str | Path) -> JobRegistry:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Jobs file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    return parse_jobs(data)
