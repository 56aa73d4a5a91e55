"""Concourse job/run references and the public run id codec.

A run id is ``team:pipeline:job:build_id``. Concourse forbids ``:`` in team,
pipeline and job names, so the colon is an unambiguous delimiter that is also
safe unescaped inside a URL path segment.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from cigateway.ci_adapters.errors import InvalidJobRefError, MalformedReferenceError

RUN_ID_SEPARATOR = ":"

# Canonical form only, so that encode(parse(s)) == s.
BUILD_ID_PATTERN = re.compile(r"0|[1-9][0-9]*")


@dataclass(frozen=True)
class ConcourseJobRef:
    team: str
    pipeline: str
    job: str

    kind = "concourse"


@dataclass(frozen=True)
class ConcourseRunRef:
    team: str
    pipeline: str
    job: str
    build_id: int
    build_name: str | None = field(default=None, compare=False)

    kind = "concourse"

    @property
    def run_id(self) -> str:
        return encode_run_id(self.team, self.pipeline, self.job, self.build_id)


def encode_run_id(team: str, pipeline: str, job: str, build_id: int) -> str:
    for name, value in (("team", team), ("pipeline", pipeline), ("job", job)):
        if not value or RUN_ID_SEPARATOR in value:
            raise MalformedReferenceError(
                f"{name} must be non-empty and must not contain "
                f"'{RUN_ID_SEPARATOR}': {value!r}"
            )
    if build_id < 0:
        raise MalformedReferenceError(f"build_id must be non-negative: {build_id}")
    return RUN_ID_SEPARATOR.join((team, pipeline, job, str(build_id)))


def parse_run_id(run_id: str) -> ConcourseRunRef:
    """Parse a public run id back into a run reference.

    Only the shape is validated; whether the build exists is left to the
    backend.
    """
    parts = run_id.split(RUN_ID_SEPARATOR)
    if len(parts) != 4:
        raise MalformedReferenceError(
            "invalid run_id format, expected team:pipeline:job:build_id"
        )
    team, pipeline, job, raw_build_id = parts
    if not (team and pipeline and job):
        raise MalformedReferenceError("run_id segments must be non-empty")
    if not BUILD_ID_PATTERN.fullmatch(raw_build_id):
        raise MalformedReferenceError(f"invalid build_id in run_id: {raw_build_id!r}")
    return ConcourseRunRef(team, pipeline, job, int(raw_build_id))


def job_ref_from_provider_ref(provider_ref: dict[str, Any]) -> ConcourseJobRef:
    values = {}
    for key in ("team", "pipeline", "job"):
        value = provider_ref.get(key)
        if not isinstance(value, str) or not value or RUN_ID_SEPARATOR in value:
            raise InvalidJobRefError(
                f"missing or invalid '{key}' in concourse job ref"
            )
        values[key] = value
    return ConcourseJobRef(**values)
