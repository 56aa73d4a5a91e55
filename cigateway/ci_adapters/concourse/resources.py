"""Concourse API payloads used by the adapter and the discovery endpoints."""

from dataclasses import dataclass
from typing import Any


@dataclass
class Build:
    id: int
    name: str = ""
    status: str = ""
    team_name: str = ""
    pipeline_name: str = ""
    job_name: str = ""
    start_time: int = 0
    end_time: int = 0
    create_time: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Build":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            status=str(data.get("status") or ""),
            team_name=data.get("team_name") or "",
            pipeline_name=data.get("pipeline_name") or "",
            job_name=data.get("job_name") or "",
            start_time=int(data.get("start_time") or 0),
            end_time=int(data.get("end_time") or 0),
            create_time=int(data.get("create_time") or 0),
        )


@dataclass
class Team:
    id: int
    name: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Team":
        return cls(id=int(data["id"]), name=data["name"])


@dataclass
class Pipeline:
    id: int
    name: str
    team_name: str = ""
    paused: bool = False
    public: bool = False
    archived: bool = False
    last_updated: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Pipeline":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            team_name=data.get("team_name") or "",
            paused=bool(data.get("paused", False)),
            public=bool(data.get("public", False)),
            archived=bool(data.get("archived", False)),
            last_updated=int(data.get("last_updated") or 0),
        )


@dataclass
class PipelineJob:
    id: int
    name: str
    team_name: str = ""
    pipeline_name: str = ""
    paused: bool = False
    next_build: Build | None = None
    finished_build: Build | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PipelineJob":
        next_build = data.get("next_build")
        finished_build = data.get("finished_build")
        return cls(
            id=int(data["id"]),
            name=data["name"],
            team_name=data.get("team_name") or "",
            pipeline_name=data.get("pipeline_name") or "",
            paused=bool(data.get("paused", False)),
            next_build=Build.from_api(next_build) if next_build else None,
            finished_build=Build.from_api(finished_build) if finished_build else None,
        )
