"""Read-only discovery of teams, pipelines, jobs and builds on the backend."""

import dataclasses

from fastapi import APIRouter, Depends, HTTPException, Query

from cigateway.dependencies import get_service, verify_api_key
from cigateway.filters import filter_jobs, filter_pipelines, parse_bool_param
from cigateway.services.run_service import GatewayService, ServiceError

DEFAULT_BUILD_LIMIT = 20
MAX_BUILD_LIMIT = 100

router = APIRouter(
    prefix="/v1",
    tags=["discovery"],
    dependencies=[Depends(verify_api_key)],
)


def _as_dicts(items) -> list[dict]:
    return [dataclasses.asdict(i) for i in items]


def _build_limit(raw: str | None) -> int:
    try:
        limit = int(raw) if raw is not None else DEFAULT_BUILD_LIMIT
    except ValueError:
        return DEFAULT_BUILD_LIMIT
    if limit <= 0:
        return DEFAULT_BUILD_LIMIT
    return min(limit, MAX_BUILD_LIMIT)


@router.get("/discovery/teams")
def list_teams(service: GatewayService = Depends(get_service)):
    try:
        teams = service.list_teams()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return {"teams": _as_dicts(teams)}


@router.get("/discovery/pipelines")
def list_pipelines(
    team: str | None = Query(None),
    search: str | None = Query(None),
    paused: str | None = Query(None),
    archived: str | None = Query(None),
    service: GatewayService = Depends(get_service),
):
    try:
        pipelines = service.list_pipelines(team=team)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    pipelines = filter_pipelines(
        pipelines,
        search=search,
        paused=parse_bool_param(paused),
        archived=parse_bool_param(archived),
    )
    return {"pipelines": _as_dicts(pipelines)}


@router.get("/discovery/pipelines/{pipeline}/jobs")
def list_pipeline_jobs(
    pipeline: str,
    team: str | None = Query(None),
    search: str | None = Query(None),
    paused: str | None = Query(None),
    service: GatewayService = Depends(get_service),
):
    try:
        jobs = service.list_pipeline_jobs(pipeline, team=team)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    jobs = filter_jobs(jobs, search=search, paused=parse_bool_param(paused))
    return {"jobs": _as_dicts(jobs)}


@router.get("/discovery/pipelines/{pipeline}/jobs/{job}/builds")
def list_job_builds(
    pipeline: str,
    job: str,
    team: str | None = Query(None),
    limit: str | None = Query(None),
    service: GatewayService = Depends(get_service),
):
    try:
        builds = service.list_job_builds(
            pipeline, job, limit=_build_limit(limit), team=team
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return {"builds": _as_dicts(builds)}


@router.get("/builds/{build_id}")
def get_build_details(build_id: str, service: GatewayService = Depends(get_service)):
    if not (build_id.isascii() and build_id.isdigit()):
        raise HTTPException(status_code=400, detail="invalid build_id")
    try:
        build, plan = service.get_build_details(int(build_id))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return {"build": dataclasses.asdict(build), "plan": plan}
