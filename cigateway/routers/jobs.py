import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from cigateway.cancellation import run_cancellable
from cigateway.dependencies import get_service, verify_api_key
from cigateway.schemas import (
    JobListResponse,
    JobResponse,
    RunEnvelope,
    RunResponse,
    TriggerRunRequest,
)
from cigateway.services.run_service import GatewayService, ServiceError

logger = structlog.get_logger()

router = APIRouter(
    prefix="/v1/jobs",
    tags=["jobs"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=JobListResponse)
def list_jobs(service: GatewayService = Depends(get_service)):
    return JobListResponse(jobs=[JobResponse.from_job(j) for j in service.list_jobs()])


@router.post(
    "/{job_id}/runs",
    response_model=RunEnvelope,
    response_model_exclude_none=True,
    status_code=201,
)
async def trigger_run(
    job_id: str,
    request: Request,
    body: TriggerRunRequest | None = None,
    service: GatewayService = Depends(get_service),
):
    body = body or TriggerRunRequest()
    try:
        run = await run_cancellable(
            request, service.trigger_run, job_id, body.parameters, body.idempotency_key
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    logger.info("Run triggered", job_id=job_id, run_id=run.run_id)
    return RunEnvelope(run=RunResponse.model_validate(run))
