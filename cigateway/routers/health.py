from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from cigateway.dependencies import get_service
from cigateway.schemas import HealthResponse
from cigateway.services.run_service import GatewayService

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
def healthz(service: GatewayService = Depends(get_service)):
    health = service.health_check()
    if health["status"] != "healthy":
        return JSONResponse(status_code=503, content=health)
    return HealthResponse(**health)
