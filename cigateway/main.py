from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cigateway.config import settings
from cigateway.dependencies import build_service, set_service
from cigateway.logging_config import configure_logging
from cigateway.middleware import request_context
from cigateway.routers import discovery, health, jobs, runs

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_format)
    service = build_service()
    set_service(service)
    logger.info("Gateway started", provider=settings.provider)
    yield
    set_service(None)
    service.close()
    logger.info("Gateway stopped")


app = FastAPI(title="cigateway", version="0.1.0", lifespan=lifespan)

app.middleware("http")(request_context)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Accept", "Authorization", "Content-Type"],
    max_age=300,
)

app.include_router(health.router)
app.include_router(jobs.router)
app.include_router(runs.router)
app.include_router(discovery.router)
