"""Workforce engine — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workforce.adapters.persistence.database import engine
from workforce.config import settings
from workforce.infrastructure.api.error_handlers import register_error_handlers
from workforce.infrastructure.api.routes_assignment import router as assignment_router
from workforce.infrastructure.api.routes_audit import router as audit_router
from workforce.infrastructure.api.routes_escalation import router as escalation_router
from workforce.infrastructure.api.routes_health import router as health_router
from workforce.infrastructure.api.routes_queue import router as queue_router
from workforce.infrastructure.scheduler import BackgroundJobs

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except Exception as e:
        logger.warning("Database not available on startup: %s", e)

    jobs = BackgroundJobs()
    if settings.enable_background_jobs:
        jobs.start()
    try:
        yield
    finally:
        await jobs.stop()
        await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Workforce Assignment & Escalation Engine",
        description="Routes work items to agents, balances load and drives escalations",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(health_router, prefix="/api")
    app.include_router(queue_router, prefix="/api")
    app.include_router(assignment_router, prefix="/api")
    app.include_router(escalation_router, prefix="/api")
    app.include_router(audit_router, prefix="/api")

    return app


app = create_app()
