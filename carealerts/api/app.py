"""
Care Alerts FastAPI application.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from carealerts.api.routes import alerts, health, notifications, preferences
from carealerts.pipeline import CareAlertsPipeline
from carealerts.shared.config import settings
from carealerts.shared.exceptions import ContractViolationError, PreferenceError
from carealerts.shared.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("Starting Care Alerts API")

    # Tests may install their own pipeline before startup
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = CareAlertsPipeline()

    health.set_start_time(time.time())

    logger.info("Care Alerts API ready")
    yield

    logger.info("Care Alerts API stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Care Alerts",
        description="At-risk student detection and care alert notifications",
        version="0.1.0",
        lifespan=lifespan,
    )

    cors_origins = getattr(settings.api, "cors_origins", ["http://localhost:3000"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ContractViolationError)
    async def contract_violation_handler(request: Request, exc: ContractViolationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(PreferenceError)
    async def preference_error_handler(request: Request, exc: PreferenceError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    app.include_router(health.router)
    app.include_router(alerts.router)
    app.include_router(preferences.router)
    app.include_router(notifications.router)

    @app.get("/")
    async def root():
        return {"service": "carealerts", "status": "running"}

    return app


app = create_app()


def main():
    """CLI entry point for uvicorn."""
    import uvicorn

    host = getattr(settings.api, "host", "0.0.0.0")
    port = getattr(settings.api, "port", 8000)
    uvicorn.run(
        "carealerts.api.app:app",
        host=host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
