#!/usr/bin/env python3
"""
Compose Orchestrator - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the API server

All business logic is in the modules, following black box principles.
"""

import logging
import logging.config as log_config
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orchestrator import __version__
from orchestrator.config import ConfigProvider, EnvConfigProvider
from orchestrator.logging_config import get_logging_config
from orchestrator.modules.api import HealthResponse, build_services, router
from orchestrator.modules.correlation import StaleRunError
from orchestrator.modules.jobs import JobNotFoundError
from orchestrator.modules.ratelimit import RateLimitExceededError

logger = logging.getLogger("orchestrator.main")


def create_app(
    config_provider: Optional[ConfigProvider] = None,
    start_workers: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config_provider: Configuration source (environment by default)
        start_workers: Start the execution workers in the lifespan. Tests that
            only exercise the HTTP surface turn this off so jobs stay queued.
    """
    config_provider = config_provider or EnvConfigProvider()
    api_config = config_provider.get_api_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle - initialize and cleanup resources.
        """
        logger.info("Starting Compose Orchestrator...")

        services = build_services(config_provider)
        app.state.services = services
        if start_workers:
            services.supervisor.start()

        logger.info("Compose Orchestrator started successfully")

        yield

        logger.info("Shutting down Compose Orchestrator...")
        await services.supervisor.shutdown()
        app.state.services = None
        logger.info("Compose Orchestrator shutdown complete")

    app = FastAPI(
        title="Compose Orchestrator",
        description="Run allow-listed docker compose commands and stream their output",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = None

    if api_config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=api_config.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type", "Last-Event-ID"],
            expose_headers=["X-Request-Id", "Retry-After"],
        )

    app.include_router(router, tags=["jobs"])

    @app.get("/health", response_model=HealthResponse)
    @app.get("/healthz", response_model=HealthResponse, include_in_schema=False)
    async def health_check(request: Request):
        """
        Health check endpoint. No authentication required.

        Returns:
            200: Service healthy
            503: Modules not initialized
        """
        services = getattr(request.app.state, "services", None)
        timestamp = datetime.now(UTC).isoformat()
        if services is None:
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "error": "Service not initialized"},
            )
        return HealthResponse(
            status="healthy",
            queue_depth=services.supervisor.queue_depth,
            running_jobs=[job.id for job in services.store.running()],
            active_run_id=services.guard.get_active_run(),
            timestamp=timestamp,
        )

    # Error handlers

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request, exc):
        """Handle unknown job ids."""
        logger.debug(f"Job not found: {exc}")
        return JSONResponse(status_code=404, content={"error": "Not found"})

    @app.exception_handler(StaleRunError)
    async def stale_run_handler(request, exc):
        """Handle requests for a superseded run."""
        logger.warning(f"Stale run rejected: {exc}")
        return JSONResponse(
            status_code=409,
            content={
                "error": "stale_run",
                "reason": exc.reason,
                "runId": exc.run_id,
                "activeRunId": exc.active_run_id,
            },
        )

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_handler(request, exc):
        """Handle clients over their request budget."""
        logger.warning(f"Rate limit exceeded: {exc}")
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests"},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ValueError)
    async def validation_error_handler(request, exc):
        """Handle validation errors."""
        logger.error(f"Validation error: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    return app


def run() -> None:
    """Console entry point."""
    config_provider = EnvConfigProvider()
    api_config = config_provider.get_api_config()

    # Use dict config for logging, not file path
    logging_config = get_logging_config(api_config.log_level, api_config.module_log_levels)
    log_config.dictConfig(logging_config)

    uvicorn.run(
        "orchestrator.main:create_app",
        factory=True,
        host=api_config.host,
        port=api_config.port,
        log_level=api_config.log_level.lower(),
        reload=api_config.debug,
        log_config=logging_config,
    )


if __name__ == "__main__":
    run()
