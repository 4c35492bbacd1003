"""FastAPI application for sf-time-machine."""

import dataclasses
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sf_time_machine.client import RestDataClient
from sf_time_machine.config import TimeMachineConfig
from sf_time_machine.jobs import JobManager
from sf_time_machine.time_machine import TimeMachine
from .config import settings
from .routers import backup, health, jobs, time_machine

# App-managed logging: own stdout handler, independent of uvicorn's root config
app_logger = logging.getLogger("sf-time-machine")
app_logger.setLevel(logging.INFO)
app_logger.propagate = False
app_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
))
app_logger.addHandler(console_handler)

if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    app_logger.handlers.clear()
    app_logger.propagate = True

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage job registry and data client lifecycle."""
    config = TimeMachineConfig.from_env()
    backup_config = dataclasses.replace(
        config.backup,
        output_directory=settings.backup_dir,
        run_prefix=settings.backup_run_prefix,
        api_version=settings.sf_api_version
    )
    config = dataclasses.replace(config, backup=backup_config)

    app.state.config = config
    app.state.job_manager = JobManager(config)
    app.state.time_machine = TimeMachine(backup_config.output_directory, backup_config.run_prefix)

    if settings.sf_instance_url and settings.sf_access_token:
        app.state.data_client = RestDataClient(
            settings.sf_instance_url,
            settings.sf_access_token,
            api_version=settings.sf_api_version,
            request_timeout=config.fetcher.request_timeout
        )
        logger.info(f"Data client configured for {settings.sf_instance_url}")
    else:
        app.state.data_client = None
        logger.info("Data platform credentials not configured - backups disabled")

    yield

    logger.info("Shutting down sf-time-machine API...")
    if app.state.data_client is not None:
        await app.state.data_client.aclose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(backup.router, prefix=settings.api_prefix)
    app.include_router(jobs.router, prefix=settings.api_prefix)
    app.include_router(time_machine.router, prefix=settings.api_prefix)
    app.include_router(health.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


app = create_app()
