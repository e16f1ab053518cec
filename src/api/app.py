from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.image_to_pdf.config import AppConfig, load_config
from core.image_to_pdf.core import ConversionService
from core.image_to_pdf.errors import ConversionError
from core.image_to_pdf.jobs import JobManager
from core.settings import Settings, get_settings

from .routers import convert, health, jobs

API_TITLE = "Image to PDF Converter"
API_VERSION = "0.1.0"


def create_app(config: AppConfig | None = None) -> FastAPI:
    if config is None:
        config = _prepare_config(get_settings())
    if not config.runtime.enable_local_api:
        raise RuntimeError("Local API is disabled. Enable it via configuration or environment.")

    service = ConversionService(config)
    manager = JobManager(config, service)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        manager.shutdown()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.job_manager = manager

    app.include_router(health.router)
    app.include_router(convert.router)
    app.include_router(jobs.router)

    @app.exception_handler(ConversionError)
    async def _conversion_error(_: Request, exc: ConversionError) -> JSONResponse:
        status_code = 413 if exc.code == "SIZE_LIMIT" else 400
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    return app


def _prepare_config(settings: Settings) -> AppConfig:
    config = load_config(settings.config_path)
    if settings.enable_local_api is not None:
        config.runtime.enable_local_api = settings.enable_local_api
    return config


__all__ = ["create_app"]
