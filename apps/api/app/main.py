"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.adapters.providers import ProviderSet, build_providers
from app.adapters.quota import AllowanceProvider, MonthlyAllowanceProvider
from app.adapters.safety import ContentFilter, KeywordContentFilter
from app.adapters.storage import ArtifactStorage, HmacSignedUrlStorage
from app.core.config import Settings, get_settings
from app.core.logging_safety import configure_logging
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.routes import jobs_router, segments_router
from app.schemas.error import ErrorResponse
from app.services.jobs import JobCoordinator
from app.services.poll_scheduler import PollScheduler

logger = logging.getLogger(__name__)


def _validation_details(exc: RequestValidationError) -> dict:
    errors = []
    for error in exc.errors():
        errors.append(
            {
                "loc": [str(part) for part in error.get("loc", ())],
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
        )
    return {"errors": errors}


def _apply_contract_response_codes(schema: dict) -> None:
    """Drop FastAPI's default 422 entries; request validation is reported as 400 INVALID_INPUT."""
    for path_item in schema.get("paths", {}).values():
        for operation in path_item.values():
            operation.get("responses", {}).pop("422", None)

    component_schemas = schema.get("components", {}).get("schemas", {})
    for name in ("HTTPValidationError", "ValidationError"):
        component_schemas.pop(name, None)


def create_app(
    *,
    settings: Settings | None = None,
    providers: ProviderSet | None = None,
    allowance: AllowanceProvider | None = None,
    content_filter: ContentFilter | None = None,
    storage: ArtifactStorage | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    store = InMemoryStore()
    providers = providers or build_providers(settings)
    coordinator = JobCoordinator(
        store,
        providers=providers,
        allowance=allowance or MonthlyAllowanceProvider(settings.monthly_generation_limit),
        content_filter=content_filter or KeywordContentFilter(),
        storage=storage
        or HmacSignedUrlStorage(
            base_url=settings.storage_base_url,
            signing_secret=settings.storage_signing_secret,
            ttl_seconds=settings.storage_url_ttl_seconds,
        ),
        settings=settings,
    )
    scheduler = PollScheduler(
        store,
        coordinator,
        providers,
        poll_interval_seconds=settings.poll_interval_seconds,
        staleness_seconds=settings.staleness_seconds,
        workers=settings.poll_workers,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.scheduler_enabled:
            await scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            await providers.aclose()

    app = FastAPI(title="Cadence API", version="0.1.0", lifespan=lifespan)
    app.state.store = store
    app.state.providers = providers
    app.state.coordinator = coordinator
    app.state.scheduler = scheduler

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("request.invalid method=%s path=%s", request.method, request.url.path)
        payload = ErrorResponse(code="INVALID_INPUT", message="Invalid request payload", details=_validation_details(exc))
        return JSONResponse(status_code=400, content=payload.model_dump(mode="json"))

    api_prefix = "/api/v1"
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(segments_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
