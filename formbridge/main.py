from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formbridge.api.routes import integrations
from formbridge.container import build_container
from formbridge.core.config import get_settings
from formbridge.core.errors import NotFoundError
from formbridge.core.logging import configure_logging, get_logger
from formbridge.db.session import build_session_factory, init_models
from formbridge.schemas.common import OperationResult


configure_logging()
logger = get_logger(__name__)


def create_application(
    database_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        engine, session_factory = build_session_factory(database_url or settings.database_url)
        await init_models(engine)
        application.state.container = build_container(session_factory, transport=transport, settings=settings)
        logger.info(
            "application.startup",
            environment=settings.environment,
            integrations=application.state.container.registry.count(),
        )
        try:
            yield
        finally:
            await engine.dispose()
            logger.info("application.shutdown")

    application = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    application.include_router(integrations.router)

    if settings.allowed_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.allowed_origins],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @application.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:  # noqa: ARG001
        body = OperationResult(success=False, error=exc.message)
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body.model_dump())

    return application


app = create_application()
