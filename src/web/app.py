"""FastAPI application factory and setup."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from logging import DEBUG

from fastapi.applications import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from src import __version__, log
from src.config.settings import get_config
from src.core.anilist import get_catalog_import_service
from src.core.sched import JobScheduler
from src.exceptions import AnimeMatcherError
from src.models.schemas.response import Resp
from src.web.middlewares.request_logging import RequestLoggingMiddleware
from src.web.routes import router
from src.web.state import get_app_state

__all__ = ["create_app"]


def _envelope(status_code: int, code: int, msg: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=Resp.error(code, msg).model_dump()
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan context manager.

    Args:
        app (FastAPI): The FastAPI application instance.

    Returns:
        AsyncGenerator: The application lifespan context manager.
    """
    get_app_state().add_shutdown_callback(get_catalog_import_service().close)

    scheduler: JobScheduler | None = app.extra.get("scheduler")
    if scheduler is None:
        log.info("Web: No scheduler passed; external lifecycle management expected")
    else:
        get_app_state().set_scheduler(scheduler)
        if not scheduler.is_running:
            await scheduler.initialize()
            await scheduler.start()
            log.success("Web: Job scheduler started")

    try:
        yield
    finally:
        await get_app_state().shutdown()
        if scheduler and scheduler.is_running:
            await scheduler.stop()


def create_app(scheduler: JobScheduler | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        scheduler (JobScheduler | None): The job scheduler instance.

    Returns:
        FastAPI: The created FastAPI application.
    """
    config = get_config()
    app = FastAPI(title="AnimeMatcher", lifespan=lifespan, version=__version__)

    if scheduler:
        app.extra["scheduler"] = scheduler

    # Add request logging middleware if in debug mode
    if log.level <= DEBUG:
        app.add_middleware(RequestLoggingMiddleware)
        log.debug("Web: Request logging enabled (debug mode)")

    if config.web.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.web.cors_origins,
            allow_credentials="*" not in config.web.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(router)

    @app.exception_handler(AnimeMatcherError)
    async def domain_exception_handler(
        request: Request, exc: AnimeMatcherError
    ) -> JSONResponse:
        """Return AnimeMatcher errors in the response envelope.

        Args:
            request (Request): The incoming HTTP request.
            exc (AnimeMatcherError): The exception instance.

        Returns:
            JSONResponse: Envelope carrying the error code and message.
        """
        cls = exc.__class__
        msg = str(exc.args[0]) if exc.args else cls.__doc__ or cls.__name__
        log.debug(f"Web: {request.method} {request.url.path} -> {cls.__name__}: {msg}")
        return _envelope(cls.status_code, cls.code, msg)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Return request validation failures in the response envelope."""
        msg = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: "
            f"{error.get('msg', '')}"
            for error in exc.errors()
        )
        return _envelope(422, 422, msg or "Invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Return routing errors such as 404 and 405 in the response envelope."""
        return _envelope(exc.status_code, exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Log unexpected errors and hide their details from clients."""
        log.error(
            f"Web: Unhandled error on {request.method} {request.url.path}",
            exc_info=exc,
        )
        return _envelope(500, 500, "Internal server error")

    return app
