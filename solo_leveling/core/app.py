from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from solo_leveling.api.router import api_router
from solo_leveling.core.config import AppSettings, get_settings
from solo_leveling.core.database import dispose_engine, init_database, session_scope
from solo_leveling.services.telemetry import TelemetryService


logger = logging.getLogger(__name__)


def _configure_logging(level_name: str) -> None:
    """Ensure application logs propagate with the requested verbosity."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        )
    root_logger.setLevel(level)


def _install_telemetry(app: FastAPI) -> None:
    """Persist request timings and unhandled errors to the monitoring tables."""

    @app.middleware("http")
    async def performance_monitor(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        try:
            async with session_scope() as session:
                await TelemetryService(session).record_request(
                    endpoint=request.url.path,
                    method=request.method,
                    response_time_ms=elapsed_ms,
                    status_code=response.status_code,
                    user_id=_header_user_id(request),
                )
        except Exception:
            logger.exception("Performance monitoring error")
        return response

    @app.exception_handler(Exception)
    async def log_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        try:
            async with session_scope() as session:
                await TelemetryService(session).record_error(
                    str(exc) or exc.__class__.__name__,
                    level=getattr(exc, "severity", "error"),
                    endpoint=request.url.path,
                    method=request.method,
                    user_id=_header_user_id(request),
                )
        except Exception:
            logger.exception("Failed to log system error")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "status": 500},
        )


def _header_user_id(request: Request) -> int | None:
    raw = request.headers.get("x-admin-user-id")
    return int(raw) if raw and raw.isdigit() else None


def create_app(settings: AppSettings | None = None) -> FastAPI:
    settings = settings or get_settings()
    _configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if settings.database_url:
            await init_database()
        yield
        if settings.database_url:
            await dispose_engine()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.database_url:
        _install_telemetry(app)

    app.include_router(api_router, prefix="/api")

    @app.get("/", tags=["health"])
    async def root() -> dict[str, str]:
        return {"service": settings.app_name, "environment": settings.app_env}

    return app
