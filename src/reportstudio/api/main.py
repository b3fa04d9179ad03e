"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reportstudio.api import routers
from reportstudio.core.config import Settings, get_settings
from reportstudio.core.errors import ReportingError
from reportstudio.core.logging import get_logger
from reportstudio.engine import ReportingEngine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler.

    Builds the engine on startup unless one was injected, starts the cache
    sweeper, and closes an engine it built on shutdown.
    """
    owned = getattr(app.state, "engine", None) is None
    if owned:
        app.state.engine = ReportingEngine(app.state.settings)
    engine: ReportingEngine = app.state.engine
    engine.start()

    yield

    if owned:
        engine.close()
        app.state.engine = None


async def reporting_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render engine errors as ``{"error", "message", "details"}``."""
    assert isinstance(exc, ReportingError)
    if exc.status_code >= 500:
        logger.warning("request_failed", path=request.url.path, error=exc.code)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def create_app(
    engine: ReportingEngine | None = None,
    settings: Settings | None = None,
    title: str = "Report Studio Data Engine",
    version: str = "0.1.0",
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Engine to serve; built from settings on startup if None
        settings: Engine settings (defaults to ``get_settings()``)
        title: API title
        version: API version
        cors_origins: Allowed CORS origins (default: allow all)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        version=version,
        description="Data sources, profiling, statistics and transformation pipelines",
        lifespan=lifespan,
    )
    app.state.settings = settings or (engine.settings if engine else get_settings())
    app.state.engine = engine

    if cors_origins is None:
        cors_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ReportingError, reporting_error_handler)

    app.include_router(routers.statistics.router, prefix="/api/v1", tags=["statistics"])
    app.include_router(routers.profiling.router, prefix="/api/v1", tags=["profiling"])
    app.include_router(routers.pipeline.router, prefix="/api/v1", tags=["pipeline"])
    app.include_router(routers.datasets.router, prefix="/api/v1", tags=["datasets"])
    app.include_router(routers.query.router, prefix="/api/v1", tags=["query"])

    @app.get("/health")  # type: ignore[untyped-decorator]
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
