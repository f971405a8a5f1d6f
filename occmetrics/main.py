"""occmetrics API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from occmetrics.cache import CacheSweeper, MetricsCache
from occmetrics.config import Settings, get_settings
from occmetrics.core.context import get_request_id
from occmetrics.core.errors import (
    QueryError,
    StrategyNotFoundError,
    UnknownMetricTypeError,
    ValidationError,
)
from occmetrics.core.logging import configure_structlog, get_logger
from occmetrics.core.middleware import RequestContextMiddleware
from occmetrics.core.redis import init_redis, shutdown_redis
from occmetrics.health.router import router as health_router
from occmetrics.metrics import (
    CachedMetricsService,
    CacheInvalidationListener,
    MetricProviders,
)
from occmetrics.metrics.router import router as metrics_router
from occmetrics.provider import DataProvider, InMemoryDataProvider, RedisChangeFeed
from occmetrics.queries import QueryStrategyFactory


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(
    settings, log_dir=Path(settings.log_dir), file_output=not settings.is_testing
)

logger = get_logger(__name__)


# Collections the metric providers read
SURVEY_TABLES = ("responses", "persons", "questions", "assessments", "users")


def build_metrics_service(
    provider: DataProvider, settings: Settings
) -> tuple[QueryStrategyFactory, MetricsCache, CachedMetricsService]:
    """Wire strategy factory, cache and facade over ``provider``."""
    factory = QueryStrategyFactory(provider, settings)
    cache = MetricsCache(
        default_ttl=settings.cache_default_ttl_seconds,
        short_ttl=settings.cache_short_ttl_seconds,
        realtime_types=settings.cache_realtime_types,
    )
    service = CachedMetricsService(cache, MetricProviders(factory, settings).as_mapping())
    return factory, cache, service


async def _default_provider(settings: Settings) -> DataProvider:
    """In-memory collections, with Redis pub/sub changes when enabled."""
    tables: dict[str, list] = {name: [] for name in SURVEY_TABLES}
    if not settings.redis_enabled:
        return InMemoryDataProvider(tables)

    # Redis is non-critical: realtime falls back to in-process change delivery
    try:
        redis_client = await init_redis()
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - change feed is in-process only",
        )
        return InMemoryDataProvider(tables)

    logger.info("redis_initialized")
    return InMemoryDataProvider(tables, change_feed=RedisChangeFeed(redis_client))


def create_app(data_provider: DataProvider | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        data_provider: Provider the metrics are computed from; an empty
            in-memory provider is built at startup when omitted
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info(
            "starting_application",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment,
        )

        provider = (
            data_provider
            if data_provider is not None
            else await _default_provider(settings)
        )
        factory, cache, service = build_metrics_service(provider, settings)

        sweeper = CacheSweeper(cache, interval=settings.cache_sweep_interval_seconds)
        await sweeper.start()

        listener = CacheInvalidationListener(factory, service)
        await listener.start()

        app.state.data_provider = provider
        app.state.query_factory = factory
        app.state.metrics_cache = cache
        app.state.metrics_service = service
        app.state.cache_sweeper = sweeper
        logger.info("metrics_service_initialized", metric_types=service.metric_types)

        yield

        # Shutdown
        logger.info("shutting_down_application")
        await listener.stop()
        await sweeper.stop()
        await shutdown_redis()

    # Stack traces never reach responses; handlers below log them instead
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Occupational health survey metrics - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    def _error_response(
        request: Request, status_code: int, message: str, **extra: object
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "message": message,
                "status_code": status_code,
                "request_id": _get_request_id_safe(request),
                **extra,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            exc.status_code,
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error",
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle request validation errors (safe to expose)."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in exc.errors()
            ],
        )

    @app.exception_handler(QueryError)
    async def query_exception_handler(
        request: Request, exc: QueryError
    ) -> ORJSONResponse:
        """Map query and metrics errors onto HTTP status codes."""
        if isinstance(exc, ValidationError):
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
        elif isinstance(exc, StrategyNotFoundError | UnknownMetricTypeError):
            status_code = status.HTTP_404_NOT_FOUND
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        logger.warning(
            "query_exception",
            status_code=status_code,
            code=exc.code,
            error=exc.message,
            path=request.url.path,
            method=request.method,
        )
        if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
            return _error_response(request, status_code, "Metrics computation failed")
        return _error_response(
            request, status_code, exc.message, code=exc.code, details=exc.details
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )

    app.include_router(health_router)
    app.include_router(metrics_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "occmetrics API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
