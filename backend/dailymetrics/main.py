"""FastAPI application entrypoint.

Configures CORS, error handling and Sentry, includes the metrics router, and
exposes a healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from . import schemas
from .deps import get_settings
from .errors import MetricsError
from .routers import metrics as metrics_router
from .telemetry import init_sentry

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


def create_app() -> FastAPI:
    settings = get_settings()

    # Sentry first so startup errors are captured too
    if init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT):
        logger.info("[STARTUP] Sentry error tracking enabled")

    app = FastAPI(
        title="Daily Metrics API",
        description="""
        Collects daily platform metric snapshots (users, posts, comments) and
        serves them to dashboards.

        ## Collection
        - `POST /metrics/collect`: snapshot every active metric for one date
        - `POST /metrics/backfill`: collect a historical date range

        ## Reads (cached for a few minutes)
        - `GET /metrics`: snapshots for a date range
        - `GET /metrics/current`: latest value per category
        - `GET /metrics/activity`: zero-filled daily activity
        - `GET /metrics/collection-status`: most recent run
        """,
        version="1.0.0",
    )

    origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MetricsError)
    async def metrics_error_handler(request: Request, exc: MetricsError):
        if exc.status_code >= 500:
            logger.error("[METRICS_API] %s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        else:
            logger.info("[METRICS_API] %s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        body = schemas.ErrorResponse(error=exc.message, details=exc.details)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # Malformed body or query parameters get the same envelope as MetricsError
        details = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
            for err in exc.errors()
        )
        logger.info("[METRICS_API] %s %s rejected: invalid request (%s)", request.method, request.url.path, details)
        body = schemas.ErrorResponse(error="Invalid request", details=details)
        return JSONResponse(status_code=400, content=body.model_dump())

    app.include_router(metrics_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Returns ok when the API process is up.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
