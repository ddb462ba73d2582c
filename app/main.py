from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from app.modules.optimization.api.v1.suggestions import router as suggestions_router
from app.modules.reporting.api.v1.costs import router as costs_router
from app.shared.core.config import get_settings
from app.shared.core.exceptions import CostsightException
from app.shared.core.logging import setup_logging
from app.shared.core.middleware import RequestIDMiddleware
from app.shared.core.rate_limit import setup_rate_limiting

# Configure logging
setup_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("app_starting", app=settings.APP_NAME, environment=settings.ENVIRONMENT)

    yield

    # Dispose pooled connections on shutdown
    from app.shared.db.session import engine
    await engine.dispose()
    logger.info("app_stopped", app=settings.APP_NAME)


settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)


@app.exception_handler(CostsightException)
async def costsight_exception_handler(request: Request, exc: CostsightException):
    """Maps domain errors onto their HTTP status with a stable error code."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        error=exc.message
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message, "details": exc.details}
    )


# Prometheus metrics at /metrics (includes the forecasting/import counters)
Instrumentator().instrument(app).expose(app, include_in_schema=False)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_rate_limiting(app)

app.include_router(costs_router, prefix="/api/v1/costs")
app.include_router(suggestions_router, prefix="/api/v1/optimization/suggestions")


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "app": settings.APP_NAME,
        "version": settings.VERSION,
    }


def run() -> None:
    """Console entry point: serves the app with uvicorn using HOST/PORT/WORKERS."""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=settings.WORKERS,
        reload=settings.DEBUG,
        log_config=None,  # structlog owns logging
    )
