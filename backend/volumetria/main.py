"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from volumetria.api.v1 import ingestion, maintenance, reports, rules, uploads
from volumetria.core.config import settings
from volumetria.core.logging import get_logger, setup_logging
from volumetria.pipeline.errors import (
    ExtractionError,
    InvalidPeriodError,
    InvalidTransitionError,
    MissingScopeError,
    PipelineError,
    RuleNotFoundError,
    UploadNotFoundError,
)

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging("DEBUG" if settings.APP_ENV == "development" else settings.LOG_LEVEL, json=settings.LOG_JSON)
    startup_logger = get_logger("startup")
    startup_logger.info("Application starting", env=settings.APP_ENV)
    yield
    startup_logger.info("Application shutting down")


app = FastAPI(
    title="Volumetria API",
    description="Imaging exam volumetry ingestion and billing rules",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Domain errors → HTTP ────────────────────────────────
ERROR_STATUS: dict[type[PipelineError], int] = {
    UploadNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    InvalidPeriodError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RuleNotFoundError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    MissingScopeError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExtractionError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.warning if status_code < 500 else logger.error
    log("Request failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=status_code,
        content={"sucesso": False, "detail": str(exc), "error_type": type(exc).__name__, **exc.details},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("Invalid request value", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"sucesso": False, "detail": str(exc)},
    )


API_PREFIX = "/api/v1"
app.include_router(ingestion.router, prefix=API_PREFIX)
app.include_router(rules.router, prefix=API_PREFIX)
app.include_router(uploads.router, prefix=API_PREFIX)
app.include_router(reports.router, prefix=API_PREFIX)
app.include_router(maintenance.router, prefix=API_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Public health-check endpoint."""
    return {"status": "ok", "env": settings.APP_ENV}
