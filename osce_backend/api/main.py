"""
FastAPI application for the OSCE exam backend

Run:
    uvicorn osce_backend.api.main:app --reload

All routes live under /api/v1. Errors are rendered as
    {"success": false, "message": ..., "error_code": ..., "details": ...}
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..core.constants import CORS_ORIGINS, ENVIRONMENT, IS_PRODUCTION, NO_CACHE_HEADERS
from ..core.logging_config import setup_logging
from ..database.config import get_db_config
from .exceptions import ExamAPIException
from .schemas.common import ErrorResponse
from .routers import (
    assignments,
    auth,
    catalog,
    cron,
    evaluation,
    evaluators,
    exams,
    groups,
    hospitals,
    metrics,
    stats,
    students,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _error_body(message: str, error_code: str, details=None) -> dict:
    return ErrorResponse(message=message, error_code=error_code, details=details).model_dump()


def _with_traceback(exc: BaseException, details=None):
    """Adds the formatted traceback to 500 details outside production"""
    if IS_PRODUCTION:
        return details
    return {**(details or {}), "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    get_db_config().create_all()
    logger.info(f"OSCE backend started (environment={ENVIRONMENT})")
    yield
    logger.info("OSCE backend shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="OSCE Exam Backend",
        description="Gestión de exámenes prácticos por estaciones: alumnos, evaluadores, exámenes y calificaciones",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def no_cache_headers(request: Request, call_next):
        response = await call_next(request)
        if request.method == "GET":
            response.headers.update(NO_CACHE_HEADERS)
        return response

    # =========================================================================
    # EXCEPTION HANDLERS
    # =========================================================================

    @app.exception_handler(ExamAPIException)
    async def exam_api_exception_handler(request: Request, exc: ExamAPIException):
        details = exc.extra or None
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.detail}", extra=exc.extra)
            details = _with_traceback(exc, details)
        else:
            logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(_error_body(exc.detail, exc.error_code or "ERROR", details)),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder(_error_body(
                "Invalid request data", "VALIDATION_ERROR", {"errors": exc.errors()}
            )),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail), "HTTP_ERROR"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal server error", "INTERNAL_ERROR", _with_traceback(exc)),
        )

    # =========================================================================
    # ROUTERS
    # =========================================================================

    for module in (
        auth, exams, catalog, students, evaluators, hospitals, groups,
        assignments, evaluation, cron, stats, metrics,
    ):
        app.include_router(module.router, prefix=API_PREFIX)

    @app.get("/health", tags=["Monitoring"])
    @app.get(f"{API_PREFIX}/health", tags=["Monitoring"], include_in_schema=False)
    async def health():
        return {"status": "ok", "version": __version__, "environment": ENVIRONMENT}

    return app


app = create_app()
