import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from hikeplanner.core.config import (
    APP_NAME,
    APP_VERSION,
    CORS_ORIGINS,
    DATABASE_BACKEND,
    SERVER_HOST,
    SERVER_PORT,
)
from hikeplanner.core.exceptions import APIException
from hikeplanner.core.logging import setup_logging
from hikeplanner.db.database import close_database_connection, open_document_stores
from hikeplanner.models.common import ErrorBody, ErrorResponse, utcnow
from hikeplanner.repositories import Repositories
from hikeplanner.router.auth import router as auth_router
from hikeplanner.router.recommendation import router as recommendation_router
from hikeplanner.router.system import router as system_router
from hikeplanner.router.trail import router as trail_router
from hikeplanner.router.trip import router as trip_router
from hikeplanner.router.user import router as user_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: open the store and build the repositories once
    setup_logging()
    logger.info(f"🚀 Starting up {APP_NAME} v{APP_VERSION} ({DATABASE_BACKEND})...")
    stores = await open_document_stores(DATABASE_BACKEND)
    app.state.repositories = Repositories.from_stores(stores)
    yield
    # Shutdown: Close database connection
    logger.info(f"🛑 Shutting down {APP_NAME}...")
    await close_database_connection()


app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(elapsed_ms, 1),
            }
        },
    )
    return response


def error_response(status_code: int, message: str, details: list | None = None) -> JSONResponse:
    envelope = ErrorResponse(
        error=ErrorBody(
            message=message,
            statusCode=status_code,
            timestamp=utcnow().isoformat(),
            details=details or None,
        )
    )
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


def _sanitize(errors: list[dict]) -> list[dict]:
    """Keep location, message and type; input values are never echoed back."""
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    if exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}",
            exc_info=exc,
        )
        return error_response(exc.status_code, "Internal server error")
    if exc.status_code >= 500:
        logger.warning(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", _sanitize(exc.errors()))


@app.exception_handler(PydanticValidationError)
async def model_validation_handler(request: Request, exc: PydanticValidationError):
    # Raised when a merged document fails revalidation in a repository
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", _sanitize(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
            }
        },
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# Mount routers
app.include_router(system_router)
app.include_router(auth_router)
app.include_router(trip_router)
app.include_router(trail_router)
app.include_router(user_router)
app.include_router(recommendation_router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)
