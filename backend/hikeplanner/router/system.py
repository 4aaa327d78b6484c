from fastapi import APIRouter, Depends

from hikeplanner.core.config import APP_NAME, APP_VERSION, DATABASE_BACKEND, ENVIRONMENT, GIT_COMMIT
from hikeplanner.core.exceptions import ServiceUnavailableError
from hikeplanner.models.common import utcnow
from hikeplanner.repositories import Repositories
from hikeplanner.router.dependencies import get_repositories

router = APIRouter(tags=["System"])

SERVICE_NAME = "hike-planner-server"


@router.get("/")
def root():
    return {
        "service": {"name": APP_NAME, "version": APP_VERSION, "docs": "/docs"},
        "message": f"{APP_NAME}. See /docs for the endpoints.",
    }


@router.get("/health")
def health_check():
    return {
        "health": {"status": "healthy", "service": SERVICE_NAME, "timestamp": utcnow().isoformat()},
        "message": "Service is healthy",
    }


@router.get("/health/detailed")
async def detailed_health_check(repos: Repositories = Depends(get_repositories)):
    """
    Pings every collection; 503 when any of them is unreachable.
    """
    collections = await repos.ping()
    if not all(collections.values()):
        raise ServiceUnavailableError(
            "Service is unhealthy",
            details=[{"collection": name, "healthy": ok} for name, ok in collections.items()],
        )
    return {
        "health": {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": utcnow().isoformat(),
            "database": {"backend": DATABASE_BACKEND, "collections": collections},
        },
        "message": "All dependencies are healthy",
    }


@router.get("/version")
def version():
    return {
        "version": {
            "name": APP_NAME,
            "version": APP_VERSION,
            "environment": ENVIRONMENT,
            "commit": GIT_COMMIT,
        },
        "message": "Version retrieved successfully",
    }
