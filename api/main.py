"""
Assessment Access Platform API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from domain.errors import AccessError, Conflict
from services.settings import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Assessment Access Platform API",
    description="REST API for redeeming seat-bounded access codes and tracking assessment progress",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the game frontend's domain in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AccessError)
async def handle_access_error(request: Request, exc: AccessError):
    """Map the domain error taxonomy onto HTTP responses."""
    if exc.status_code >= 500:
        logger.error(
            "Request failed with a store error",
            extra={"path": request.url.path, "error": exc.message},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.message,
            "flag": exc.flag if isinstance(exc, Conflict) else None,
            "status_code": exc.status_code,
        },
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    """Malformed bodies, paths and headers share the ValidationError contract."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "detail": problems,
            "flag": None,
            "status_code": 400,
        },
    )


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "assessment-access-platform-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Assessment Access Platform API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import grants, payments, progress

app.include_router(grants.router, prefix="/api/v1", tags=["Grants"])
app.include_router(progress.router, prefix="/api/v1", tags=["Progress"])
app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
