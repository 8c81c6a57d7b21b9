"""
CARS-G API Server
=================

FastAPI application for community safety reports, patrol assignment, points
and the user/admin chat.

Endpoints:
- GET  /health                      - Health check (public)
- /api/auth/*                       - Sign-in provisioning, own profile, own points
- /api/reports/*                    - Report lifecycle
- /api/users/*                      - User administration, leaderboard, stats
- /api/chat/*                       - Messaging

Every error is rendered as {"error": {"message": ..., "status": ...}}.

Run with:
    uvicorn cars_backend.api:app --host 0.0.0.0 --port 3001
"""

import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .db.session import init_db
from .errors import ServiceError
from .middleware.rate_limit import RateLimitMiddleware
from .middleware.request_log import RequestLoggingMiddleware
from .middleware.security import SecurityHeadersMiddleware
from .schemas import HealthResponse
from .api_auth import router as auth_router
from .api_chat import router as chat_router
from .api_reports import router as reports_router
from .api_users import router as users_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

settings = get_settings()

app = FastAPI(
    title=settings.service_name,
    description="Community safety reporting: reports, patrol assignment, points and chat",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

logger.info(f"CORS allow origins: {settings.cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware)
    logger.info(
        f"Rate limiting enabled: {settings.rate_limit_max_requests} requests "
        f"per {settings.rate_limit_window_seconds}s"
    )

app.include_router(auth_router, prefix="/api/auth")
app.include_router(reports_router, prefix="/api/reports")
app.include_router(users_router, prefix="/api/users")
app.include_router(chat_router, prefix="/api/chat")


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="OK",
        timestamp=datetime.utcnow(),
        service=get_settings().service_name,
    )


# =============================================================================
# Startup
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")

    for warning in settings.validate_config():
        logger.warning(f"Config: {warning}")

    try:
        init_db()
        logger.info("Database initialized")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        raise


# =============================================================================
# Error handling
# =============================================================================

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "status": status_code}},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def api_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Framework errors (unknown route, wrong method) in the common envelope."""
    if exc.status_code == 404:
        return _error_response(404, "Route not found")
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Request failed"
    return _error_response(exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are input errors (400), without echoing the input."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(part for part in first.get("loc", ()) if isinstance(part, str) and part != "body")
        message = f"Invalid {loc}: {first.get('msg')}" if loc else f"Invalid request: {first.get('msg')}"
    else:
        message = "Invalid request"
    return _error_response(400, message)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {exc.__class__.__name__}")
    return _error_response(500, "Internal Server Error")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return the error envelope"""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc.__class__.__name__}")
    return _error_response(500, "Internal Server Error")
