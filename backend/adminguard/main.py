"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from adminguard import __version__
from adminguard import models  # noqa: F401  (registers tables on Base.metadata)
from adminguard.api import audit, auth, health, pages, presence
from adminguard.config import settings
from adminguard.errors import AdminGuardError
from adminguard.middleware.rate_limit import limiter
from adminguard.middleware.route_guard import RouteGuardMiddleware
from adminguard.realtime.channel import PresenceHub
from adminguard.realtime.presence import PresenceRegistry
from adminguard.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("AdminGuard backend starting up", extra={
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED
    })
    yield
    ended = await app.state.presence_registry.cleanup_all()
    logger.info(f"AdminGuard backend shutting down ({ended} presence sessions closed)")


app = FastAPI(
    title="AdminGuard",
    description="Admin session, two-factor authentication and presence security core",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Shared realtime state: one presence hub and one registry of live page connections
app.state.presence_hub = PresenceHub()
app.state.presence_registry = PresenceRegistry()

# ===== Middleware Setup =====
# Starlette runs the last-added middleware first: monitoring -> CORS -> route guard

app.add_middleware(RouteGuardMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.METRICS_ENABLED:
    from adminguard.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="adminguard_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting (the limiter itself is a no-op when RATE_LIMIT_ENABLED is false)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "path": request.url.path,
            "reason": "rate_limit",
        }
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )

# ===== Route Setup =====

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(presence.router)
app.include_router(audit.router)
app.include_router(pages.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "AdminGuard",
        "version": __version__,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(AdminGuardError)
async def admin_guard_error_handler(request: Request, exc: AdminGuardError):
    """Render domain errors as {"error": message} with the error's status"""
    if exc.status_code >= 500:
        logger.error(
            f"Dependency failure: {exc.message}",
            extra={"path": request.url.path}
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400, like every other input error"""
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "An unexpected error occurred. Please contact support."
        }
    )
