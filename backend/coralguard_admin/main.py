"""FastAPI application entry point"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded

from coralguard_admin.api import admins, auth, health, logs, profile, user_roles
from coralguard_admin.api.deps import get_diagnostics, get_password_hasher
from coralguard_admin.config import settings
from coralguard_admin.database import Base, SessionLocal, engine
from coralguard_admin.errors import AppError, error_payload
from coralguard_admin.middleware.rate_limit import limiter
from coralguard_admin.services.admin_accounts import AdminAccountService
from coralguard_admin.services.audit_trail import AuditTrail
from coralguard_admin.services.permission_engine import PermissionEngine
from coralguard_admin.utils.logger import logger, setup_logging

import coralguard_admin.models  # noqa: F401  registers tables on Base.metadata

# Setup logging
setup_logging(settings.LOG_LEVEL)

VERSION = "0.1.0"


def _seed_bootstrap_super_admin() -> None:
    if not (settings.BOOTSTRAP_SUPER_ADMIN_EMAIL and settings.BOOTSTRAP_SUPER_ADMIN_PASSWORD):
        return
    db = SessionLocal()
    try:
        service = AdminAccountService(
            db,
            get_password_hasher(),
            AuditTrail(db, get_diagnostics()),
            PermissionEngine(),
            id_prefix=settings.ADMIN_ID_PREFIX,
            password_min_length=settings.ADMIN_PASSWORD_MIN_LENGTH,
        )
        service.seed_super_admin(
            settings.BOOTSTRAP_SUPER_ADMIN_EMAIL,
            settings.BOOTSTRAP_SUPER_ADMIN_PASSWORD,
            settings.BOOTSTRAP_SUPER_ADMIN_NAME,
        )
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("CoralGuard admin core starting up", extra={"action": "startup"})
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
    _seed_bootstrap_super_admin()
    yield
    # Shutdown
    logger.info("CoralGuard admin core shutting down", extra={"action": "shutdown"})


# Create FastAPI app
app = FastAPI(
    title="CoralGuard Admin",
    description="Role-based access control and administrative audit engine",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from coralguard_admin.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="coralguard_admin_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting (decorated routes look the limiter up on app.state)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={"action": f"{request.method} {request.url.path}", "error_code": "RATE_LIMITED"}
    )
    return JSONResponse(
        status_code=429,
        content=error_payload(
            "RATE_LIMITED",
            "Too many requests. Please try again later.",
            str(exc.detail),
        ),
    )

# ===== Route Setup =====

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(user_roles.router)
app.include_router(logs.router)
# Last: /admin/{admin_id} would otherwise shadow /admin/profile
app.include_router(admins.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "CoralGuard Admin",
        "version": VERSION,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render every domain error as {"error": {code, message, details}}"""
    logger.info(
        f"{exc.code}: {exc.message}",
        extra={"action": f"{request.method} {request.url.path}", "error_code": exc.code},
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_payload(exc.code, exc.message, exc.details)),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query strings"""
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(error_payload("VALIDATION_ERROR", "Request validation failed", exc.errors())),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={"action": f"{request.method} {request.url.path}"},
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content=error_payload(
            "INTERNAL_ERROR",
            "An unexpected error occurred. Please contact support.",
        ),
    )
