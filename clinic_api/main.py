"""FastAPI application entry point."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from clinic_api.core.config import settings
from clinic_api.core.errors import AppError
from clinic_api.core.login_attempts import build_login_attempt_store
from clinic_api.core.migrations import ensure_schema
from clinic_api.core.structured_logging import build_log_context
from clinic_api.db.session import SessionLocal, engine
from clinic_api.schemas.auth import TenantContext
from clinic_api.services import audit_service, lead_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Patient data must not leave the platform
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from clinic_api.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_MIGRATE:
        ensure_schema(engine)
    app.state.login_attempts = build_login_attempt_store()
    lead_service.get_leads_cache()
    logger.info("Clinic API started (env=%s, version=%s)", settings.ENV, settings.VERSION)
    yield


app = FastAPI(
    title="Clinic API",
    description="Multi-tenant clinic management API",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Access-Token", "X-Requested-With"],
    expose_headers=["Content-Disposition", "X-Calendar-Degraded"],
)


# ============================================================================
# Error Handling
# ============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    content = {"detail": exc.message, "code": exc.code}
    errors = getattr(exc, "errors", None)
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Field-keyed 422 body: ``{"errors": {"body.amount": "..."}}``."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()))
        errors.setdefault(field or "request", error.get("msg", "invalid value"))
    return JSONResponse(
        status_code=422,
        content={"detail": "validation failed", "code": "VALIDATION_ERROR", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error",
        extra=build_log_context(route=request.url.path, method=request.method),
    )
    detail = "internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content={"detail": detail, "code": "INTERNAL_ERROR"})


# ============================================================================
# Audit Trail
# ============================================================================

def _write_audit(request: Request, context: TenantContext, status_code: int, duration_ms: float) -> None:
    db = SessionLocal()
    try:
        audit_service.log_request(db, request, context, status_code, duration_ms)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to write audit log",
            extra=build_log_context(
                user_id=context.user_id,
                clinic_id=context.clinic_id,
                route=request.url.path,
                method=request.method,
            ),
        )
    finally:
        db.close()


@app.middleware("http")
async def audit_requests(request: Request, call_next):
    """Record mutating (and all platform) requests made by authenticated callers."""
    started = time.perf_counter()
    response = await call_next(request)
    context = getattr(request.state, "tenant", None)
    if isinstance(context, TenantContext) and audit_service.should_audit(
        request.method, request.url.path
    ):
        duration_ms = (time.perf_counter() - started) * 1000
        await run_in_threadpool(_write_audit, request, context, response.status_code, duration_ms)
    return response


# ============================================================================
# Routers
# ============================================================================

from clinic_api.routers import (  # noqa: E402
    appointments,
    auth,
    calendar,
    clinic,
    financial,
    leads,
    metrics,
    patients,
    saas,
)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(calendar.router, prefix="/api/calendar", tags=["calendar"])
app.include_router(appointments.router, prefix="/api/appointments", tags=["appointments"])
app.include_router(leads.router, prefix="/api/leads", tags=["leads"])
app.include_router(metrics.router, prefix="/api/metrics", tags=["metrics"])
app.include_router(clinic.router, prefix="/api/clinic", tags=["clinic"])
app.include_router(financial.router, prefix="/api/financial", tags=["financial"])
app.include_router(patients.router, prefix="/api/patients", tags=["patients"])

# Platform administration (super_admin only)
app.include_router(saas.router, prefix="/api/saas", tags=["saas"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
