"""
LendBox Backend: multi-tenant item lending.

ARCHITECTURE:
- Public API: borrowers browse, request loans with a live photo, check status
  and return items using only their loan code
- Organization admins: verify loans and returns, manage items, reports
- Master admin: organizations, admin accounts, monitoring
- SQL database: source of truth for all state

SAFETY MODEL:
- Two human checkpoints: approval (stock reserved) and return check (stock
  released, or kept out as shrinkage when lost)
- Every status change is a compare-and-swap on the current status
- Organization scope re-checked on every admin transition
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from lendbox.api.routes import admin_master, admin_org, auth, notifications, public
from lendbox.core.config import settings
from lendbox.core.exceptions import LendingError
from lendbox.core.rate_limiter import RateLimitMiddleware
from lendbox.db.init_db import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables and the master admin account."""
    logger.info("[*] Initializing database...")
    init_db()
    logger.info("[OK] Database initialized")
    yield


app = FastAPI(
    title="LendBox API",
    description="Item lending with verified approval and return checkpoints.",
    version="0.1.0",
    lifespan=lifespan,
)

# SECURITY: Trust only configured hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
    expose_headers=["Content-Type", "Content-Disposition"],
)

# SECURITY: Rate limiting on the public (unauthenticated) API
app.add_middleware(RateLimitMiddleware)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"  # Prevent MIME sniffing
    response.headers["X-Frame-Options"] = "DENY"  # Prevent clickjacking
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"  # HSTS
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Invalid input"
    return JSONResponse(status_code=422, content={"success": False, "message": message, "errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


app.include_router(public.router, prefix="/public", tags=["public"])
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(notifications.router, prefix="/auth/notifications", tags=["notifications"])
app.include_router(admin_org.router, prefix="/admin-org", tags=["admin-org"])
app.include_router(admin_master.router, prefix="/admin-master", tags=["admin-master"])

# Stored photos (borrower, return, item images, logos)
app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="storage")


@app.get("/health")
def health():
    return {"status": "ok"}
