import logging
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from supabase import Client

from app.config import settings
from app.core.errors import (
    ConflictError, HiveError, PolicyDeniedError, StorageConfigurationError,
    TransientUnavailable, ValidationError
)
from app.database.supabase_client import create_service_supabase, get_service_supabase
from app.modules.auth import routes as auth_routes
from app.modules.founders import routes as founders_routes
from app.modules.founders.storage import AvatarStorage

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Most specific first; the lookup walks the exception's MRO
_ERROR_STATUS = {
    ValidationError: 422,
    PolicyDeniedError: 403,
    ConflictError: 409,
    TransientUnavailable: 503,
    StorageConfigurationError: 500,
}


def _error_status(exc: HiveError) -> int:
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            return _ERROR_STATUS[cls]
    return 502


@app.exception_handler(HiveError)
async def hive_error_handler(request: Request, exc: HiveError):
    status_code = _error_status(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    content = {"detail": exc.message, "error": type(exc).__name__}
    if exc.code:
        content["code"] = exc.code
    if status_code == 503:
        return JSONResponse(status_code=status_code, content=content, headers={"Retry-After": "1"})
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(founders_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    # Avatar bucket must exist before first upload; fail loudly rather than guess a name
    if settings.has_service_role:
        AvatarStorage(create_service_supabase()).verify_bucket()
    else:
        logger.warning("Service role key not configured; avatar bucket '%s' verified on first upload", settings.avatar_bucket)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": "Welcome to hive-backend", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready(supabase: Client = Depends(get_service_supabase)):
    """Readiness probe: the avatar bucket must be reachable."""
    AvatarStorage(supabase).verify_bucket(force=True)
    return {"status": "ready", "avatar_bucket": settings.avatar_bucket}
