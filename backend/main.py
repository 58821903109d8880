import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from config import settings
from db.database import init_db
from auth.routes import router as auth_router
from api.rifles import router as rifles_router
from api.ammo import router as ammo_router
from api.environment import router as environment_router
from api.dope import router as dope_router
from services.errors import ConflictError, DopeError, NotFoundError, ValidationError

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings.validate_security_configuration()

# Create all tables
init_db()

app = FastAPI(title=settings.APP_NAME, version=settings.API_VERSION)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.SECURITY_HEADERS_ENABLED:
        return response
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Content-Security-Policy"] = settings.SECURITY_CSP
    return response


def _error_body(message: str, errors: list | None = None) -> dict:
    body = {
        "success": False,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if errors:
        body["errors"] = errors
    return body


@app.exception_handler(DopeError)
async def domain_error_handler(request: Request, exc: DopeError):
    if isinstance(exc, ValidationError):
        status_code = 400
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ConflictError):
        status_code = 409
    else:
        status_code = 400
    logger.info("%s %s rejected (%s): %s", request.method, request.url.path, type(exc).__name__, exc.message)
    body = _error_body(exc.message, getattr(exc, "errors", None))
    if isinstance(exc, ConflictError) and exc.count is not None:
        body["count"] = exc.count
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError):
    logger.warning("Database unavailable during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content=_error_body("The service is temporarily unavailable. Please try again."),
        headers={"Retry-After": "5"},
    )


# Routers
API_PREFIX = "/api/v1"
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(rifles_router, prefix=API_PREFIX)
app.include_router(ammo_router, prefix=API_PREFIX)
app.include_router(environment_router, prefix=API_PREFIX)
app.include_router(dope_router, prefix=API_PREFIX)


@app.get("/api/health")
def health_check():
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "version": settings.API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get(API_PREFIX)
def api_index():
    return {
        "name": settings.APP_NAME,
        "version": settings.API_VERSION,
        "endpoints": {
            "auth": f"{API_PREFIX}/auth",
            "rifles": f"{API_PREFIX}/rifles",
            "ammo": f"{API_PREFIX}/ammo",
            "environment": f"{API_PREFIX}/environment",
            "dope": f"{API_PREFIX}/dope",
        },
        "health": "/api/health",
    }
