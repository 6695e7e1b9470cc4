"""
SOD Flow - Main FastAPI Application
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sodflow.api.v1 import router as api_v1_router
from sodflow.core.config import settings
from sodflow.exceptions import SodFlowException
from sodflow.logging_config import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ===================
# Security Headers Middleware
# ===================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # The UI is embedded in the CRM form, so framing stays allowed
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting SOD Flow API",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "history_backend": settings.HISTORY_BACKEND,
        },
    )
    if settings.HISTORY_BACKEND == "database":
        from sodflow.db.session import init_database
        init_database()
    yield
    logger.info("Shutting down SOD Flow API")


app = FastAPI(
    title="SOD Flow API",
    description="Shortage resolution workflow for sales order lines (Warehouse, Sale, Source)",
    version=settings.VERSION,
    lifespan=lifespan,
)

# Security headers middleware (outermost)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
)


# ===================
# Exception Handlers
# ===================

@app.exception_handler(SodFlowException)
async def sodflow_exception_handler(request: Request, exc: SodFlowException):
    logger.warning(
        f"SOD Flow Exception: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path},
    )
    error_dict = exc.to_dict()
    error_dict["timestamp"] = _timestamp()
    return JSONResponse(status_code=exc.status_code, content=error_dict)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})
    logger.warning("Validation error on %s", request.url.path, extra={"errors": errors})
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": errors},
            "timestamp": _timestamp(),
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
            "timestamp": _timestamp(),
        },
    )


app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "SOD Flow API", "version": settings.VERSION, "status": "online"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("sodflow.main:app", host="0.0.0.0", port=8001, reload=True)
