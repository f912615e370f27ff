import uuid
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .models import ErrorResponse, HealthResponse
from .routers.soils import router as soils_router
from .settings import APP_VERSION, FRONTEND_ORIGIN, LOG_LEVEL
from .utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(
    title="Soil Info API",
    description="Soil map lookups (WMS/WFS) and RRP mapping unit compositions",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(soils_router, prefix="/api/soils", tags=["soils"])

# CORS configuration
origins = [origin.strip() for origin in FRONTEND_ORIGIN.split(",") if origin.strip()]
allow_origin_regex: Optional[str] = r"https?://.*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    allow_origin_regex=allow_origin_regex,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log requests with timing and add request ID."""
    request_id = str(uuid.uuid4())[:8]
    start_time = _utcnow()

    request.state.request_id = request_id

    logger.info(
        "Request started",
        extra={
            'request_id': request_id,
            'method': request.method,
            'url': str(request.url),
            'client_ip': request.client.host if request.client else None
        }
    )

    try:
        response = await call_next(request)
    except Exception as e:
        duration = (_utcnow() - start_time).total_seconds() * 1000
        logger.error(
            "Request failed",
            extra={
                'request_id': request_id,
                'method': request.method,
                'url': str(request.url),
                'duration_ms': round(duration, 2),
                'error': str(e)
            },
            exc_info=True
        )
        raise

    duration = (_utcnow() - start_time).total_seconds() * 1000
    logger.info(
        "Request completed",
        extra={
            'request_id': request_id,
            'method': request.method,
            'url': str(request.url),
            'status_code': response.status_code,
            'duration_ms': round(duration, 2)
        }
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with structured error response."""
    request_id = getattr(request.state, 'request_id', 'unknown')

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            request_id=request_id
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions with structured error response."""
    request_id = getattr(request.state, 'request_id', 'unknown')

    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if LOG_LEVEL == "DEBUG" else None,
            request_id=request_id
        ).model_dump()
    )


@app.get("/healthz", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        timestamp=_utcnow().isoformat(),
        version=APP_VERSION
    )


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
