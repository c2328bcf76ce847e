import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from requisition_crm.config import settings
from requisition_crm.api.v1.router import api_router
from requisition_crm.core.exceptions import ProcurementError
from requisition_crm.database import async_session_factory, close_db, init_db
from requisition_crm.logging_config import configure_logging


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Configure logging
    - Create tables when running against SQLite (local development);
      PostgreSQL schemas are managed by Alembic

    Shutdown:
    - Dispose of pooled database connections
    """
    configure_logging()
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    if settings.is_sqlite:
        await init_db()

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    await close_db()


OPENAPI_TAGS = [
    {"name": "Requests", "description": "Material requests raised by site engineers"},
    {"name": "Cost Comparisons", "description": "Vendor quotes and manager review"},
    {"name": "Purchase Orders", "description": "Orders issued from approved requests, and direct POs"},
    {"name": "Deliveries", "description": "Delivery challans and payment status"},
    {"name": "Inventory", "description": "Central store stock and direct-delivery checks"},
    {"name": "Vendors", "description": "Vendor master"},
    {"name": "Sites", "description": "Delivery sites"},
]

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Site engineers raise requests, managers approve, purchase officers source and order.",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


def _error_response(request: Request, status_code: int, content: dict) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=content)

    # Error responses bypass CORSMiddleware; add headers if origin is allowed
    origin = request.headers.get("origin", "")
    if origin and (origin in settings.cors_origins_list or "*" in settings.cors_origins_list):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


@app.exception_handler(ProcurementError)
async def procurement_exception_handler(request: Request, exc: ProcurementError):
    """Map domain errors to their HTTP status."""
    return _error_response(request, exc.status_code, {
        "error": exc.message,
        "type": type(exc).__name__,
        "details": exc.details,
        "path": str(request.url.path),
        "method": request.method,
    })


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors (storage failures included) become 500s."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, 500, {
        "error": str(exc) if settings.DEBUG else "Internal server error",
        "type": type(exc).__name__,
        "details": {},
        "path": str(request.url.path),
        "method": request.method,
    })


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        logger.error("Health check failed: %s", e)
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
