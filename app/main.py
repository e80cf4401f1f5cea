from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.gzip import GZipMiddleware
import logging

from app.database.database import engine, Base
from app.core.config import settings
from app.core.exceptions import BillingError, NotFound, ValidationFailed

# Import routers
from app.modules.invoices.router import router as invoices_router, client_router as client_invoices_router
from app.modules.expenses.router import router as expenses_router
from app.modules.milestones.router import router as milestones_router

# Import models for table creation
import app.modules.users.models
import app.modules.contacts.models
import app.modules.projects.models
import app.modules.items.models
import app.modules.invoices.models
import app.modules.expenses.models
import app.modules.milestones.models

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Billing API",
    description="Invoices, expenses and milestone billing backed by PostgreSQL and MinIO",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    if isinstance(exc, (ValidationFailed, NotFound)):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code}
        )

    logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    detail = "Service temporarily unavailable" if exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE else "Internal server error"
    return JSONResponse(status_code=exc.status_code, content={"detail": detail, "code": exc.code})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


# Include routers
app.include_router(invoices_router)
app.include_router(client_invoices_router)
app.include_router(expenses_router)
app.include_router(milestones_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "Billing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Billing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Billing API shutting down...")
