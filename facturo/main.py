from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from facturo.database.database import engine, Base

# Import middleware
from facturo.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from facturo.modules.clients.router import router as clients_router
from facturo.modules.taxes.router import taxes_router
from facturo.modules.number_series.router import number_series_router
from facturo.modules.settings.router import settings_router
from facturo.modules.invoices.router import invoices_router
from facturo.modules.quotes.router import quotes_router
from facturo.modules.payments.router import payments_router
from facturo.modules.guest.router import guest_router

# Import models for table creation
import facturo.modules.clients.models
import facturo.modules.taxes.models
import facturo.modules.number_series.models
import facturo.modules.settings.models
import facturo.modules.invoices.models
import facturo.modules.quotes.models
import facturo.modules.payments.models

from facturo.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Facturo API",
    description="Multi-tenant billing API: invoices, quotes, payments and number series",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(clients_router)
app.include_router(taxes_router)
app.include_router(number_series_router)
app.include_router(settings_router)
app.include_router(invoices_router)
app.include_router(quotes_router)
app.include_router(payments_router)
app.include_router(guest_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "Facturo API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Facturo API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Facturo API shutting down...")
