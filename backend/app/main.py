"""Main FastAPI application - prospect enrichment, scoring and conversion."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Import database and models FIRST so every table is registered
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
from app.database import Base, init_db
from app.models import ICP, ProspectingCampaign, Prospect, EnrichmentLog, Lead  # noqa: F401

from app.config import settings
from app.exceptions import ProspectingError, QuotaExceededError
from app.routers import prospect_routes

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Prospect Pipeline API",
    description="Prospect enrichment, ICP scoring and lead conversion",
    version="1.0.0",
    redirect_slashes=False
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# ERROR MAPPING
# ============================================

@app.exception_handler(ProspectingError)
async def prospecting_error_handler(request: Request, exc: ProspectingError):
    """Domain errors -> JSON with the error's HTTP status."""
    content = {"detail": exc.message}

    if isinstance(exc, QuotaExceededError):
        content.update({
            "provider": exc.provider,
            "usage": exc.usage,
            "limit": exc.limit,
            "reset_date": exc.reset_date.isoformat(),
        })

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=content)


# ============================================
# ROUTER REGISTRATION
# ============================================

app.include_router(prospect_routes.router)  # Already has /api/v1/prospecting prefix


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "registered_tables": len(Base.metadata.tables),
        "features": [
            "enrichment_routing",
            "quota_tracking",
            "icp_scoring",
            "batch_scoring",
            "prospect_conversion"
        ]
    }


# ============================================
# STARTUP & SHUTDOWN
# ============================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("Starting Prospect Pipeline API...")
    await init_db()
    logger.info(f"Registered {len(Base.metadata.tables)} SQLAlchemy tables:")
    for table_name in sorted(Base.metadata.tables.keys()):
        logger.info(f"  ✓ {table_name}")
    logger.info("Application started successfully!")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down Prospect Pipeline API...")
