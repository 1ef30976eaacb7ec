"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import init_db
from app.routers import (
    health,
    history,
    jobs,
    metafields,
    tags,
)
from app.routers import settings as settings_router

# Initialize database tables on startup
init_db()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="FastAPI service for bulk editing Shopify tags and metafields, with undo"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(settings_router.router, prefix="/api/v1/settings", tags=["Settings"])
app.include_router(tags.router, prefix="/api/v1/tags", tags=["Tags"])
app.include_router(metafields.router, prefix="/api/v1/metafields", tags=["Metafields"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])
app.include_router(history.router, prefix="/api/v1/history", tags=["History"])


@app.api_route("/api")
async def api_root():
    """API information endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }
