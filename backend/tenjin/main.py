"""
Tenjin - FastAPI Application Entry Point
Live workspace ergonomics monitoring engine.

Run with:  uvicorn tenjin.main:app  (from the backend/ directory)
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tenjin.core.config import settings
from tenjin.routers import session
from tenjin.utils.logger import setup_logging

# Setup logging
setup_logging("DEBUG" if settings.DEBUG else "INFO")
logger = logging.getLogger("tenjin.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager"""
    logger.info("=" * 60)
    logger.info("  Tenjin Live Session Engine - Starting")
    logger.info("=" * 60)

    if settings.gemini_configured:
        logger.info(f"Live model: {settings.LIVE_MODEL}")
        logger.info(f"Audit model: {settings.AUDIT_MODEL}")
    else:
        logger.warning("GEMINI_API_KEY not set - sessions will fail to connect")

    logger.info(f"Environment: {settings.TENJIN_ENV}")
    logger.info(f"Capture source: {settings.CAPTURE_SOURCE}")
    logger.info(f"CORS Origins: {settings.cors_origins_list}")
    logger.info("Tenjin is ready!")
    logger.info("=" * 60)

    yield

    logger.info("Tenjin shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Tenjin - Live Workspace Ergonomics",
    description="Live session engine for posture, distance, blink and focus monitoring",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session.router)


# Health check endpoint
@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": "Tenjin",
        "version": "1.0.0",
        "gemini_configured": settings.gemini_configured,
    }


@app.get("/api/info")
def api_info():
    return {
        "name": "Tenjin API",
        "version": "1.0.0",
        "description": "Live Workspace Ergonomics Engine",
        "endpoints": {
            "session_health": "/api/session/health",
            "websocket_session": "/ws/session",
            "websocket_alerts": "/ws/alerts",
            "health": "/health",
        }
    }
