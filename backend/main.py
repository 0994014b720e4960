"""
Marks Tracker — Class Test Marks Analytics
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv

# Load environment before the route modules read their settings.
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routes.analyze import DEFAULT_SUBJECTS, TREND_STABLE_BAND, router as analyze_router
from routes.reports import CLASS_NAME, router as reports_router

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="Marks Tracker API",
    description=(
        "Class test marks analytics — weekly, monthly and annual averages, "
        "subject progress and consistency, computed statistically."
    ),
    version="1.0.0",
)

# CORS: allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(analyze_router, prefix="/api/analyze", tags=["Analytics"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])

logger.info(f"Marks Tracker API ready for {CLASS_NAME} ({len(DEFAULT_SUBJECTS)} default subjects)")


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "class_name": CLASS_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "class_name": CLASS_NAME,
        "subjects": DEFAULT_SUBJECTS,
        "trend_stable_band": TREND_STABLE_BAND,
    }
