"""
ClassGrade — School Grade Management
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from core.database import close_repository  # noqa: E402
from routes.analyze import router as analyze_router  # noqa: E402
from routes.grades import router as grades_router  # noqa: E402
from core.grading import FINAL_PASS_THRESHOLD, PENDING_RECOVERY_HAS_NO_FINAL_STATUS  # noqa: E402

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="ClassGrade API",
    description=(
        "Quarterly grade recording, final-grade computation and class "
        "analytics for teachers and school secretariat staff."
    ),
    version="1.0.0",
)

# CORS — allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(grades_router, prefix="/api/grades", tags=["Grades"])
app.include_router(analyze_router, prefix="/api/analyze", tags=["Analytics"])


@app.on_event("shutdown")
async def shutdown_repository():
    await close_repository()


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": SCHOOL_NAME,
        "final_pass_threshold": FINAL_PASS_THRESHOLD,
        "pending_recovery_has_no_final_status": PENDING_RECOVERY_HAS_NO_FINAL_STATUS,
    }
