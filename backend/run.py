#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Uses DATABASE_URL from the environment (SQLite file by default) and
creates missing tables on startup.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

from tutorbook.core.config import settings

if __name__ == "__main__":
    print(f"Starting {settings.brand_name} development server ({settings.environment})")
    print("Access at: http://localhost:8000")
    print("API Docs: http://localhost:8000/docs")

    uvicorn.run(
        "tutorbook.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        reload_delay=0.5,  # Small delay to batch rapid file changes
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=5,  # Stop the cleanup thread instead of hanging
    )
