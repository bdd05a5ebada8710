#!/usr/bin/env python3
# backend/run_celery_beat.py
"""
Development Celery beat runner.

Schedules the expired reservation sweep every CLEANUP_INTERVAL_SECONDS.
Run exactly one beat process per deployment.
"""
import os
from pathlib import Path
import subprocess
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

if __name__ == "__main__":
    print("Starting Celery beat for the booking expiry sweep")

    cmd = [sys.executable, "-m", "celery", "-A", "tutorbook.tasks.celery_app", "beat", "--loglevel=info"]

    subprocess.run(cmd)
