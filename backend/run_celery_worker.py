#!/usr/bin/env python3
# backend/run_celery_worker.py
"""
Development Celery worker runner for the bookings queue.

Only needed when the expiry sweep runs through Celery beat; set
SCHEDULER_ENABLED=false on the API processes in that setup.
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
    queues = os.getenv("CELERY_QUEUES") or "bookings"
    print(f"Starting Celery worker, consuming queues: {queues}")

    cmd = [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "tutorbook.tasks.celery_app",
        "worker",
        "--loglevel=info",
        "--concurrency=1",
        "--max-tasks-per-child=100",
        "-Q",
        queues,
    ]

    subprocess.run(cmd)
