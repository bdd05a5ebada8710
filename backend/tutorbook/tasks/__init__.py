# backend/tutorbook/tasks/__init__.py
"""
Celery tasks package for Tutorbook.

Only the expired reservation sweep lives here; it is the multi-process
alternative to the in-process cleanup scheduler.
"""
