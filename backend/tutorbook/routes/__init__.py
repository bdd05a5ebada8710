# backend/tutorbook/routes/__init__.py
"""
HTTP routes for Tutorbook.
"""
