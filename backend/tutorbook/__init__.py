"""Tutorbook booking core: slot availability, reservations and payment expiry."""

__version__ = "0.1.0"
