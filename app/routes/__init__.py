"""Routes package for FastAPI endpoints.

This package contains all API route modules for the form service.
"""

from app.routes import forms, health, public

__all__ = ["forms", "health", "public"]
