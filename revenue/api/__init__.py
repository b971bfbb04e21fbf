"""
FastAPI Backend for the Municipal Revenue Portal

Provides REST API endpoints for the treasury dashboard and citizen payments.
"""

from .main import app

__all__ = ["app"]
