"""
FastAPI Backend for Statement Import

Provides REST API endpoints for importing bank statements and
recategorizing transactions.
"""

from .main import app

__all__ = ["app"]
