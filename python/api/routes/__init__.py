"""
API Routes Package

Contains all route modules for the statement import API.
"""

from .imports import router as imports_router
from .transactions import router as transactions_router

__all__ = [
    "imports_router",
    "transactions_router",
]
