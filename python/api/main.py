"""
FastAPI Main Application

Entry point for the statement import API.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from statement_import import AuthenticationError, TransactionStoreError
from statement_import.sql_store import create_schema

from .database import engine
from .routes import imports_router, transactions_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Statement Import API...")
    if os.getenv("CREATE_SCHEMA", "false").lower() == "true":
        create_schema(engine)
        logger.info("Import tables created")
    yield
    logger.info("Shutting down Statement Import API...")


app = FastAPI(
    title="Statement Import API",
    description="Bank statement import and transaction categorization",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(imports_router, prefix="/api")
app.include_router(transactions_router, prefix="/api")


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
    )


@app.exception_handler(TransactionStoreError)
async def store_error_handler(request: Request, exc: TransactionStoreError):
    logger.error(f"Store error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Transaction store unavailable"},
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Statement Import API",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "endpoints": {
            "preview": "/api/imports/preview",
            "confirm": "/api/imports/confirm",
            "corrections": "/api/imports/corrections",
            "similar": "/api/transactions/similar",
            "recategorize": "/api/transactions/recategorize",
            "patterns": "/api/transactions/patterns/stats",
        },
        "authentication": "X-User-ID header required in production",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )
