"""
Payment Settlement API - Main Application.

FastAPI application receiving payment gateway webhooks and exposing the split
ledger. CORS is open because gateways post from their own infrastructure.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__

# Configure logging before anything logs. LOG_LEVEL is also part of Settings,
# but Settings require Supabase credentials and are only built on first request.
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Payment Settlement API",
    description="Payment gateway webhooks and multi-party split ledger",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "payment-settlement-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Payment Settlement API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "webhook": "/payment-webhook"
    }


# Import and include routers
from api.routers import ledger, webhooks

app.include_router(webhooks.router, tags=["Webhooks"])
app.include_router(ledger.router, prefix="/api/v1", tags=["Ledger"])
