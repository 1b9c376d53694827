"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from chatgenius.api.routes import ai, webhooks

# Create main API router
api_router = APIRouter()

# Change events from the database webhooks
api_router.include_router(webhooks.router)

# Question answering over messages and avatar documents
api_router.include_router(ai.router)
