"""API v1 Router - Aggregates all API endpoints."""

from fastapi import APIRouter

from app.api.v1.endpoints import webhooks

api_router = APIRouter()

# Acquisition notification webhooks
api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"],
)
