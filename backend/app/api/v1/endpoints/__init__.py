"""API v1 endpoints."""

from app.api.v1.endpoints import webhooks

__all__ = ["webhooks"]
