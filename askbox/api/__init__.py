"""API routes for Askbox."""

from fastapi import APIRouter

from .feeds import router as feeds_router
from .slack import router as slack_router

api_router = APIRouter()

# Slack request URLs (commands, interactions, events, OAuth)
api_router.include_router(slack_router)

# Feed notifications
api_router.include_router(feeds_router)

__all__ = ["api_router"]
