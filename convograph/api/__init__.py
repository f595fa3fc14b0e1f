"""API router for v1 endpoints."""

from fastapi import APIRouter

from convograph.api import sessions

router = APIRouter()

router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
