"""Versioned API router."""

from fastapi import APIRouter

from . import bookings, capacity, health, sides

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(sides.router, tags=["sides"])
router.include_router(capacity.router, tags=["capacity"])
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

__all__ = ["router"]
