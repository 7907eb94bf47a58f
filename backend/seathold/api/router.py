"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from seathold.api.routes import seats

api_router = APIRouter(prefix="/api")
api_router.include_router(seats.router)
