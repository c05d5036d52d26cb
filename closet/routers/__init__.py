"""Router package exposing all API routers."""

from fastapi import APIRouter

from .closet.router import router as closet_router

router = APIRouter()
router.include_router(closet_router)

__all__ = ["router", "closet_router"]
