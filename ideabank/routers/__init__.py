"""Router package exposing all API routers."""

from fastapi import APIRouter

from .idea_bank.router import router as idea_bank_router

router = APIRouter()
router.include_router(idea_bank_router)

__all__ = ["router", "idea_bank_router"]
