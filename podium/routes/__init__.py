"""
podium/routes/__init__.py
Route registration
"""
from fastapi import APIRouter

from podium.routes import predictions

router = APIRouter()
router.include_router(predictions.router)

__all__ = ["router", "predictions"]
