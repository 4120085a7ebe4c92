from fastapi import APIRouter

from .endpoints import activation_codes, health, observability

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(activation_codes.router)
router.include_router(observability.router)
