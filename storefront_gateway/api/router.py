from fastapi import APIRouter

from storefront_gateway.api.endpoints.health import router as health_router
from storefront_gateway.api.endpoints.listings import router as listings_router


# The storefront theme calls these paths directly, so there is no version prefix.
router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(listings_router, tags=["listings"])
