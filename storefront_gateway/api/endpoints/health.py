from fastapi import APIRouter

from storefront_gateway.core.config import settings
from storefront_gateway.schemas.common import HealthOut

router = APIRouter()


@router.get("/health", response_model=HealthOut)
async def health() -> HealthOut:
    return HealthOut(status="ok", service=settings.service_name)
