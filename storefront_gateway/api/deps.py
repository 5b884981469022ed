from functools import lru_cache

from fastapi import Request

from storefront_gateway.core.config import settings
from storefront_gateway.services.catalog_client import CatalogApi
from storefront_gateway.services.listings import ListingPolicy
from storefront_gateway.services.storage import UploadStaging


def get_catalog(request: Request) -> CatalogApi:
    # created in the app lifespan, shared by every request
    return request.app.state.catalog


def get_policy() -> ListingPolicy:
    return ListingPolicy.from_settings(settings)


@lru_cache
def get_staging() -> UploadStaging:
    return UploadStaging(settings.upload_dir)
