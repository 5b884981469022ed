import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from storefront_gateway.api.deps import get_catalog, get_policy, get_staging
from storefront_gateway.core.config import settings
from storefront_gateway.schemas.common import ErrorOut
from storefront_gateway.schemas.listing import (
    ListingCollectionOut,
    ListingCreate,
    ListingDelete,
    ListingDeletedOut,
    ListingMutationOut,
    ListingUpdate,
)
from storefront_gateway.services.catalog_client import CatalogApi
from storefront_gateway.services.errors import ValidationError
from storefront_gateway.services.listings import (
    ListingPolicy,
    create_listing,
    delete_listing,
    list_listings,
    update_listing,
)
from storefront_gateway.services.storage import StagedFile, UploadStaging, release


log = logging.getLogger(__name__)
router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorOut},
    403: {"model": ErrorOut},
    500: {"model": ErrorOut},
}


def _parse(model: type[BaseModel], form: dict[str, Any]) -> Any:
    """Validate form fields, reporting problems as a 400 rather than FastAPI's 422."""
    try:
        return model.model_validate({k: v for k, v in form.items() if v is not None})
    except PydanticValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        log.info("rejected %s: fields=%s", model.__name__, fields)
        missing = any(err["type"] in ("missing", "string_too_short") for err in e.errors())
        if missing:
            raise ValidationError("Missing required fields", detail=fields)
        raise ValidationError(f"Invalid fields: {', '.join(fields)}", detail=fields)


async def _stage_uploads(staging: UploadStaging, images: list[UploadFile] | None) -> list[StagedFile]:
    files = [f for f in (images or []) if f.filename]
    if len(files) > settings.max_images_per_request:
        raise ValidationError(f"At most {settings.max_images_per_request} images are allowed.")

    staged: list[StagedFile] = []
    try:
        for f in files:
            staged.append(staging.put_bytes(data=await f.read(), filename=f.filename))
    except Exception:
        for s in staged:
            release(s)
        raise
    return staged


@router.post(
    "/create-product",
    status_code=201,
    response_model=ListingMutationOut,
    responses=ERROR_RESPONSES,
)
async def create_product(
    title: str | None = Form(None),
    body_html: str | None = Form(None),
    price: str | None = Form(None),
    storefront_user_id: str | None = Form(None),
    size: str | None = Form(None),
    bedrooms: str | None = Form(None),
    baths: str | None = Form(None),
    images: list[UploadFile] | None = File(None),
    catalog: CatalogApi = Depends(get_catalog),
    policy: ListingPolicy = Depends(get_policy),
    staging: UploadStaging = Depends(get_staging),
) -> ListingMutationOut:
    payload = _parse(
        ListingCreate,
        {
            "title": title,
            "body_html": body_html,
            "price": price,
            "storefront_user_id": storefront_user_id,
            "size": size,
            "bedrooms": bedrooms,
            "baths": baths,
        },
    )
    staged = await _stage_uploads(staging, images)
    try:
        return await create_listing(catalog=catalog, policy=policy, payload=payload, files=staged)
    finally:
        # anything not consumed by an upload attempt (403, early 500) is dropped here
        for s in staged:
            release(s)


@router.put(
    "/update-product/{product_id}",
    response_model=ListingMutationOut,
    responses=ERROR_RESPONSES,
)
async def update_product(
    product_id: str,
    title: str | None = Form(None),
    body_html: str | None = Form(None),
    price: str | None = Form(None),
    storefront_user_id: str | None = Form(None),
    images: list[UploadFile] | None = File(None),
    catalog: CatalogApi = Depends(get_catalog),
    policy: ListingPolicy = Depends(get_policy),
    staging: UploadStaging = Depends(get_staging),
) -> ListingMutationOut:
    payload = _parse(
        ListingUpdate,
        {
            "title": title,
            "body_html": body_html,
            "price": price,
            "storefront_user_id": storefront_user_id,
        },
    )
    staged = await _stage_uploads(staging, images)
    try:
        return await update_listing(
            catalog=catalog,
            policy=policy,
            product_id=product_id,
            payload=payload,
            files=staged,
        )
    finally:
        for s in staged:
            release(s)


@router.get(
    "/products/{storefront_user_id}",
    response_model=ListingCollectionOut,
    responses={500: {"model": ErrorOut}},
)
async def get_products(
    storefront_user_id: str,
    catalog: CatalogApi = Depends(get_catalog),
    policy: ListingPolicy = Depends(get_policy),
) -> ListingCollectionOut:
    return await list_listings(catalog=catalog, policy=policy, caller_id=storefront_user_id)


@router.delete(
    "/remove-product/{product_id}",
    response_model=ListingDeletedOut,
    responses=ERROR_RESPONSES,
)
async def remove_product(
    product_id: str,
    payload: ListingDelete | None = Body(None),
    catalog: CatalogApi = Depends(get_catalog),
    policy: ListingPolicy = Depends(get_policy),
) -> ListingDeletedOut:
    caller_id = payload.storefront_user_id if payload else None
    if not caller_id:
        raise ValidationError("Missing storefront_user_id in request body.")

    return await delete_listing(catalog=catalog, policy=policy, product_id=product_id, caller_id=caller_id)
