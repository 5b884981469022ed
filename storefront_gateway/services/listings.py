from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Sequence

from storefront_gateway.core.config import OwnershipMatch, Settings
from storefront_gateway.schemas.listing import (
    ImageOut,
    ListingCollectionOut,
    ListingCreate,
    ListingDeletedOut,
    ListingMutationOut,
    ListingUpdate,
)
from storefront_gateway.services.catalog_client import CatalogApi
from storefront_gateway.services.errors import (
    AuthorizationError,
    PartialUploadError,
    PartiallyAppliedError,
    RemoteCatalogError,
    UpstreamError,
)
from storefront_gateway.services.identity import resolve_identity
from storefront_gateway.services.images import UploadedImage, replace_images, upload_images
from storefront_gateway.services.ownership import ownership_tag, owns
from storefront_gateway.services.quota import QuotaPolicy, enforce_quota
from storefront_gateway.services.storage import StagedFile


log = logging.getLogger(__name__)

LIST_PROJECTION = ["id", "title", "variants", "tags", "images"]
METAFIELD_NAMESPACE = "custom"

Compensation = tuple[str, Callable[[], Awaitable[Any]]]


@dataclass(frozen=True)
class ListingPolicy:
    quota: QuotaPolicy
    private_marker: str = "user_type:private"
    ownership_match: OwnershipMatch = "substring"
    compensate_partial_failures: bool = False

    @classmethod
    def from_settings(cls, s: Settings) -> "ListingPolicy":
        return cls(
            quota=QuotaPolicy(private_limit=s.private_tier_listing_limit),
            private_marker=s.private_tier_marker,
            ownership_match=s.ownership_match,
            compensate_partial_failures=s.compensate_partial_failures,
        )


@contextmanager
def upstream_errors() -> Iterator[None]:
    """Any catalog failure not handled below becomes a 500 carrying the catalog's payload."""
    try:
        yield
    except RemoteCatalogError as e:
        raise UpstreamError.from_remote(e) from e


def build_product_fields(payload: ListingCreate) -> dict[str, Any]:
    return {
        "title": payload.title,
        "body_html": payload.body_html,
        "variants": [{"price": payload.price}],
        "tags": ownership_tag(payload.storefront_user_id),
        "metafields": [
            {
                "namespace": METAFIELD_NAMESPACE,
                "key": "size",
                "value": payload.size,
                "type": "single_line_text_field",
            },
            {
                "namespace": METAFIELD_NAMESPACE,
                "key": "bedrooms",
                "value": payload.bedrooms,
                "type": "number_integer",
            },
            {
                "namespace": METAFIELD_NAMESPACE,
                "key": "baths",
                "value": payload.baths,
                "type": "single_line_text_field",
            },
        ],
    }


def build_update_fields(product: dict[str, Any], payload: ListingUpdate) -> dict[str, Any]:
    # Only core fields and the owner tag are rewritten; metafields stay as created.
    variants = product.get("variants") or []
    variant: dict[str, Any] = {"price": payload.price}
    if variants and variants[0].get("id") is not None:
        variant["id"] = variants[0]["id"]

    return {
        "title": payload.title,
        "body_html": payload.body_html,
        "variants": [variant],
        "tags": ownership_tag(payload.storefront_user_id),
    }


def _images_out(images: Sequence[UploadedImage]) -> list[ImageOut]:
    return [ImageOut(**img.as_response()) for img in images]


async def _compensate(steps: list[Compensation], failure: PartialUploadError) -> PartiallyAppliedError:
    """Best-effort undo, newest step first. Never raises; reports what it could and could not undo."""
    compensated: list[str] = []
    compensation_failures: list[str] = []
    for label, undo in reversed(steps):
        try:
            await undo()
            compensated.append(label)
        except Exception:
            log.exception("compensation failed: %s", label)
            compensation_failures.append(label)

    return PartiallyAppliedError(
        failure.message,
        failures=failure.failures,
        compensated=compensated,
        compensation_failures=compensation_failures,
    )


async def _load_owned_product(
    catalog: CatalogApi,
    *,
    product_id: str,
    caller_id: str,
    policy: ListingPolicy,
    action: str,
) -> dict[str, Any]:
    product = await catalog.get_product(product_id)
    if not owns(product, caller_id, match=policy.ownership_match):
        log.warning("ownership check failed: product=%s caller=%s action=%s", product_id, caller_id, action)
        raise AuthorizationError(f"You are not authorized to {action} this product.")
    return product


async def create_listing(
    *,
    catalog: CatalogApi,
    policy: ListingPolicy,
    payload: ListingCreate,
    files: Sequence[StagedFile] = (),
) -> ListingMutationOut:
    """
    identity -> quota -> create product (owner tag + metafields) -> upload images.

    Nothing already committed on the catalog is undone when a later step fails,
    unless policy.compensate_partial_failures is set.
    """
    caller_id = payload.storefront_user_id

    with upstream_errors():
        identity = await resolve_identity(catalog, caller_id, marker=policy.private_marker)
        await enforce_quota(catalog, caller_id, identity.tier, policy=policy.quota, match=policy.ownership_match)

        product = await catalog.create_product(build_product_fields(payload))
        product_id = product["id"]
        log.info("listing created: product=%s caller=%s tier=%s", product_id, caller_id, identity.tier)

        try:
            images = await upload_images(catalog, str(product_id), files)
        except PartialUploadError as e:
            if not policy.compensate_partial_failures:
                raise
            raise await _compensate(
                [(f"delete product {product_id}", lambda: catalog.delete_product(str(product_id)))],
                e,
            ) from e

    return ListingMutationOut(
        message="Product created successfully",
        productId=product_id,
        images=_images_out(images),
    )


async def update_listing(
    *,
    catalog: CatalogApi,
    policy: ListingPolicy,
    product_id: str,
    payload: ListingUpdate,
    files: Sequence[StagedFile] = (),
) -> ListingMutationOut:
    """
    Owner-only. Rewrites title/body/price/owner tag; when files are supplied every
    existing image is removed before the new ones are uploaded.
    """
    caller_id = payload.storefront_user_id

    with upstream_errors():
        product = await _load_owned_product(
            catalog, product_id=product_id, caller_id=caller_id, policy=policy, action="update"
        )
        await catalog.update_product(product_id, build_update_fields(product, payload))

        try:
            images = await replace_images(catalog, product_id, product.get("images") or [], files)
        except PartialUploadError as e:
            if not policy.compensate_partial_failures:
                raise
            # Removed images cannot be restored; only the new ones that did land are undone.
            steps: list[Compensation] = [
                (f"delete image {img.id}", lambda img_id=img.id: catalog.delete_image(product_id, img_id))
                for img in e.applied
                if isinstance(img, UploadedImage) and img.id is not None
            ]
            raise await _compensate(steps, e) from e

    log.info("listing updated: product=%s caller=%s images_replaced=%s", product_id, caller_id, images is not None)
    return ListingMutationOut(
        message="Product updated successfully",
        productId=product_id,
        images=_images_out(images or []),
    )


async def _with_metafields(catalog: CatalogApi, product: dict[str, Any]) -> dict[str, Any]:
    try:
        metafields = await catalog.get_metafields(str(product["id"]))
    except Exception:
        log.exception("Error fetching metafields for product %s", product.get("id"))
        metafields = []
    return {**product, "metafields": metafields}


async def list_listings(
    *,
    catalog: CatalogApi,
    policy: ListingPolicy,
    caller_id: str,
) -> ListingCollectionOut:
    with upstream_errors():
        owned = [
            p
            async for p in catalog.iter_products(fields=LIST_PROJECTION)
            if owns(p, caller_id, match=policy.ownership_match)
        ]

    # One failed metafield lookup degrades its own item only
    products = await asyncio.gather(*(_with_metafields(catalog, p) for p in owned))
    return ListingCollectionOut(products=list(products))


async def delete_listing(
    *,
    catalog: CatalogApi,
    policy: ListingPolicy,
    product_id: str,
    caller_id: str,
) -> ListingDeletedOut:
    with upstream_errors():
        await _load_owned_product(catalog, product_id=product_id, caller_id=caller_id, policy=policy, action="delete")
        await catalog.delete_product(product_id)

    log.info("listing deleted: product=%s caller=%s", product_id, caller_id)
    return ListingDeletedOut(message="Product removed successfully", product_id=product_id)
