from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Sequence, TypeVar

from storefront_gateway.services.catalog_client import CatalogApi
from storefront_gateway.services.errors import PartialUploadError, RemoteCatalogError
from storefront_gateway.services.storage import StagedFile, read_staged, release


log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class UploadedImage:
    id: str | None
    src: str

    def as_response(self) -> dict[str, Any]:
        return {"src": self.src}


async def settle(aws: Sequence[Awaitable[T]]) -> tuple[list[T], list[Exception]]:
    """
    Run a concurrent group and wait for every member to finish.
    Siblings of a failed member are never cancelled.
    Returns (successes, failures), each in submission order.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    done: list[T] = []
    failed: list[Exception] = []
    for r in results:
        if isinstance(r, Exception):
            failed.append(r)
        elif isinstance(r, BaseException):
            # cancellation and friends are not group failures
            raise r
        else:
            done.append(r)
    return done, failed


def _first_remote_body(failures: list[Exception]) -> Any:
    for f in failures:
        if isinstance(f, RemoteCatalogError) and f.body:
            return f.body
    return None


async def _upload_one(catalog: CatalogApi, product_id: str, staged: StagedFile) -> UploadedImage:
    try:
        payload = await asyncio.to_thread(read_staged, staged)
        image = await catalog.upload_image(product_id, payload)
    except Exception:
        log.exception("image upload failed: product=%s file=%s", product_id, staged.filename or staged.path.name)
        raise
    finally:
        # scratch file goes away whatever happened to the upload
        release(staged)

    image_id = image.get("id")
    return UploadedImage(id=str(image_id) if image_id is not None else None, src=image["src"])


async def upload_images(catalog: CatalogApi, product_id: str, files: Sequence[StagedFile]) -> list[UploadedImage]:
    if not files:
        return []

    uploaded, failures = await settle([_upload_one(catalog, product_id, f) for f in files])
    log.info("images: product=%s uploaded=%d failed=%d", product_id, len(uploaded), len(failures))
    if failures:
        raise PartialUploadError(
            "Failed to upload image to Shopify.",
            failures=failures,
            applied=uploaded,
        )
    return uploaded


async def delete_images(catalog: CatalogApi, product_id: str, image_ids: Sequence[str]) -> None:
    if not image_ids:
        return

    _, failures = await settle([catalog.delete_image(product_id, i) for i in image_ids])
    if failures:
        raise PartialUploadError(
            "Failed to remove existing images.",
            failures=failures,
            detail=_first_remote_body(failures),
        )


async def replace_images(
    catalog: CatalogApi,
    product_id: str,
    existing: Sequence[dict[str, Any]],
    files: Sequence[StagedFile],
) -> list[UploadedImage] | None:
    """
    Full replace: drop every current image, then upload every new one. No diffing.
    Returns None (and touches nothing) when no new files were supplied.
    """
    if not files:
        return None

    try:
        await delete_images(catalog, product_id, [str(img["id"]) for img in existing if img.get("id") is not None])
    except PartialUploadError:
        for f in files:
            release(f)
        raise

    return await upload_images(catalog, product_id, files)
