from __future__ import annotations

import base64
import logging
import re
from typing import Any, AsyncIterator, Protocol, runtime_checkable
from urllib.parse import parse_qs, urlparse

from storefront_gateway.core.config import Settings
from storefront_gateway.services.errors import RemoteCatalogError
from storefront_gateway.services.http_client import CatalogHttpClient, HttpResult


log = logging.getLogger(__name__)

_NEXT_LINK_RE = re.compile(r'<([^>]+)>\s*;\s*rel="?next"?')


@runtime_checkable
class CatalogApi(Protocol):
    """
    Everything the listing layer needs from the remote catalog.
    Implementations raise RemoteCatalogError on any failure and never interpret it.
    """

    async def search_customers(self, email: str) -> list[dict[str, Any]]:
        ...

    def iter_products(self, *, fields: list[str]) -> AsyncIterator[dict[str, Any]]:
        ...

    async def get_product(self, product_id: str) -> dict[str, Any]:
        ...

    async def create_product(self, product: dict[str, Any]) -> dict[str, Any]:
        ...

    async def update_product(self, product_id: str, product: dict[str, Any]) -> dict[str, Any]:
        ...

    async def delete_product(self, product_id: str) -> None:
        ...

    async def upload_image(self, product_id: str, payload: bytes) -> dict[str, Any]:
        ...

    async def delete_image(self, product_id: str, image_id: str) -> None:
        ...

    async def get_metafields(self, product_id: str) -> list[dict[str, Any]]:
        ...


def next_page_info(link_header: str | None) -> str | None:
    """Cursor of the rel="next" page from a Shopify Link header, if any."""
    if not link_header:
        return None
    m = _NEXT_LINK_RE.search(link_header)
    if not m:
        return None
    values = parse_qs(urlparse(m.group(1)).query).get("page_info")
    return values[0] if values else None


class ShopifyCatalogClient(CatalogApi):
    """Typed wrapper over the Shopify Admin REST resources the gateway touches."""

    def __init__(self, *, http: CatalogHttpClient, page_size: int = 250):
        self._http = http
        self._page_size = max(1, min(page_size, 250))

    @classmethod
    def from_settings(cls, settings: Settings, **http_kwargs: Any) -> "ShopifyCatalogClient":
        http = CatalogHttpClient(
            base_url=settings.catalog_base_url,
            timeout_seconds=settings.catalog_timeout_seconds,
            default_headers={
                "X-Shopify-Access-Token": settings.shopify_access_token.get_secret_value(),
                "Content-Type": "application/json",
            },
            **http_kwargs,
        )
        return cls(http=http, page_size=settings.catalog_page_size)

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _unwrap(res: HttpResult, *, operation: str) -> dict[str, Any]:
        if not res.ok:
            log.warning(
                "catalog %s failed: status=%s code=%s message=%s",
                operation, res.status_code, res.error_code, res.error_message,
            )
            raise RemoteCatalogError(res.status_code, res.detail, operation=operation)
        return res.detail

    # customers

    async def search_customers(self, email: str) -> list[dict[str, Any]]:
        res = await self._http.get_json(url="/customers/search.json", params={"query": f"email:{email}"})
        return self._unwrap(res, operation="search_customers").get("customers") or []

    # products

    async def iter_products(self, *, fields: list[str]) -> AsyncIterator[dict[str, Any]]:
        params: dict[str, Any] = {"limit": self._page_size, "fields": ",".join(fields)}
        while True:
            res = await self._http.get_json(url="/products.json", params=params)
            body = self._unwrap(res, operation="list_products")
            for product in body.get("products") or []:
                yield product

            cursor = next_page_info(res.link)
            if not cursor:
                return
            # Shopify rejects filters other than limit/fields once page_info is present
            params = {"limit": self._page_size, "fields": ",".join(fields), "page_info": cursor}

    async def get_product(self, product_id: str) -> dict[str, Any]:
        res = await self._http.get_json(url=f"/products/{product_id}.json")
        return self._unwrap(res, operation="get_product")["product"]

    async def create_product(self, product: dict[str, Any]) -> dict[str, Any]:
        res = await self._http.post_json(url="/products.json", json_body={"product": product})
        return self._unwrap(res, operation="create_product")["product"]

    async def update_product(self, product_id: str, product: dict[str, Any]) -> dict[str, Any]:
        res = await self._http.put_json(url=f"/products/{product_id}.json", json_body={"product": product})
        return self._unwrap(res, operation="update_product").get("product") or {}

    async def delete_product(self, product_id: str) -> None:
        res = await self._http.delete(url=f"/products/{product_id}.json")
        self._unwrap(res, operation="delete_product")

    # images

    async def upload_image(self, product_id: str, payload: bytes) -> dict[str, Any]:
        attachment = base64.b64encode(payload).decode("ascii")
        res = await self._http.post_json(
            url=f"/products/{product_id}/images.json",
            json_body={"image": {"attachment": attachment}},
        )
        return self._unwrap(res, operation="upload_image")["image"]

    async def delete_image(self, product_id: str, image_id: str) -> None:
        res = await self._http.delete(url=f"/products/{product_id}/images/{image_id}.json")
        self._unwrap(res, operation="delete_image")

    # metafields

    async def get_metafields(self, product_id: str) -> list[dict[str, Any]]:
        res = await self._http.get_json(url=f"/products/{product_id}/metafields.json")
        return self._unwrap(res, operation="get_metafields").get("metafields") or []
