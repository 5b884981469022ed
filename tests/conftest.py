import asyncio
import os
from typing import Any

os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("SHOPIFY_STORE", "test-store")
os.environ.setdefault("SHOPIFY_ACCESS_TOKEN", "shpat_test")

import httpx
import pytest
import pytest_asyncio

from storefront_gateway.api.deps import get_catalog, get_policy, get_staging
from storefront_gateway.main import app
from storefront_gateway.services.errors import RemoteCatalogError
from storefront_gateway.services.listings import ListingPolicy
from storefront_gateway.services.ownership import ownership_tag
from storefront_gateway.services.quota import QuotaPolicy
from storefront_gateway.services.storage import UploadStaging


class Gate:
    """
    Opens only once `expected` callers are waiting on it at the same time.
    A caller that arrives alone times out, so sequential callers fail instead of hanging.
    """

    def __init__(self, expected: int, timeout: float = 1.0):
        self.expected = expected
        self.timeout = timeout
        self.arrived = 0
        self._open = asyncio.Event()

    async def wait(self) -> None:
        self.arrived += 1
        if self.arrived >= self.expected:
            self._open.set()
        await asyncio.wait_for(self._open.wait(), timeout=self.timeout)


class FakeCatalog:
    """
    In-memory stand-in for the Shopify catalog.
    Stores tags the way Shopify returns them: one comma separated string.
    """

    def __init__(self):
        self.products: dict[str, dict[str, Any]] = {}
        self.customers: list[dict[str, Any]] = []
        self.metafields: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple] = []

        # failure / latency knobs
        self.fail_upload_payloads: set[bytes] = set()
        self.slow_upload_payloads: set[bytes] = set()
        self.fail_metafields_for: set[str] = set()
        self.fail_delete_image_ids: set[str] = set()
        self.fail_create = False
        self.upload_gate: Gate | None = None
        self.delete_image_gate: Gate | None = None
        self.metafields_gate: Gate | None = None

        self._next_id = 1000

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    # seeding helpers

    def add_customer(self, email: str, note: str | None = None) -> None:
        self.customers.append({"id": self._id(), "email": email, "note": note})

    def seed_product(self, owner: str | None, *, title: str = "Flat", images: int = 0, tags: str | None = None) -> str:
        pid = self._id()
        product = {
            "id": pid,
            "title": title,
            "body_html": "<p>nice</p>",
            "variants": [{"id": self._id(), "price": "100.00"}],
            "tags": tags if tags is not None else (ownership_tag(owner) if owner else ""),
            "images": [],
        }
        for _ in range(images):
            iid = self._id()
            product["images"].append({"id": iid, "src": f"https://cdn.example/old-{iid}.jpg"})
        self.products[str(pid)] = product
        self.metafields[str(pid)] = [{"namespace": "custom", "key": "size", "value": "80"}]
        return str(pid)

    def _require(self, product_id: str) -> dict[str, Any]:
        product = self.products.get(str(product_id))
        if product is None:
            raise RemoteCatalogError(404, {"errors": "Not Found"}, operation="get_product")
        return product

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    # CatalogApi

    async def search_customers(self, email: str) -> list[dict[str, Any]]:
        self.calls.append(("search_customers", email))
        return [c for c in self.customers if c["email"] == email]

    async def iter_products(self, *, fields: list[str]):
        self.calls.append(("iter_products", tuple(fields)))
        for product in list(self.products.values()):
            yield {k: product[k] for k in fields if k in product}

    async def get_product(self, product_id: str) -> dict[str, Any]:
        self.calls.append(("get_product", str(product_id)))
        return dict(self._require(product_id))

    async def create_product(self, product: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_product", product))
        if self.fail_create:
            raise RemoteCatalogError(422, {"errors": {"title": ["can't be blank"]}}, operation="create_product")
        pid = self._id()
        stored = {
            "id": pid,
            "title": product["title"],
            "body_html": product.get("body_html"),
            "variants": [{"id": self._id(), **v} for v in product["variants"]],
            "tags": product.get("tags", ""),
            "images": [],
        }
        self.products[str(pid)] = stored
        self.metafields[str(pid)] = list(product.get("metafields") or [])
        return dict(stored)

    async def update_product(self, product_id: str, product: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("update_product", str(product_id), product))
        stored = self._require(product_id)
        stored.update({k: v for k, v in product.items() if k != "variants"})
        stored["variants"] = [dict(v) for v in product.get("variants", stored["variants"])]
        return dict(stored)

    async def delete_product(self, product_id: str) -> None:
        self.calls.append(("delete_product", str(product_id)))
        self._require(product_id)
        del self.products[str(product_id)]

    async def upload_image(self, product_id: str, payload: bytes) -> dict[str, Any]:
        self.calls.append(("upload_image", str(product_id), payload))
        if self.upload_gate:
            await self.upload_gate.wait()
        if payload in self.slow_upload_payloads:
            await asyncio.sleep(0.05)
        if payload in self.fail_upload_payloads:
            raise RemoteCatalogError(422, {"errors": {"image": ["could not be processed"]}}, operation="upload_image")
        stored = self._require(product_id)
        iid = self._id()
        image = {"id": iid, "src": f"https://cdn.example/{iid}.jpg"}
        stored["images"].append(image)
        return dict(image)

    async def delete_image(self, product_id: str, image_id: str) -> None:
        self.calls.append(("delete_image", str(product_id), str(image_id)))
        if self.delete_image_gate:
            await self.delete_image_gate.wait()
        if str(image_id) in self.fail_delete_image_ids:
            raise RemoteCatalogError(500, {"errors": "Internal Server Error"}, operation="delete_image")
        stored = self._require(product_id)
        stored["images"] = [i for i in stored["images"] if str(i["id"]) != str(image_id)]

    async def get_metafields(self, product_id: str) -> list[dict[str, Any]]:
        self.calls.append(("get_metafields", str(product_id)))
        if self.metafields_gate:
            await self.metafields_gate.wait()
        if str(product_id) in self.fail_metafields_for:
            raise RemoteCatalogError(503, {"errors": "Unavailable"}, operation="get_metafields")
        return list(self.metafields.get(str(product_id), []))


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def policy() -> ListingPolicy:
    return ListingPolicy(quota=QuotaPolicy(private_limit=2))


@pytest.fixture
def staging(tmp_path) -> UploadStaging:
    return UploadStaging(str(tmp_path / "uploads"))


@pytest_asyncio.fixture
async def client(catalog, policy, staging):
    """
    HTTP client against the app with the catalog, policy and upload area swapped for test doubles.
    """
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_policy] = lambda: policy
    app.dependency_overrides[get_staging] = lambda: staging

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_gate():
    return Gate
