import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront_gateway.api.router import router
from storefront_gateway.core.config import settings
from storefront_gateway.core.telemetry import setup_telemetry
from storefront_gateway.services.catalog_client import ShopifyCatalogClient
from storefront_gateway.services.errors import (
    GENERIC_ERROR_MESSAGE,
    ListingError,
    RemoteCatalogError,
    UpstreamError,
)


log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    catalog = ShopifyCatalogClient.from_settings(settings)
    app.state.catalog = catalog
    try:
        yield
    finally:
        await catalog.aclose()


app = FastAPI(title="Storefront Listings Gateway", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ListingError)
async def listing_error_handler(request: Request, exc: ListingError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.body()})


@app.exception_handler(RemoteCatalogError)
async def remote_catalog_error_handler(request: Request, exc: RemoteCatalogError) -> JSONResponse:
    return await listing_error_handler(request, UpstreamError.from_remote(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # malformed bodies are client errors like any missing field: 400, same error shape
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body" for err in exc.errors()]
    log.info("%s %s rejected: fields=%s", request.method, request.url.path, fields)
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {', '.join(fields)}"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR_MESSAGE})


setup_telemetry(app)
app.include_router(router)
