from pathlib import Path
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

OwnershipMatch = Literal["substring", "exact"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_PATH, env_file_encoding="utf-8", extra="ignore")

    # App
    env: str = "dev"
    service_name: str = "storefront-gateway"
    port: int = 5000
    cors_origins: list[str] = [
        "http://127.0.0.1:9292",
        "http://localhost:9292",
        "https://italian-corners.myshopify.com",
    ]

    # Remote catalog (Shopify Admin REST)
    shopify_store: str = "IN_ENV"
    shopify_access_token: SecretStr = SecretStr("IN_ENV")
    shopify_api_version: str = "2023-10"
    catalog_timeout_seconds: float = 30.0
    catalog_page_size: int = 250

    # Tiering / quota
    private_tier_marker: str = "user_type:private"
    private_tier_listing_limit: int = 2

    # "substring" keeps tag containment, "exact" compares whole tag tokens
    ownership_match: OwnershipMatch = "substring"

    # Undo already-applied remote steps when an image group fails
    compensate_partial_failures: bool = False

    # Uploads
    max_images_per_request: int = 5
    upload_dir: str = "uploads"

    # Telemetry
    telemetry_enabled: bool = True
    otlp_endpoint: str = "http://localhost:4318"  # Jaeger OTLP HTTP

    @property
    def catalog_base_url(self) -> str:
        return f"https://{self.shopify_store}.myshopify.com/admin/api/{self.shopify_api_version}"


settings = Settings()
