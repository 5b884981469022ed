from __future__ import annotations

import logging
from dataclasses import dataclass

from storefront_gateway.core.config import OwnershipMatch
from storefront_gateway.services.catalog_client import CatalogApi
from storefront_gateway.services.errors import QuotaExceededError
from storefront_gateway.services.identity import Tier
from storefront_gateway.services.ownership import owns


log = logging.getLogger(__name__)

QUOTA_PROJECTION = ["id", "tags"]


@dataclass(frozen=True)
class QuotaPolicy:
    """Max listings per tier; None means unlimited."""
    private_limit: int | None = 2
    public_limit: int | None = None

    def limit_for(self, tier: Tier) -> int | None:
        return self.private_limit if tier == "private" else self.public_limit


async def count_owned(
    catalog: CatalogApi,
    caller_id: str,
    *,
    match: OwnershipMatch = "substring",
    stop_at: int | None = None,
) -> int:
    count = 0
    async for product in catalog.iter_products(fields=QUOTA_PROJECTION):
        if owns(product, caller_id, match=match):
            count += 1
            if stop_at is not None and count >= stop_at:
                break
    return count


async def enforce_quota(
    catalog: CatalogApi,
    caller_id: str,
    tier: Tier,
    *,
    policy: QuotaPolicy,
    match: OwnershipMatch = "substring",
) -> int | None:
    """
    Raise QuotaExceededError when the caller already owns as many listings as its tier allows.
    Returns the observed count, or None when the tier is unlimited (no scan is made).

    Check-then-act: two concurrent creates by the same caller can both pass.
    """
    limit = policy.limit_for(tier)
    if limit is None:
        return None

    existing = await count_owned(catalog, caller_id, match=match, stop_at=limit)
    log.info("quota: caller=%s tier=%s existing=%d limit=%d", caller_id, tier, existing, limit)
    if existing >= limit:
        raise QuotaExceededError(f"{tier.capitalize()} users can only create up to {limit} products.")
    return existing
