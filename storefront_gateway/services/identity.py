from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from storefront_gateway.services.catalog_client import CatalogApi


Tier = Literal["public", "private"]

DEFAULT_PRIVATE_MARKER = "user_type:private"


@dataclass(frozen=True)
class CallerIdentity:
    caller_id: str
    tier: Tier
    customer_id: str | None = None  # None when the catalog has no customer for this email


def tier_from_note(note: str | None, *, marker: str = DEFAULT_PRIVATE_MARKER) -> Tier:
    return "private" if note and marker in note else "public"


async def resolve_identity(
    catalog: CatalogApi,
    caller_id: str,
    *,
    marker: str = DEFAULT_PRIVATE_MARKER,
) -> CallerIdentity:
    """
    Look the caller up as a catalog customer (exact email search) and derive its tier.
    An unknown caller is simply public; absence is not a failure.
    """
    customers = await catalog.search_customers(caller_id)
    if not customers:
        return CallerIdentity(caller_id=caller_id, tier="public")

    customer = customers[0]
    cid = customer.get("id")
    return CallerIdentity(
        caller_id=caller_id,
        tier=tier_from_note(customer.get("note"), marker=marker),
        customer_id=str(cid) if cid is not None else None,
    )
