from __future__ import annotations

from typing import Any

from storefront_gateway.core.config import OwnershipMatch


OWNER_TAG_PREFIX = "storefront_user_id:"


def ownership_tag(caller_id: str) -> str:
    return f"{OWNER_TAG_PREFIX}{caller_id}"


def tag_tokens(tags: Any) -> list[str]:
    """
    Shopify hands tags back as one comma separated string; tests and fakes may use a list.
    Normalize both to stripped, non-empty tokens.
    """
    if not tags:
        return []
    if isinstance(tags, str):
        raw = tags.split(",")
    else:
        raw = [str(t) for t in tags]
    return [t.strip() for t in raw if t and t.strip()]


def owns(product: dict[str, Any], caller_id: str, *, match: OwnershipMatch = "substring") -> bool:
    """
    substring: some tag contains storefront_user_id:<caller_id> (so a@x.co also matches
               a tag written for a@x.com); this is what existing listings were checked with.
    exact:     some tag equals storefront_user_id:<caller_id>.
    """
    wanted = ownership_tag(caller_id)
    tokens = tag_tokens(product.get("tags"))
    if match == "exact":
        return wanted in tokens
    return any(wanted in t for t in tokens)
