from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Literal

import httpx


HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None

    # raw Link header; the catalog pages product listings through it
    link: str | None = None


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


def _parse_detail(resp: httpx.Response, *, max_chars: int) -> dict[str, Any]:
    if not resp.content:
        # DELETE on the catalog answers 200 with an empty object or no body at all
        return {}
    if not _is_json_response(resp):
        # maintenance pages, proxies in front of the store
        return {"raw": _cap_text(resp.text, max_chars=max_chars), "content_type": resp.headers.get("content-type")}
    try:
        parsed = resp.json()
    except ValueError:
        return {"raw": _cap_text(resp.text, max_chars=max_chars)}
    return parsed if isinstance(parsed, dict) else {"data": parsed}


class CatalogHttpClient:
    """
    Pooled HTTP client for the remote catalog.

    - One AsyncClient instance shared by every request.
    - Single attempt per call: no retries, callers decide what a failure means.
    - Transport problems come back as a failed HttpResult with no status, never as exceptions.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        timeout_seconds: float = 30.0,
        max_response_body_chars: int = 20_000,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=dict(default_headers or {}),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_json(
        self,
        *,
        method: HttpMethod,
        url: str,
        params: Mapping[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> HttpResult:
        try:
            resp = await self._client.request(method=method, url=url, params=dict(params or {}), json=json_body)
        except httpx.TimeoutException as e:
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "timeout"},
                error_code="TIMEOUT",
                error_message=str(e),
            )
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "request_error"},
                error_code="REQUEST_ERROR",
                error_message=str(e),
            )

        detail = _parse_detail(resp, max_chars=self._max_body)
        if 200 <= resp.status_code < 300:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail, link=resp.headers.get("link"))

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
        )

    async def get_json(self, *, url: str, params: Mapping[str, Any] | None = None) -> HttpResult:
        return await self.request_json(method="GET", url=url, params=params)

    async def post_json(self, *, url: str, json_body: dict[str, Any] | None = None) -> HttpResult:
        return await self.request_json(method="POST", url=url, json_body=json_body)

    async def put_json(self, *, url: str, json_body: dict[str, Any] | None = None) -> HttpResult:
        return await self.request_json(method="PUT", url=url, json_body=json_body)

    async def delete(self, *, url: str) -> HttpResult:
        return await self.request_json(method="DELETE", url=url)
