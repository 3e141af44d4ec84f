"""Roblox Open Cloud provider.

Talks to the game pass, badge, developer product, and asset delivery APIs
through an ``httpx.Client``. Icons go up as multipart form uploads. Rate
limiting (HTTP 429) and server errors are retried with backoff; anything
else fails the call with a ProviderError.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from rbxsync.errors import ProviderError
from rbxsync.models.resources import ResourceKind
from rbxsync.providers.base import Provider, RemoteResource, ResourceFields

logger = logging.getLogger(__name__)

API_ROOT = "https://apis.roblox.com"
BADGES_ROOT = "https://badges.roblox.com"

MAX_RETRIES = 3
TIMEOUT_SECONDS = 30.0

# Badge creation is charged to the creator's account.
PAYMENT_SOURCES = {"user": 1, "group": 2}


class OpenCloudProvider(Provider):
    """Open Cloud implementation of the Provider interface.

    Parameters
    ----------
    api_key : str | None
        Open Cloud API key, sent as ``x-api-key``. Required for every call.
    universe_id : int
        Universe the resources belong to.
    creator_type : str
        ``user`` or ``group``; selects the badge payment source.
    badge_cost : int
        Expected Robux cost when creating a badge.
    transport : httpx.BaseTransport | None
        Replaces the network transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str | None,
        universe_id: int,
        creator_type: str = "user",
        badge_cost: int = 0,
        max_retries: int = MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.universe_id = universe_id
        self.payment_source = PAYMENT_SOURCES.get(creator_type, 1)
        self.badge_cost = badge_cost
        self.max_retries = max_retries
        self.client = httpx.Client(timeout=TIMEOUT_SECONDS, follow_redirects=True, transport=transport)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    def list(self, kind: ResourceKind) -> list[RemoteResource]:
        if kind is ResourceKind.PASSES:
            url = f"{API_ROOT}/game-passes/v1/universes/{self.universe_id}/game-passes/creator"
            items = self._paginate(url, {"pageSize": 100}, "gamePasses", "pageToken", "nextPageToken")
        elif kind is ResourceKind.BADGES:
            url = f"{BADGES_ROOT}/v1/universes/{self.universe_id}/badges"
            items = self._paginate(
                url, {"limit": 100, "sortOrder": "Asc"}, "data", "cursor", "nextPageCursor"
            )
        else:
            url = f"{API_ROOT}/developer-products/v2/universes/{self.universe_id}/developer-products/creator"
            items = self._paginate(url, {"pageSize": 50}, "developerProducts", "pageToken", "nextPageToken")
        return [parse_remote(kind, item) for item in items]

    def get(self, kind: ResourceKind, remote_id: int) -> RemoteResource:
        if kind is ResourceKind.PASSES:
            url = f"{API_ROOT}/game-passes/v1/universes/{self.universe_id}/game-passes/{remote_id}/creator"
        elif kind is ResourceKind.BADGES:
            url = f"{BADGES_ROOT}/v1/badges/{remote_id}"
        else:
            url = (
                f"{API_ROOT}/developer-products/v2/universes/{self.universe_id}"
                f"/developer-products/{remote_id}/creator"
            )
        return parse_remote(kind, self._json("GET", url))

    def create(self, kind: ResourceKind, fields: ResourceFields) -> RemoteResource:
        if kind is ResourceKind.BADGES:
            url = f"{API_ROOT}/legacy-badges/v1/universes/{self.universe_id}/badges"
            form = {
                "name": fields.name,
                "description": fields.description or "",
                "paymentSourceType": self.payment_source,
                "expectedCost": self.badge_cost,
                "isActive": True,
            }
            files = form_parts(form, "files", fields.icon)
        elif kind is ResourceKind.PASSES:
            url = f"{API_ROOT}/game-passes/v1/universes/{self.universe_id}/game-passes"
            files = form_parts(_sale_form(fields), "imageFile", fields.icon)
        else:
            url = f"{API_ROOT}/developer-products/v2/universes/{self.universe_id}/developer-products"
            form = _sale_form(fields)
            form["price"] = fields.price or 0
            files = form_parts(form, "imageFile", fields.icon)

        data = self._json("POST", url, files=files)
        if not data:
            raise ProviderError(f"Creating {kind.label} '{fields.name}' returned no body")
        return parse_remote(kind, data)

    def update(self, kind: ResourceKind, remote_id: int, fields: ResourceFields) -> RemoteResource | None:
        if kind is ResourceKind.BADGES:
            return self._update_badge(remote_id, fields)

        if kind is ResourceKind.PASSES:
            url = f"{API_ROOT}/game-passes/v1/universes/{self.universe_id}/game-passes/{remote_id}"
            files = form_parts(_sale_form(fields), "file", fields.icon)
        else:
            url = (
                f"{API_ROOT}/developer-products/v2/universes/{self.universe_id}"
                f"/developer-products/{remote_id}"
            )
            form = _sale_form(fields)
            form["price"] = fields.price or 0
            form["storePageEnabled"] = fields.store_page
            files = form_parts(form, "imageFile", fields.icon)

        data = self._json("PATCH", url, files=files)
        if not data:
            # 204 No Content: read the resource back.
            return self.get(kind, remote_id)
        return parse_remote(kind, data)

    def download_asset(self, asset_id: int) -> bytes:
        meta = self._json("GET", f"{API_ROOT}/asset-delivery-api/v1/assetId/{asset_id}")
        location = (meta or {}).get("location")
        if not location:
            raise ProviderError(f"Asset {asset_id} has no download location")
        return self._request("GET", location, authenticated=False).content

    # ------------------------------------------------------------------
    # Badges
    # ------------------------------------------------------------------

    def _update_badge(self, remote_id: int, fields: ResourceFields) -> RemoteResource | None:
        payload = {
            "name": fields.name,
            "description": fields.description or "",
            "enabled": fields.enabled,
        }
        data = self._json("PATCH", f"{API_ROOT}/legacy-badges/v1/badges/{remote_id}", json=payload)
        remote = parse_remote(ResourceKind.BADGES, data) if data else None

        if fields.icon is not None:
            icon = self._json(
                "POST",
                f"{API_ROOT}/legacy-publish/v1/badges/{remote_id}/icon",
                files=form_parts({}, "Files", fields.icon),
            )
            icon_id = (icon or {}).get("targetId")
            if icon_id is not None:
                remote = remote or RemoteResource(remote_id=remote_id)
                remote.icon_asset_id = icon_id
        return remote

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _paginate(self, url: str, params: dict, items_key: str, token_param: str, token_key: str) -> list[dict]:
        items: list[dict] = []
        token = None
        while True:
            query = dict(params)
            if token:
                query[token_param] = token
            page = self._json("GET", url, params=query) or {}
            items.extend(page.get(items_key) or [])
            token = page.get(token_key)
            if not token:
                return items

    def _json(self, method: str, url: str, **kwargs) -> Any:
        response = self._request(method, url, **kwargs)
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Failed to parse response from {url}: {e}") from e

    def _request(self, method: str, url: str, authenticated: bool = True, **kwargs) -> httpx.Response:
        headers = {}
        if authenticated:
            if not self.api_key:
                raise ProviderError("--api-key is required for this operation")
            headers["x-api-key"] = self.api_key

        attempt = 0
        while True:
            try:
                response = self.client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                retryable = status == 429 or status >= 500
                if not retryable or attempt >= self.max_retries:
                    raise ProviderError(
                        f"API error {status} on {method} {url}: {e.response.text[:2000]}",
                        status=status,
                        retryable=retryable,
                    ) from e
                delay = _retry_after(e.response.headers) or 2**attempt
                logger.warning("HTTP %s on %s %s, retrying in %ss", status, method, url, delay)
                self._sleep(delay)
                attempt += 1
            except httpx.TransportError as e:
                raise ProviderError(f"Request to {url} failed: {e}", retryable=True) from e


def _sale_form(fields: ResourceFields) -> dict[str, Any]:
    form: dict[str, Any] = {
        "name": fields.name,
        "description": fields.description or "",
        "isForSale": fields.for_sale,
        "isRegionalPricingEnabled": fields.regional_pricing,
    }
    if fields.price is not None:
        form["price"] = fields.price
    return form


def _retry_after(headers: httpx.Headers) -> int | None:
    value = headers.get("retry-after")
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def form_parts(form: dict[str, Any], icon_field: str, icon: bytes | None) -> dict[str, tuple]:
    """Multipart parts for httpx ``files=``: text fields plus an optional PNG icon.

    Text fields are sent as filename-less parts so the body is always
    ``multipart/form-data``, even without an icon.
    """
    parts: dict[str, tuple] = {}
    for name, value in form.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        parts[name] = (None, str(value))
    if icon is not None:
        parts[icon_field] = ("icon.png", icon, "image/png")
    return parts


def parse_remote(kind: ResourceKind, data: dict) -> RemoteResource:
    """Map an API payload of *kind* onto a RemoteResource."""
    price = (data.get("priceInformation") or {}).get("defaultPriceInRobux")
    if kind is ResourceKind.PASSES:
        return RemoteResource(
            remote_id=data.get("gamePassId") or 0,
            name=data.get("name"),
            description=data.get("description"),
            price=price,
            for_sale=data.get("isForSale"),
            icon_asset_id=data.get("iconAssetId"),
        )
    if kind is ResourceKind.BADGES:
        return RemoteResource(
            remote_id=data.get("id") or 0,
            name=data.get("name"),
            description=data.get("description"),
            enabled=data.get("enabled"),
            icon_asset_id=data.get("iconImageId"),
        )
    return RemoteResource(
        remote_id=data.get("productId") or 0,
        name=data.get("name"),
        description=data.get("description"),
        price=price,
        for_sale=data.get("isForSale"),
        store_page=data.get("storePageEnabled"),
        icon_asset_id=data.get("iconImageAssetId"),
    )
