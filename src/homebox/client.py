"""Thin async client for the HomeBox REST API — one HTTP attempt per call."""

from __future__ import annotations

from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.core.exceptions import AuthError, ItemLookupError, TransientNetworkError
from src.core.types import InventorySnapshot

logger = structlog.stdlib.get_logger()


def _parse_item(raw: Any, default_asset_id: str = "") -> InventorySnapshot:
    """Convert a HomeBox item (or item summary) object into a snapshot.

    *default_asset_id* is used when the object carries no ``assetId``.

    Raises:
        ValueError: If required fields are missing or mistyped.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"expected an object, got {type(raw).__name__}")
    try:
        item_id = raw["id"]
        name = raw["name"]
        quantity = raw["quantity"]
    except KeyError as exc:
        raise ValueError(f"missing field {exc.args[0]!r}") from exc
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValueError(f"quantity must be an integer, got {quantity!r}")
    return InventorySnapshot(
        id=str(item_id),
        asset_id=str(raw.get("assetId") or default_asset_id),
        name=str(name),
        quantity=quantity,
    )


class HomeBoxClient:
    """Async HomeBox API client.

    Every method performs exactly one request; retrying is the caller's job.

    Usage::

        async with HomeBoxClient("https://homebox.example.com") as client:
            await client.login("me@example.com", "secret")
            item = await client.get_item(item_id)
    """

    def __init__(
        self,
        base_url: str,
        http: httpx.AsyncClient | None = None,
        timeout_secs: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http
        self._timeout_secs = timeout_secs
        self._token: str | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    async def login(self, username: str, password: str) -> str:
        """Exchange credentials for a bearer token and keep it for later calls."""
        url = f"{self._base_url}/api/v1/users/login"
        payload = {
            "username": username,
            "password": password,
            "stayLoggedIn": False,
        }

        try:
            response = await self._get_http().post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AuthError(
                f"homebox login at '{self._base_url}' returned "
                f"{exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientNetworkError(
                f"homebox login request to '{self._base_url}' failed: {exc}"
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise AuthError("homebox login returned invalid JSON") from exc

        token = body.get("token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("homebox login response has no token")

        self._token = token
        return token

    async def get_item(self, item_id: str) -> InventorySnapshot:
        """Look up one item by its internal id."""
        body = await self._get(f"/api/v1/items/{quote(item_id, safe='')}", item_id)
        try:
            return _parse_item(body)
        except ValueError as exc:
            raise ItemLookupError(
                f"malformed homebox item '{item_id}': {exc}"
            ) from exc

    async def get_items_by_asset_id(self, asset_id: str) -> list[InventorySnapshot]:
        """Look up every item carrying *asset_id*."""
        body = await self._get(f"/api/v1/assets/{quote(asset_id, safe='')}", asset_id)
        raw_items = body.get("items") if isinstance(body, dict) else None
        if not isinstance(raw_items, list):
            raise ItemLookupError(
                f"homebox asset '{asset_id}' response has no items list"
            )
        try:
            return [_parse_item(raw, asset_id) for raw in raw_items]
        except ValueError as exc:
            raise ItemLookupError(
                f"malformed homebox item for asset '{asset_id}': {exc}"
            ) from exc

    async def _get(self, path: str, target: str) -> Any:
        if self._token is None:
            raise AuthError("homebox client is not authenticated")

        url = f"{self._base_url}{path}"
        try:
            response = await self._get_http().get(
                url, headers={"Authorization": self._token}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ItemLookupError(
                f"homebox lookup of '{target}' returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientNetworkError(
                f"homebox lookup of '{target}' failed: {exc}"
            ) from exc

        logger.debug("homebox_lookup", target=target, status=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise ItemLookupError(
                f"homebox lookup of '{target}' returned invalid JSON"
            ) from exc

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_secs))
        return self._http

    async def close(self) -> None:
        """Close the underlying HTTP client and forget the token."""
        self._token = None
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None

    async def __aenter__(self) -> HomeBoxClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
