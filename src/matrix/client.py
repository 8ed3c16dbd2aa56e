"""Thin async client for the Matrix client-server API — one attempt per call."""

from __future__ import annotations

from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from src.core.exceptions import (
    AuthError,
    DeliveryError,
    RoomResolutionError,
    TransientNetworkError,
)
from src.matrix.identifiers import UserId

logger = structlog.stdlib.get_logger()

_CLIENT_API = "/_matrix/client/v3"


def _error_detail(response: httpx.Response) -> str:
    """Best-effort ``errcode: error`` summary of a Matrix error response."""
    try:
        body = response.json()
    except ValueError:
        return str(response.status_code)
    if isinstance(body, dict) and body.get("errcode"):
        return f"{response.status_code} {body['errcode']}: {body.get('error', '')}"
    return str(response.status_code)


class MatrixClient:
    """Async Matrix client-server API client.

    Every method performs exactly one request; retrying is the caller's job.
    The homeserver URL is either given up front or found with
    :meth:`discover_homeserver`.
    """

    def __init__(
        self,
        homeserver_url: str | None = None,
        http: httpx.AsyncClient | None = None,
        timeout_secs: float = 10.0,
    ) -> None:
        self._homeserver_url = homeserver_url.rstrip("/") if homeserver_url else None
        self._http = http
        self._timeout_secs = timeout_secs
        self._access_token: str | None = None
        self._user_id: str | None = None

    @property
    def homeserver_url(self) -> str | None:
        return self._homeserver_url

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def logged_in(self) -> bool:
        return self._access_token is not None

    async def discover_homeserver(self, server_name: str) -> str:
        """Resolve the client API base URL for *server_name* via .well-known.

        A missing (404) or unusable well-known document falls back to
        ``https://<server_name>``.
        """
        fallback = f"https://{server_name}"
        url = f"https://{server_name}/.well-known/matrix/client"
        try:
            response = await self._get_http().get(url)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(
                f"matrix server discovery for '{server_name}' failed: {exc}"
            ) from exc

        base_url = fallback
        if response.status_code == 404:
            logger.debug("matrix_well_known_missing", server_name=server_name)
        elif response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = None
            homeserver = body.get("m.homeserver") if isinstance(body, dict) else None
            discovered = (
                homeserver.get("base_url") if isinstance(homeserver, dict) else None
            )
            if isinstance(discovered, str) and discovered:
                base_url = discovered
        else:
            raise TransientNetworkError(
                f"matrix server discovery for '{server_name}' returned "
                f"{response.status_code}"
            )

        self._homeserver_url = base_url.rstrip("/")
        logger.debug(
            "matrix_homeserver_resolved",
            server_name=server_name,
            homeserver_url=self._homeserver_url,
        )
        return self._homeserver_url

    async def login(self, user_id: UserId, password: str, device_name: str) -> str:
        """Password login; keeps the access token for later calls."""
        payload = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": str(user_id)},
            "password": password,
            "initial_device_display_name": device_name,
        }
        response = await self._request(
            "POST", "/login", payload, f"login as '{user_id}'", authenticated=False
        )
        if not response.is_success:
            raise AuthError(
                f"failed to authenticate with matrix server '{user_id.server_name}': "
                f"{_error_detail(response)}"
            )

        body = self._json(response)
        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError("matrix login response has no access token")

        self._access_token = token
        self._user_id = str(body.get("user_id") or user_id)
        return token

    async def join_room(self, room_id: str) -> str:
        """Join *room_id*; joining a room already joined is a no-op server-side."""
        response = await self._request(
            "POST", f"/join/{quote(room_id, safe='')}", {}, f"join room '{room_id}'"
        )
        if not response.is_success:
            raise RoomResolutionError(
                f"failed to join room '{room_id}': {_error_detail(response)}"
            )
        body = self._json(response)
        joined = body.get("room_id") if isinstance(body, dict) else None
        return str(joined or room_id)

    async def send_message(
        self, room_id: str, plain: str, html: str, txn_id: str
    ) -> str:
        """Send an ``m.text`` message with an HTML formatted body.

        Returns:
            The event id assigned by the homeserver.
        """
        content = {
            "msgtype": "m.text",
            "body": plain,
            "format": "org.matrix.custom.html",
            "formatted_body": html,
        }
        path = (
            f"/rooms/{quote(room_id, safe='')}/send/m.room.message/"
            f"{quote(txn_id, safe='')}"
        )
        response = await self._request(
            "PUT", path, content, f"send message to room '{room_id}'"
        )
        if not response.is_success:
            raise DeliveryError(
                f"failed to send message to room '{room_id}': "
                f"{_error_detail(response)}"
            )
        body = self._json(response)
        return str(body.get("event_id", "")) if isinstance(body, dict) else ""

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any],
        action: str,
        authenticated: bool = True,
    ) -> httpx.Response:
        if self._homeserver_url is None:
            raise TransientNetworkError(f"cannot {action}: homeserver not resolved")
        headers: dict[str, str] = {}
        if authenticated:
            if self._access_token is None:
                raise AuthError(f"cannot {action}: matrix client is not logged in")
            headers["Authorization"] = f"Bearer {self._access_token}"

        url = f"{self._homeserver_url}{_CLIENT_API}{path}"
        try:
            return await self._get_http().request(
                method, url, json=payload, headers=headers
            )
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"failed to {action}: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_secs))
        return self._http

    async def close(self) -> None:
        """Close the underlying HTTP client and forget the access token."""
        self._access_token = None
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None

    async def __aenter__(self) -> MatrixClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
