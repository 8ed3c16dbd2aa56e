"""Tests for MatrixClient — discovery, login, join and send request shapes."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.core.exceptions import (
    AuthError,
    DeliveryError,
    RoomResolutionError,
    TransientNetworkError,
)
from src.matrix.client import MatrixClient
from src.matrix.identifiers import UserId

HS = "https://matrix.example.com"
USER = UserId(localpart="bot", server_name="example.com")


# ── Helpers ─────────────────────────────────────────────────────


def _response(
    body: Any = None,
    status_code: int = 200,
    method: str = "POST",
    text: str | None = None,
) -> httpx.Response:
    request = httpx.Request(method, f"{HS}/_matrix/client/v3/test")
    if text is not None:
        return httpx.Response(status_code=status_code, text=text, request=request)
    return httpx.Response(status_code=status_code, json=body, request=request)


async def _logged_in(client: MatrixClient) -> None:
    with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
        mock_req.return_value = _response({"access_token": "tok", "user_id": str(USER)})
        await client.login(USER, "pw", "device")


# ── Discovery ───────────────────────────────────────────────────


class TestDiscovery:
    async def test_well_known_base_url(self) -> None:
        client = MatrixClient()
        try:
            with patch.object(client._get_http(), "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _response(
                    {"m.homeserver": {"base_url": "https://hs.example.com/"}}, method="GET"
                )
                url = await client.discover_homeserver("example.com")

            assert url == "https://hs.example.com"
            assert client.homeserver_url == "https://hs.example.com"
            assert mock_get.call_args[0][0] == "https://example.com/.well-known/matrix/client"
        finally:
            await client.close()

    async def test_missing_well_known_falls_back(self) -> None:
        client = MatrixClient()
        try:
            with patch.object(client._get_http(), "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _response({}, status_code=404, method="GET")
                url = await client.discover_homeserver("example.com")
            assert url == "https://example.com"
        finally:
            await client.close()

    async def test_unusable_well_known_falls_back(self) -> None:
        client = MatrixClient()
        try:
            with patch.object(client._get_http(), "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _response(text="not json", method="GET")
                url = await client.discover_homeserver("example.com")
            assert url == "https://example.com"
        finally:
            await client.close()

    async def test_server_error_is_transient(self) -> None:
        client = MatrixClient()
        try:
            with patch.object(client._get_http(), "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _response({}, status_code=502, method="GET")
                with pytest.raises(TransientNetworkError, match="502"):
                    await client.discover_homeserver("example.com")
        finally:
            await client.close()

    async def test_transport_error_is_transient(self) -> None:
        client = MatrixClient()
        try:
            with patch.object(client._get_http(), "get", new_callable=AsyncMock) as mock_get:
                mock_get.side_effect = httpx.ConnectError("dns failure")
                with pytest.raises(TransientNetworkError, match="dns failure"):
                    await client.discover_homeserver("example.com")
        finally:
            await client.close()


# ── Login ───────────────────────────────────────────────────────


class TestLogin:
    async def test_login_request_shape(self) -> None:
        client = MatrixClient(HS)
        try:
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response(
                    {"access_token": "tok", "user_id": "@bot:example.com"}
                )
                token = await client.login(USER, "pw", "alert-bot")

            assert token == "tok"
            assert client.logged_in
            assert client.user_id == "@bot:example.com"
            method, url = mock_req.call_args[0]
            assert method == "POST"
            assert url == f"{HS}/_matrix/client/v3/login"
            payload = mock_req.call_args[1]["json"]
            assert payload["type"] == "m.login.password"
            assert payload["identifier"] == {"type": "m.id.user", "user": "@bot:example.com"}
            assert payload["password"] == "pw"
            assert payload["initial_device_display_name"] == "alert-bot"
            assert "Authorization" not in mock_req.call_args[1]["headers"]
        finally:
            await client.close()

    async def test_login_forbidden(self) -> None:
        client = MatrixClient(HS)
        try:
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response(
                    {"errcode": "M_FORBIDDEN", "error": "Invalid password"}, status_code=403
                )
                with pytest.raises(AuthError, match="M_FORBIDDEN"):
                    await client.login(USER, "wrong", "device")
            assert not client.logged_in
        finally:
            await client.close()

    async def test_login_without_token(self) -> None:
        client = MatrixClient(HS)
        try:
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response({"user_id": "@bot:example.com"})
                with pytest.raises(AuthError, match="no access token"):
                    await client.login(USER, "pw", "device")
        finally:
            await client.close()

    async def test_login_before_discovery(self) -> None:
        client = MatrixClient()
        with pytest.raises(TransientNetworkError, match="homeserver not resolved"):
            await client.login(USER, "pw", "device")
        await client.close()


# ── Rooms & messages ────────────────────────────────────────────


class TestJoinRoom:
    async def test_join_requires_login(self) -> None:
        client = MatrixClient(HS)
        with pytest.raises(AuthError, match="not logged in"):
            await client.join_room("!room:example.com")
        await client.close()

    async def test_join_room(self) -> None:
        client = MatrixClient(HS)
        try:
            await _logged_in(client)
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response({"room_id": "!room:example.com"})
                joined = await client.join_room("!room:example.com")

            assert joined == "!room:example.com"
            method, url = mock_req.call_args[0]
            assert method == "POST"
            assert url == f"{HS}/_matrix/client/v3/join/%21room%3Aexample.com"
            assert mock_req.call_args[1]["headers"] == {"Authorization": "Bearer tok"}
        finally:
            await client.close()

    async def test_join_forbidden(self) -> None:
        client = MatrixClient(HS)
        try:
            await _logged_in(client)
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response(
                    {"errcode": "M_FORBIDDEN", "error": "not invited"}, status_code=403
                )
                with pytest.raises(RoomResolutionError, match="!room:example.com"):
                    await client.join_room("!room:example.com")
        finally:
            await client.close()


class TestSendMessage:
    async def test_send_message_content(self) -> None:
        client = MatrixClient(HS)
        try:
            await _logged_in(client)
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response({"event_id": "$evt"})
                event_id = await client.send_message(
                    "!room:example.com", "Low: Widget", "<b>Low</b>: Widget", "txn1"
                )

            assert event_id == "$evt"
            method, url = mock_req.call_args[0]
            assert method == "PUT"
            assert url == (
                f"{HS}/_matrix/client/v3/rooms/%21room%3Aexample.com"
                "/send/m.room.message/txn1"
            )
            assert mock_req.call_args[1]["json"] == {
                "msgtype": "m.text",
                "body": "Low: Widget",
                "format": "org.matrix.custom.html",
                "formatted_body": "<b>Low</b>: Widget",
            }
        finally:
            await client.close()

    async def test_send_rate_limited(self) -> None:
        client = MatrixClient(HS)
        try:
            await _logged_in(client)
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.return_value = _response(
                    {"errcode": "M_LIMIT_EXCEEDED", "error": "slow down"}, status_code=429
                )
                with pytest.raises(DeliveryError, match="M_LIMIT_EXCEEDED"):
                    await client.send_message("!room:example.com", "a", "b", "txn1")
        finally:
            await client.close()

    async def test_send_transport_error(self) -> None:
        client = MatrixClient(HS)
        try:
            await _logged_in(client)
            with patch.object(client._get_http(), "request", new_callable=AsyncMock) as mock_req:
                mock_req.side_effect = httpx.ReadTimeout("timed out")
                with pytest.raises(TransientNetworkError, match="send message"):
                    await client.send_message("!room:example.com", "a", "b", "txn1")
        finally:
            await client.close()


class TestLifecycle:
    async def test_close_logs_out_locally(self) -> None:
        client = MatrixClient(HS)
        await _logged_in(client)
        await client.close()
        assert not client.logged_in

    async def test_trailing_slash_stripped(self) -> None:
        client = MatrixClient(f"{HS}/")
        assert client.homeserver_url == HS
        await client.close()
