"""Chat gateway — Matrix login, room resolution and delivery with retries."""

from __future__ import annotations

import uuid
from types import TracebackType

import structlog
from pydantic import SecretStr

from src.core.config import MatrixConfig
from src.core.exceptions import (
    AuthError,
    DeliveryError,
    RetryExhaustedError,
    RoomResolutionError,
)
from src.core.retry import RetryExecutor, RetryPolicy, SleepFn
from src.core.types import RoomHandle
from src.matrix.client import MatrixClient
from src.matrix.identifiers import UserId, parse_room_id, parse_user_id

logger = structlog.stdlib.get_logger()


class ChatGateway:
    """Delivers alerts to a Matrix room.

    Malformed user handles and room ids are configuration defects and fail
    immediately; everything that talks to the network goes through the
    retry executor.

    Usage::

        gateway = ChatGateway("@bot:example.com", SecretStr("pw"), RetryPolicy())
        await gateway.authenticate()
        room = await gateway.resolve_room("!abc:example.com")
        await gateway.send_message(room, "plain", "<b>html</b>")
    """

    def __init__(
        self,
        user: str,
        password: SecretStr,
        policy: RetryPolicy,
        client: MatrixClient | None = None,
        device_name: str = "homebox-alert-bot",
        sleep: SleepFn | None = None,
    ) -> None:
        self._user = user
        self._password = password
        self._client = client or MatrixClient()
        self._device_name = device_name
        self._executor = RetryExecutor(policy, sleep=sleep)
        # Discovery is skipped when the client was given a homeserver URL.
        self._discover = self._client.homeserver_url is None
        self._joined: dict[str, RoomHandle] = {}

    @property
    def joined_rooms(self) -> list[str]:
        return list(self._joined)

    async def authenticate(self) -> None:
        """Resolve the homeserver from the handle and log in.

        Raises:
            InvalidHandleError: If the user handle is malformed (not retried).
            AuthError: Once every login attempt has failed.
        """
        user_id = parse_user_id(self._user)

        try:
            await self._executor.execute(
                lambda: self._login(user_id),
                f"matrix login as '{user_id}'",
            )
        except RetryExhaustedError as exc:
            raise AuthError(
                f"failed to authenticate with matrix server '{user_id.server_name}': "
                f"{exc.last_error}"
            ) from exc

        self._joined.clear()
        logger.info(
            "matrix_authenticated",
            user_id=str(user_id),
            homeserver_url=self._client.homeserver_url,
        )

    async def _login(self, user_id: UserId) -> str:
        if self._discover:
            await self._client.discover_homeserver(user_id.server_name)
        return await self._client.login(
            user_id, self._password.get_secret_value(), self._device_name
        )

    async def resolve_room(self, room_id: str) -> RoomHandle:
        """Return a handle for *room_id*, joining it if not yet a member.

        Raises:
            MalformedIdentifierError: If *room_id* is malformed (not retried).
            RoomResolutionError: Once every join attempt has failed.
        """
        parsed = parse_room_id(room_id)

        room = self._joined.get(parsed)
        if room is not None:
            return room

        try:
            joined_id = await self._executor.execute(
                lambda: self._client.join_room(parsed),
                f"join room '{parsed}'",
            )
        except RetryExhaustedError as exc:
            raise RoomResolutionError(
                f"failed to join room '{parsed}': {exc.last_error}"
            ) from exc

        room = RoomHandle(room_id=joined_id)
        self._joined[parsed] = room
        logger.info("matrix_room_joined", room_id=joined_id)
        return room

    async def send_message(self, room: RoomHandle, plain: str, html: str) -> str:
        """Send a plain + HTML message, retrying with a stable transaction id.

        Returns:
            The event id of the delivered message.

        Raises:
            DeliveryError: Once every attempt has failed.
        """
        # Reusing one txn id lets the homeserver drop duplicates of a retried send.
        txn_id = uuid.uuid4().hex
        try:
            event_id = await self._executor.execute(
                lambda: self._client.send_message(room.room_id, plain, html, txn_id),
                f"send message to room '{room.room_id}'",
            )
        except RetryExhaustedError as exc:
            raise DeliveryError(
                f"failed to send message to room '{room.room_id}': {exc.last_error}"
            ) from exc
        logger.debug("matrix_message_sent", room_id=room.room_id, event_id=event_id)
        return event_id

    async def close(self) -> None:
        self._joined.clear()
        await self._client.close()

    async def __aenter__(self) -> ChatGateway:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def create_chat_gateway(
    config: MatrixConfig,
    client: MatrixClient | None = None,
    sleep: SleepFn | None = None,
) -> ChatGateway:
    """Build a ChatGateway from the matrix config section.

    Raises:
        ConfigError: If the password cannot be resolved.
    """
    return ChatGateway(
        user=config.user,
        password=config.resolve_password(),
        policy=config.retry,
        client=client or MatrixClient(homeserver_url=config.homeserver_url),
        device_name=config.device_name,
        sleep=sleep,
    )
