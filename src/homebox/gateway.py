"""Inventory gateways — HomeBox lookups wrapped in the shared retry policy."""

from __future__ import annotations

import abc
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import TypeVar

import structlog
from pydantic import SecretStr

from src.core.config import HomeBoxConfig
from src.core.exceptions import AuthError, ItemLookupError, RetryExhaustedError
from src.core.retry import RetryExecutor, RetryPolicy, SleepFn
from src.core.types import InventorySnapshot, LookupMode
from src.homebox.client import HomeBoxClient

logger = structlog.stdlib.get_logger()

T = TypeVar("T")


class InventoryGateway(abc.ABC):
    """Authenticates once, then looks up configured items with retries.

    Subclasses decide how a configured id maps to inventory items; the base
    class owns the client, the session and the retry executor.
    """

    def __init__(
        self,
        client: HomeBoxClient,
        username: str,
        password: SecretStr,
        policy: RetryPolicy,
        sleep: SleepFn | None = None,
    ) -> None:
        self._client = client
        self._username = username
        self._password = password
        self._executor = RetryExecutor(policy, sleep=sleep)

    @property
    def authenticated(self) -> bool:
        return self._client.authenticated

    async def authenticate(self) -> None:
        """Log in to HomeBox, retrying transient failures.

        Raises:
            AuthError: Once every attempt has failed.
        """
        try:
            await self._executor.execute(
                lambda: self._client.login(
                    self._username, self._password.get_secret_value()
                ),
                f"homebox login at '{self._client.base_url}'",
            )
        except RetryExhaustedError as exc:
            raise AuthError(
                f"failed to authenticate with homebox at '{self._client.base_url}': "
                f"{exc.last_error}"
            ) from exc
        logger.info("homebox_authenticated", base_url=self._client.base_url)

    @abc.abstractmethod
    async def fetch_items(self, external_id: str) -> list[InventorySnapshot]:
        """Return every inventory item the configured id refers to.

        Raises:
            ItemLookupError: Once every attempt has failed.
        """

    async def _lookup(
        self,
        operation: Callable[[], Awaitable[T]],
        external_id: str,
        label: str,
    ) -> T:
        try:
            return await self._executor.execute(operation, label)
        except RetryExhaustedError as exc:
            raise ItemLookupError(
                f"failed to get item '{external_id}': {exc.last_error}"
            ) from exc

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> InventoryGateway:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class ItemIdInventoryGateway(InventoryGateway):
    """Looks items up by their internal HomeBox id (one item per id)."""

    async def fetch_item(self, item_id: str) -> InventorySnapshot:
        return await self._lookup(
            lambda: self._client.get_item(item_id),
            item_id,
            f"get item by id '{item_id}'",
        )

    async def fetch_items(self, external_id: str) -> list[InventorySnapshot]:
        return [await self.fetch_item(external_id)]


class AssetIdInventoryGateway(InventoryGateway):
    """Looks items up by asset id; the service may return several."""

    async def fetch_items(self, external_id: str) -> list[InventorySnapshot]:
        return await self._lookup(
            lambda: self._client.get_items_by_asset_id(external_id),
            external_id,
            f"get items by asset id '{external_id}'",
        )


_GATEWAYS: dict[LookupMode, type[InventoryGateway]] = {
    LookupMode.ITEM_ID: ItemIdInventoryGateway,
    LookupMode.ASSET_ID: AssetIdInventoryGateway,
}


def create_inventory_gateway(
    config: HomeBoxConfig,
    client: HomeBoxClient | None = None,
    sleep: SleepFn | None = None,
) -> InventoryGateway:
    """Build the gateway variant selected by ``config.lookup``.

    Raises:
        ConfigError: If the password cannot be resolved.
    """
    gateway_cls = _GATEWAYS[config.lookup]
    return gateway_cls(
        client=client or HomeBoxClient(config.base_url),
        username=config.username,
        password=config.resolve_password(),
        policy=config.retry,
        sleep=sleep,
    )
