"""Tests for the inventory gateways — retry wrapping and variant selection."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from src.core.config import HomeBoxConfig
from src.core.exceptions import (
    AuthError,
    ConfigError,
    ItemLookupError,
    RetryExhaustedError,
    TransientNetworkError,
)
from src.core.retry import RetryPolicy
from src.core.types import InventorySnapshot, LookupMode
from src.homebox.client import HomeBoxClient
from src.homebox.gateway import (
    AssetIdInventoryGateway,
    ItemIdInventoryGateway,
    create_inventory_gateway,
)


# ── Helpers ─────────────────────────────────────────────────────


class StubHomeBoxClient(HomeBoxClient):
    """HomeBoxClient whose calls fail a scripted number of times."""

    def __init__(self, login_failures: int = 0, lookup_failures: int = 0) -> None:
        super().__init__("https://homebox.test")
        self.login_failures = login_failures
        self.lookup_failures = lookup_failures
        self.login_calls = 0
        self.lookup_calls: list[str] = []
        self.closed = False

    async def login(self, username: str, password: str) -> str:
        self.login_calls += 1
        if self.login_calls <= self.login_failures:
            raise TransientNetworkError("login down")
        self._token = f"Bearer {username}:{password}"
        return self._token

    async def get_item(self, item_id: str) -> InventorySnapshot:
        self.lookup_calls.append(item_id)
        if len(self.lookup_calls) <= self.lookup_failures:
            raise ItemLookupError(f"lookup of '{item_id}' returned 503")
        return InventorySnapshot(id=item_id, name="Widget", quantity=3)

    async def get_items_by_asset_id(self, asset_id: str) -> list[InventorySnapshot]:
        self.lookup_calls.append(asset_id)
        if len(self.lookup_calls) <= self.lookup_failures:
            raise TransientNetworkError("asset lookup down")
        return [
            InventorySnapshot(id="a", asset_id=asset_id, name="Widget", quantity=1),
            InventorySnapshot(id="b", asset_id=asset_id, name="Widget", quantity=8),
        ]

    async def close(self) -> None:
        self.closed = True
        await super().close()


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _gateway(
    cls: type[ItemIdInventoryGateway] | type[AssetIdInventoryGateway],
    client: StubHomeBoxClient,
    attempts: int = 3,
    sleep: SleepRecorder | None = None,
) -> ItemIdInventoryGateway | AssetIdInventoryGateway:
    return cls(
        client=client,
        username="me",
        password=SecretStr("pw"),
        policy=RetryPolicy(max_attempts=attempts, backoff_base_secs=0.25),
        sleep=sleep or SleepRecorder(),
    )


# ── Authentication ──────────────────────────────────────────────


class TestAuthenticate:
    async def test_authenticate_success(self) -> None:
        client = StubHomeBoxClient()
        gateway = _gateway(ItemIdInventoryGateway, client)
        await gateway.authenticate()
        assert gateway.authenticated
        assert client.login_calls == 1

    async def test_authenticate_retries_transient_failures(self) -> None:
        client = StubHomeBoxClient(login_failures=2)
        sleep = SleepRecorder()
        gateway = _gateway(ItemIdInventoryGateway, client, attempts=3, sleep=sleep)

        await gateway.authenticate()

        assert client.login_calls == 3
        assert sleep.delays == [0.5, 1.0]

    async def test_authenticate_exhausted_raises_auth_error(self) -> None:
        client = StubHomeBoxClient(login_failures=10)
        gateway = _gateway(ItemIdInventoryGateway, client, attempts=2)

        with pytest.raises(AuthError, match="homebox.test") as exc_info:
            await gateway.authenticate()

        assert str(exc_info.value).endswith(": login down")
        assert client.login_calls == 2
        assert isinstance(exc_info.value.__cause__, RetryExhaustedError)
        assert not gateway.authenticated


# ── Lookups ─────────────────────────────────────────────────────


class TestItemIdGateway:
    async def test_fetch_item(self) -> None:
        client = StubHomeBoxClient()
        gateway = _gateway(ItemIdInventoryGateway, client)
        await gateway.authenticate()

        snap = await gateway.fetch_item("7c1f")  # type: ignore[union-attr]
        assert snap.id == "7c1f"

    async def test_fetch_items_wraps_single_item(self) -> None:
        client = StubHomeBoxClient()
        gateway = _gateway(ItemIdInventoryGateway, client)
        await gateway.authenticate()

        snaps = await gateway.fetch_items("7c1f")
        assert [s.id for s in snaps] == ["7c1f"]

    async def test_lookup_retried_then_succeeds(self) -> None:
        client = StubHomeBoxClient(lookup_failures=1)
        gateway = _gateway(ItemIdInventoryGateway, client)
        await gateway.authenticate()

        snaps = await gateway.fetch_items("7c1f")
        assert len(snaps) == 1
        assert client.lookup_calls == ["7c1f", "7c1f"]

    async def test_lookup_exhausted_names_item(self) -> None:
        client = StubHomeBoxClient(lookup_failures=10)
        gateway = _gateway(ItemIdInventoryGateway, client, attempts=3)
        await gateway.authenticate()

        with pytest.raises(ItemLookupError, match="failed to get item '7c1f'") as exc_info:
            await gateway.fetch_items("7c1f")

        assert len(client.lookup_calls) == 3
        cause = exc_info.value.__cause__
        assert isinstance(cause, RetryExhaustedError)
        assert "get item by id '7c1f'" in str(cause)
        assert str(exc_info.value) == "failed to get item '7c1f': lookup of '7c1f' returned 503"


class TestAssetIdGateway:
    async def test_fetch_items_returns_collection(self) -> None:
        client = StubHomeBoxClient()
        gateway = _gateway(AssetIdInventoryGateway, client)
        await gateway.authenticate()

        snaps = await gateway.fetch_items("000-042")
        assert [s.id for s in snaps] == ["a", "b"]
        assert all(s.asset_id == "000-042" for s in snaps)

    async def test_asset_lookup_exhausted(self) -> None:
        client = StubHomeBoxClient(lookup_failures=10)
        gateway = _gateway(AssetIdInventoryGateway, client, attempts=2)
        await gateway.authenticate()

        with pytest.raises(ItemLookupError, match="000-042"):
            await gateway.fetch_items("000-042")
        assert len(client.lookup_calls) == 2


# ── Factory & lifecycle ─────────────────────────────────────────


class TestCreateInventoryGateway:
    def test_item_id_variant(self) -> None:
        gateway = create_inventory_gateway(HomeBoxConfig(lookup=LookupMode.ITEM_ID))
        assert isinstance(gateway, ItemIdInventoryGateway)

    def test_asset_id_variant(self) -> None:
        gateway = create_inventory_gateway(HomeBoxConfig(lookup=LookupMode.ASSET_ID))
        assert isinstance(gateway, AssetIdInventoryGateway)

    def test_missing_password(self) -> None:
        with pytest.raises(ConfigError):
            create_inventory_gateway(HomeBoxConfig(password=None))

    async def test_uses_configured_retry_policy(self) -> None:
        client = StubHomeBoxClient(login_failures=10)
        config = HomeBoxConfig(retry=RetryPolicy(max_attempts=4, backoff_base_secs=0.0))
        gateway = create_inventory_gateway(config, client=client, sleep=SleepRecorder())

        with pytest.raises(AuthError):
            await gateway.authenticate()
        assert client.login_calls == 4


class TestLifecycle:
    async def test_context_manager_closes_client(self) -> None:
        client = StubHomeBoxClient()
        async with _gateway(ItemIdInventoryGateway, client):
            pass
        assert client.closed
