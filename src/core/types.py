"""Domain types shared by the inventory, chat and alerting packages."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class LookupMode(StrEnum):
    """How a configured item id is looked up in the inventory service."""

    ITEM_ID = "item_id"  # one item by internal id
    ASSET_ID = "asset_id"  # collection of items sharing an asset id


class TemplateSelection(StrEnum):
    """Which of the configured message templates are sent per alert."""

    RANDOM = "random"
    ALL = "all"


class OutcomeStatus(StrEnum):
    """Per-item result of a notification run."""

    SUPPRESSED = "suppressed"
    DELIVERED = "delivered"
    FAILED = "failed"


class MonitoredItem(BaseModel):
    """A configured inventory entry with a low-stock threshold."""

    model_config = ConfigDict(frozen=True)

    external_id: str
    threshold: int


class InventorySnapshot(BaseModel):
    """Stock level of one inventory item, fetched fresh on every run."""

    id: str
    asset_id: str = ""
    name: str
    quantity: int

    def is_low(self, threshold: int) -> bool:
        return self.quantity <= threshold


class MessageTemplate(BaseModel):
    """Plain-text and HTML bodies of one alert message."""

    model_config = ConfigDict(frozen=True)

    plain: str
    html: str


class RoomHandle(BaseModel):
    """A chat room the bot has joined during the current session."""

    model_config = ConfigDict(frozen=True)

    room_id: str


class DeliveryOutcome(BaseModel):
    """What happened to one monitored item (or one of its snapshots)."""

    item_id: str
    status: OutcomeStatus
    reason: str = ""
    snapshot: InventorySnapshot | None = None
    messages_sent: int = Field(default=0, ge=0)
