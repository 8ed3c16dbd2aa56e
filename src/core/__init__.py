"""Core module — config, types, errors, retry, logging."""

from src.core.config import (
    Settings,
    get_settings,
    load_settings,
    reset_settings,
    validate_settings,
)
from src.core.logging import setup_logging
from src.core.retry import RetryExecutor, RetryPolicy
from src.core.types import (
    DeliveryOutcome,
    InventorySnapshot,
    LookupMode,
    MessageTemplate,
    MonitoredItem,
    OutcomeStatus,
    RoomHandle,
    TemplateSelection,
)

__all__ = [
    "DeliveryOutcome",
    "InventorySnapshot",
    "LookupMode",
    "MessageTemplate",
    "MonitoredItem",
    "OutcomeStatus",
    "RetryExecutor",
    "RetryPolicy",
    "RoomHandle",
    "Settings",
    "TemplateSelection",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
    "validate_settings",
]
