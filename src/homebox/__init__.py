"""HomeBox inventory client and retrying gateways."""

from src.homebox.client import HomeBoxClient
from src.homebox.gateway import (
    AssetIdInventoryGateway,
    InventoryGateway,
    ItemIdInventoryGateway,
    create_inventory_gateway,
)

__all__ = [
    "AssetIdInventoryGateway",
    "HomeBoxClient",
    "InventoryGateway",
    "ItemIdInventoryGateway",
    "create_inventory_gateway",
]
