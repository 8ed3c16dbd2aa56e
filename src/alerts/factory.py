"""Convenience factory for wiring the notification pipeline from settings."""

from __future__ import annotations

import random

from src.alerts.pipeline import NotificationPipeline
from src.core.config import Settings
from src.core.retry import SleepFn
from src.homebox.gateway import create_inventory_gateway
from src.matrix.gateway import create_chat_gateway


def create_pipeline(
    settings: Settings,
    rng: random.Random | None = None,
    sleep: SleepFn | None = None,
) -> NotificationPipeline:
    """Build both gateways and the pipeline from validated settings.

    Credentials are resolved here, once, before any network activity.

    Raises:
        ConfigError: If a password cannot be resolved or no templates are set.
    """
    chat = create_chat_gateway(settings.matrix, sleep=sleep)
    inventory = create_inventory_gateway(settings.homebox, sleep=sleep)

    return NotificationPipeline(
        chat=chat,
        inventory=inventory,
        room_id=settings.matrix.room_id,
        items=settings.homebox.monitored_items(),
        templates=settings.matrix.messages,
        selection=settings.matrix.template_selection,
        rng=rng,
    )
