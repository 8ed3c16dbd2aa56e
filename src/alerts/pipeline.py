"""Notification pipeline — lookup, threshold check, render and deliver."""

from __future__ import annotations

import random
from collections import Counter
from enum import StrEnum
from typing import NoReturn

import structlog

from src.alerts.templates import render, select_templates
from src.core.exceptions import (
    AlertBotError,
    ConfigError,
    DeliveryError,
    ItemLookupError,
    PipelineAbortedError,
)
from src.core.types import (
    DeliveryOutcome,
    InventorySnapshot,
    MessageTemplate,
    MonitoredItem,
    OutcomeStatus,
    RoomHandle,
    TemplateSelection,
)
from src.homebox.gateway import InventoryGateway
from src.matrix.gateway import ChatGateway

logger = structlog.stdlib.get_logger()


class PipelineState(StrEnum):
    """Where a run currently is; COMPLETED and ABORTED are terminal."""

    INIT = "init"
    ROOM_RESOLVED = "room_resolved"
    PER_ITEM = "per_item"
    COMPLETED = "completed"
    ABORTED = "aborted"


class PipelineStage(StrEnum):
    """Stage names reported by :class:`PipelineAbortedError`."""

    CHAT_AUTH = "chat authentication"
    INVENTORY_AUTH = "inventory authentication"
    ROOM_RESOLUTION = "room resolution"
    DELIVERY = "message delivery"


class NotificationPipeline:
    """Checks every monitored item once and alerts the room about low stock.

    Items are processed strictly in configured order. A failed lookup only
    marks that item as failed; a failed delivery aborts the whole run.

    Usage::

        pipeline = NotificationPipeline(chat, inventory, room_id, items, templates)
        outcomes = await pipeline.run()
    """

    def __init__(
        self,
        chat: ChatGateway,
        inventory: InventoryGateway,
        room_id: str,
        items: list[MonitoredItem],
        templates: list[MessageTemplate],
        selection: TemplateSelection = TemplateSelection.RANDOM,
        rng: random.Random | None = None,
    ) -> None:
        if not templates:
            raise ConfigError("matrix messages must not be empty")
        self._chat = chat
        self._inventory = inventory
        self._room_id = room_id
        self._items = list(items)
        self._templates = list(templates)
        self._selection = selection
        self._rng = rng or random.Random()
        self._state = PipelineState.INIT
        self._outcomes: list[DeliveryOutcome] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def outcomes(self) -> list[DeliveryOutcome]:
        return list(self._outcomes)

    async def run(self) -> list[DeliveryOutcome]:
        """Execute one full run.

        Returns:
            One outcome per evaluated item, in processing order.

        Raises:
            PipelineAbortedError: If authentication, room resolution or a
                message delivery fails.
        """
        self._state = PipelineState.INIT
        self._outcomes = []

        try:
            await self._chat.authenticate()
        except AlertBotError as exc:
            self._abort(PipelineStage.CHAT_AUTH, exc)
        try:
            await self._inventory.authenticate()
        except AlertBotError as exc:
            self._abort(PipelineStage.INVENTORY_AUTH, exc)

        try:
            room = await self._chat.resolve_room(self._room_id)
        except AlertBotError as exc:
            self._abort(PipelineStage.ROOM_RESOLUTION, exc)
        self._state = PipelineState.ROOM_RESOLVED
        logger.info(
            "pipeline_room_resolved",
            room_id=room.room_id,
            items=len(self._items),
        )

        self._state = PipelineState.PER_ITEM
        for item in self._items:
            await self._process_item(item, room)

        self._state = PipelineState.COMPLETED
        logger.info("pipeline_completed", **summarize_outcomes(self._outcomes))
        return list(self._outcomes)

    async def _process_item(self, item: MonitoredItem, room: RoomHandle) -> None:
        try:
            snapshots = await self._inventory.fetch_items(item.external_id)
        except ItemLookupError as exc:
            logger.warning("item_lookup_failed", item_id=item.external_id, error=str(exc))
            self._record(DeliveryOutcome(
                item_id=item.external_id,
                status=OutcomeStatus.FAILED,
                reason=str(exc),
            ))
            return

        if not snapshots:
            logger.warning("item_lookup_empty", item_id=item.external_id)
            self._record(DeliveryOutcome(
                item_id=item.external_id,
                status=OutcomeStatus.FAILED,
                reason="no inventory items matched",
            ))
            return

        for snapshot in snapshots:
            await self._evaluate(item, snapshot, room)

    async def _evaluate(
        self, item: MonitoredItem, snapshot: InventorySnapshot, room: RoomHandle
    ) -> None:
        if not snapshot.is_low(item.threshold):
            logger.info(
                "item_stock_sufficient",
                item_id=item.external_id,
                name=snapshot.name,
                quantity=snapshot.quantity,
                threshold=item.threshold,
            )
            self._record(DeliveryOutcome(
                item_id=item.external_id,
                status=OutcomeStatus.SUPPRESSED,
                snapshot=snapshot,
            ))
            return

        sent = 0
        for template in select_templates(self._templates, self._selection, self._rng):
            plain, html = render(template, snapshot, item.threshold)
            try:
                await self._chat.send_message(room, plain, html)
            except DeliveryError as exc:
                self._record(DeliveryOutcome(
                    item_id=item.external_id,
                    status=OutcomeStatus.FAILED,
                    reason=str(exc),
                    snapshot=snapshot,
                    messages_sent=sent,
                ))
                self._abort(PipelineStage.DELIVERY, exc)
            sent += 1

        logger.info(
            "low_stock_alert_sent",
            item_id=item.external_id,
            name=snapshot.name,
            quantity=snapshot.quantity,
            threshold=item.threshold,
            room_id=room.room_id,
            messages=sent,
        )
        self._record(DeliveryOutcome(
            item_id=item.external_id,
            status=OutcomeStatus.DELIVERED,
            snapshot=snapshot,
            messages_sent=sent,
        ))

    async def close(self) -> None:
        """Close both gateways and their HTTP clients."""
        try:
            await self._chat.close()
        finally:
            await self._inventory.close()

    def _record(self, outcome: DeliveryOutcome) -> None:
        self._outcomes.append(outcome)

    def _abort(self, stage: PipelineStage, exc: AlertBotError) -> NoReturn:
        self._state = PipelineState.ABORTED
        logger.error("pipeline_aborted", stage=str(stage), error=str(exc))
        raise PipelineAbortedError(str(stage), exc, self._outcomes) from exc


def summarize_outcomes(outcomes: list[DeliveryOutcome]) -> dict[str, int]:
    """Count outcomes by status, always including every status."""
    counts = Counter(outcome.status for outcome in outcomes)
    summary = {str(status): counts.get(status, 0) for status in OutcomeStatus}
    summary["total"] = len(outcomes)
    return summary
