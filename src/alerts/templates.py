"""Alert message rendering and template selection."""

from __future__ import annotations

import random
import re

from src.core.types import InventorySnapshot, MessageTemplate, TemplateSelection

_PLACEHOLDER_RE = re.compile(r"\{(name|quantity|threshold|id|asset_id)\}")


def _values(snapshot: InventorySnapshot, threshold: int) -> dict[str, str]:
    return {
        "name": snapshot.name,
        "quantity": str(snapshot.quantity),
        "threshold": str(threshold),
        "id": snapshot.id,
        "asset_id": snapshot.asset_id,
    }


def render_text(text: str, snapshot: InventorySnapshot, threshold: int) -> str:
    """Replace every recognized placeholder in *text*; others stay verbatim.

    One pass over the input, so substituted values are never re-scanned.
    """
    values = _values(snapshot, threshold)
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], text)


def render(
    template: MessageTemplate, snapshot: InventorySnapshot, threshold: int
) -> tuple[str, str]:
    """Render a template into its ``(plain, html)`` message pair.

    Substitution is literal: values are inserted into the HTML body as-is.
    """
    return (
        render_text(template.plain, snapshot, threshold),
        render_text(template.html, snapshot, threshold),
    )


def select_templates(
    templates: list[MessageTemplate],
    selection: TemplateSelection,
    rng: random.Random | None = None,
) -> list[MessageTemplate]:
    """Pick the templates to send for one alert.

    ``ALL`` keeps configured order; ``RANDOM`` picks one uniformly.
    """
    if not templates:
        return []
    if selection == TemplateSelection.ALL:
        return list(templates)
    return [(rng or random).choice(templates)]
