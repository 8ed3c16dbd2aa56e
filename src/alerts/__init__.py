"""Low-stock alerting — template rendering and the notification pipeline."""

from src.alerts.factory import create_pipeline
from src.alerts.pipeline import (
    NotificationPipeline,
    PipelineStage,
    PipelineState,
    summarize_outcomes,
)
from src.alerts.templates import render, render_text, select_templates

__all__ = [
    "NotificationPipeline",
    "PipelineStage",
    "PipelineState",
    "create_pipeline",
    "render",
    "render_text",
    "select_templates",
    "summarize_outcomes",
]
