"""Exception hierarchy for the alert bot."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.types import DeliveryOutcome


class AlertBotError(Exception):
    """Base exception for all alert bot errors."""


class ConfigError(AlertBotError):
    """Configuration is missing, unreadable or invalid."""


class TransientNetworkError(AlertBotError):
    """Transport-level failure talking to a remote service."""


class AuthError(AlertBotError):
    """Authentication with a remote service failed."""


class InvalidHandleError(AlertBotError):
    """A chat user handle could not be parsed."""


class MalformedIdentifierError(AlertBotError):
    """A chat room identifier could not be parsed."""


class ItemLookupError(AlertBotError):
    """An inventory item lookup failed."""


class RoomResolutionError(AlertBotError):
    """Joining or resolving the target chat room failed."""


class DeliveryError(AlertBotError):
    """A chat message could not be delivered."""


class RetryExhaustedError(AlertBotError):
    """Every attempt of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {last_error}"
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class PipelineAbortedError(AlertBotError):
    """A fatal error stopped the notification run.

    ``outcomes`` holds whatever per-item results were produced before the
    failing stage.
    """

    def __init__(
        self,
        stage: str,
        cause: BaseException,
        outcomes: list[DeliveryOutcome] | None = None,
    ) -> None:
        super().__init__(f"run aborted during {stage}: {cause}")
        self.stage = stage
        self.cause = cause
        self.outcomes: list[DeliveryOutcome] = list(outcomes or [])
