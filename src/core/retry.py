"""Retry with exponential backoff for async remote calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.core.exceptions import RetryExhaustedError

logger = structlog.stdlib.get_logger()

T = TypeVar("T")

# Zero-argument coroutine factory; called once per attempt.
Operation = Callable[[], Awaitable[T]]
SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """How many times to attempt an operation and how long to back off."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(5, ge=1)
    backoff_base_secs: float = Field(1.0, ge=0.0)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before *attempt* (0-indexed). Attempt 0 never waits."""
        if attempt <= 0:
            return 0.0
        return self.backoff_base_secs * 2**attempt


class RetryExecutor:
    """Runs an async operation until it succeeds or the policy is exhausted.

    Every ``Exception`` counts as retryable; there is no jitter. When the
    last attempt fails a :class:`RetryExhaustedError` naming *label* is raised,
    chained from the final underlying error.

    Usage::

        executor = RetryExecutor(RetryPolicy(max_attempts=3))
        token = await executor.execute(lambda: client.login(u, p), "homebox login")
    """

    def __init__(self, policy: RetryPolicy, sleep: SleepFn | None = None) -> None:
        self._policy = policy
        self._sleep = sleep or asyncio.sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(self, operation: Operation[T], label: str) -> T:
        max_attempts = self._policy.max_attempts
        for attempt in range(max_attempts):
            if attempt > 0:
                await self._sleep(self._policy.delay_for(attempt))
            try:
                return await operation()
            except Exception as exc:
                if attempt >= max_attempts - 1:
                    logger.error(
                        "retry_exhausted",
                        operation=label,
                        attempts=max_attempts,
                        error=str(exc),
                    )
                    raise RetryExhaustedError(label, max_attempts, exc) from exc
                logger.warning(
                    "retry_scheduled",
                    operation=label,
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=self._policy.delay_for(attempt + 1),
                    error=str(exc),
                )

        # max_attempts >= 1 guarantees the loop returns or raises.
        raise AssertionError("unreachable")
