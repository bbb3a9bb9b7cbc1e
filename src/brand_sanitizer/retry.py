"""Bounded retry with exponential backoff for remote calls."""

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from rich.console import Console

from .config import Config

console = Console(stderr=True)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry a callable up to ``max_attempts`` times.

    Delays grow as ``initial_delay_s * multiplier ** attempt`` and are capped
    at ``max_delay_s``. Only exceptions listed in ``retry_on`` are retried;
    the last one is re-raised once attempts run out.
    """

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    max_delay_s: float = 10.0
    multiplier: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            initial_delay_s=config.retry_initial_delay_ms / 1000,
            max_delay_s=config.retry_max_delay_ms / 1000,
            multiplier=config.retry_backoff_multiplier,
            **kwargs,
        )

    @classmethod
    def none(cls) -> "RetryPolicy":
        """A policy that calls exactly once."""
        return cls(max_attempts=1)

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay_s * self.multiplier ** attempt, self.max_delay_s)

    def call(self, fn: Callable[[], T], description: str = "request") -> T:
        attempts = max(1, self.max_attempts)
        for attempt in range(attempts):
            try:
                return fn()
            except self.retry_on as e:
                if attempt == attempts - 1:
                    raise
                delay = self.delay_for(attempt)
                console.print(
                    f"[yellow]Warning:[/yellow] {description} failed "
                    f"(attempt {attempt + 1}/{attempts}): {e}. Retrying in {delay:.1f}s"
                )
                self.sleep(delay)
