"""Restart strategy for the supervised worker process."""

from __future__ import annotations

from dataclasses import dataclass

from webdna_docs.config import EngineConfig


@dataclass(slots=True, frozen=True)
class RestartPolicy:
    """Backoff between worker restarts.

    The default reproduces a fixed delay with no retry cap. An unlimited
    policy keeps restarting a worker that can never come up (for example a
    bad store path), so `max_restarts` should be set wherever a crash loop
    must surface as a hard failure.
    """

    delay_seconds: float = 5.0
    multiplier: float = 1.0
    max_delay_seconds: float = 60.0
    max_restarts: int | None = None

    @classmethod
    def from_config(cls, config: EngineConfig) -> "RestartPolicy":
        return cls(
            delay_seconds=config.restart_delay_seconds,
            multiplier=config.restart_multiplier,
            max_delay_seconds=config.max_restart_delay_seconds,
            max_restarts=config.max_restarts,
        )

    @property
    def unlimited(self) -> bool:
        return self.max_restarts is None

    def allows(self, attempt: int) -> bool:
        """Whether restart number `attempt` (1-based) may run."""
        return self.max_restarts is None or attempt <= self.max_restarts

    def delay_for(self, attempt: int) -> float:
        delay = self.delay_seconds * (self.multiplier ** max(0, attempt - 1))
        if self.multiplier > 1.0:
            delay = min(delay, self.max_delay_seconds)
        return delay
