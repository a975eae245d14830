# device_agent/core/retry.py
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, TypeVar

from device_agent.core.cancellation import CancellationToken
from device_agent.core.config import RetryConfig
from device_agent.core.errors import CancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PHASE_MODEL = "model"
PHASE_SCREENSHOT = "screenshot"
PHASE_EXECUTE = "execute"
PHASES = (PHASE_MODEL, PHASE_SCREENSHOT, PHASE_EXECUTE)


@dataclass
class RetryBudget:
    phase: str
    max_attempts: int
    attempts_used: int = 0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts for phase '{self.phase}' must be >= 1, got {self.max_attempts}")

    @property
    def exhausted(self) -> bool:
        return self.attempts_used >= self.max_attempts

    def reset(self):
        self.attempts_used = 0


class RetryPolicy:
    """Per-phase attempt limits. Hands out a fresh, unshared budget per phase for each run."""

    def __init__(self, model: int = 3, screenshot: int = 5, execute: int = 1, delay_seconds: float = 0.0):
        self.limits: Dict[str, int] = {
            PHASE_MODEL: model,
            PHASE_SCREENSHOT: screenshot,
            PHASE_EXECUTE: execute,
        }
        self.delay_seconds = delay_seconds

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> "RetryPolicy":
        return cls(model=cfg.model, screenshot=cfg.screenshot, execute=cfg.execute,
                   delay_seconds=cfg.delay_seconds)

    def new_budgets(self) -> Dict[str, RetryBudget]:
        return {phase: RetryBudget(phase, limit) for phase, limit in self.limits.items()}


def with_retry(
    budget: RetryBudget,
    operation: Callable[[], T],
    cancellation: Optional[CancellationToken] = None,
    delay_seconds: float = 0.0,
) -> T:
    """
    Call `operation` until it succeeds or `budget.max_attempts` attempts were made,
    then re-raise the last error. The counter restarts on every call.

    Cancellation is checked before each attempt; CancelledError and errors flagged
    `retryable = False` propagate immediately.
    """
    budget.reset()
    last_error: Optional[BaseException] = None

    while not budget.exhausted:
        if cancellation is not None:
            cancellation.raise_if_cancelled(budget.phase)

        budget.attempts_used += 1
        try:
            return operation()
        except CancelledError:
            raise
        except Exception as e:
            last_error = e
            if not getattr(e, "retryable", True):
                raise
            if budget.exhausted:
                break
            logger.warning(
                "[retry] phase=%s attempt %d/%d failed: %s",
                budget.phase, budget.attempts_used, budget.max_attempts, e,
            )
            if delay_seconds > 0:
                if cancellation is not None:
                    cancellation.sleep(delay_seconds)
                else:
                    time.sleep(delay_seconds)

    logger.error("[retry] phase=%s exhausted after %d attempt(s): %s",
                 budget.phase, budget.attempts_used, last_error)
    raise last_error
