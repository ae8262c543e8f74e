# docschema/backoff.py
import asyncio, logging, random
from typing import Any, Awaitable, Callable, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from docschema.errors import ClassifiedError, aborted_error, budget_exhausted_error, classify

logger = logging.getLogger(__name__)

T = TypeVar("T")
ShouldRetry = Callable[[ClassifiedError, int], Optional[bool]]
OnRetry = Callable[[ClassifiedError, int, int], None]
SleepFn = Callable[[int, Optional[asyncio.Event]], Awaitable[None]]


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    enabled: bool = True
    strategy: Literal["exponential", "linear", "fixed"] = "exponential"
    base_delay_ms: int = Field(100, ge=0)
    max_delay_ms: int = Field(30000, ge=0)
    jitter_factor: float = Field(0.1, ge=0.0, le=1.0)
    max_retries: int = Field(3, ge=0)
    max_retry_ru_budget: Optional[float] = Field(None, ge=0.0)
    respect_retry_after: bool = True
    should_retry: Optional[ShouldRetry] = None
    on_retry: Optional[OnRetry] = None


def compute_delay(config: RetryConfig, attempt: int, retry_after_ms: Optional[int] = None,
                  random_fn: Callable[[], float] = random.random) -> int:
    """
    Milliseconds to wait before retrying after failed attempt number `attempt` (0-based).
    A server-provided retry-after wins (capped at max_delay_ms); otherwise the
    strategy's delay is capped and then jittered by +/- jitter_factor.
    """
    if config.respect_retry_after and retry_after_ms is not None and retry_after_ms > 0:
        return int(min(retry_after_ms, config.max_delay_ms))

    if config.strategy == "exponential":
        delay = config.base_delay_ms * (2 ** attempt)
    elif config.strategy == "linear":
        delay = config.base_delay_ms * (attempt + 1)
    else:
        delay = config.base_delay_ms
    delay = min(delay, config.max_delay_ms)

    if config.jitter_factor > 0:
        spread = delay * config.jitter_factor * (random_fn() * 2 - 1)
        delay = max(0, delay + spread)
    return int(delay)


async def sleep_ms(ms: int, cancel: Optional[asyncio.Event] = None) -> None:
    """Wait `ms` milliseconds; raise an aborted ClassifiedError if `cancel` gets set."""
    if cancel is None:
        await asyncio.sleep(ms / 1000)
        return
    if cancel.is_set():
        raise aborted_error("backoff")
    try:
        await asyncio.wait_for(cancel.wait(), timeout=ms / 1000)
    except asyncio.TimeoutError:
        return
    raise aborted_error("backoff")


async def with_retry(operation: Callable[[], Awaitable[T]], config: Optional[RetryConfig] = None, *,
                     component: str = "retry", operation_name: str = "operation",
                     cancel: Optional[asyncio.Event] = None, sleep: SleepFn = sleep_ms) -> T:
    """
    Run `operation` until it succeeds, a failure is not retryable, retries run
    out, or the request charge of failed attempts exceeds the RU budget.
    Every failure leaving this function is a ClassifiedError.
    """
    config = config or RetryConfig()
    total_ru = 0.0
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise aborted_error(component, f"{operation_name} aborted")
        try:
            return await operation()
        except Exception as exc:
            error = classify(exc, component=component)
            if error is not exc:
                error.__cause__ = exc

        if error.metadata.request_charge:
            total_ru += error.metadata.request_charge

        if not config.enabled:
            raise error

        decision: Any = None
        if config.should_retry is not None:
            decision = config.should_retry(error, attempt)
        retry = decision if isinstance(decision, bool) else error.retryable
        if not retry:
            logger.debug("%s failed with non-retryable %s: %s", operation_name, error.kind.value, error.message)
            raise error

        if attempt >= config.max_retries:
            logger.error("%s failed after %d attempts: %s", operation_name, attempt + 1, error.message)
            raise error

        budget = config.max_retry_ru_budget
        if budget is not None and total_ru > budget:
            logger.error("%s stopped: retry RU budget exhausted (%.2f/%.2f)", operation_name, total_ru, budget)
            raise budget_exhausted_error(total_ru, budget, error, component) from error

        delay = compute_delay(config, attempt, error.metadata.retry_after_ms)
        logger.warning("%s attempt %d failed (%s), retrying in %d ms",
                       operation_name, attempt + 1, error.kind.value, delay)
        if config.on_retry is not None:
            config.on_retry(error, attempt, delay)
        await sleep(delay, cancel)
        attempt += 1
