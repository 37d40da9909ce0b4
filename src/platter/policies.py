import random
import time
from typing import Union

from .ratelimit import RateLimitSnapshot
from .types import RetryConfig

JITTER_LOW = 0.8
JITTER_HIGH = 1.2
# 2**60 seconds already dwarfs any sane max_delay; keeps the float math finite
MAX_EXPONENT = 60

PRESETS = {
    "default": RetryConfig.DEFAULT,
    "aggressive": RetryConfig.AGGRESSIVE,
    "conservative": RetryConfig.CONSERVATIVE,
}


def compute_delay(
    attempt: int,
    config: RetryConfig,
    rate_limit: Union[RateLimitSnapshot, None] = None,
    *,
    now: Union[float, None] = None,
    rng: Union[random.Random, None] = None,
) -> float:
    """Seconds to wait before retry number ``attempt`` (0-based).

    An exhausted window (remaining == 0) waits for the server's reset, capped at
    max_delay. Otherwise exponential backoff with +/-20% jitter, capped too.
    """
    if config.respect_reset_time and rate_limit is not None and rate_limit.remaining == 0:
        now = time.time() if now is None else now
        return min(rate_limit.delay_until_reset(now), config.max_delay)
    jitter = (rng or random).uniform(JITTER_LOW, JITTER_HIGH)
    exponential = config.base_delay * (2.0 ** min(max(attempt, 0), MAX_EXPONENT))
    return min(exponential * jitter, config.max_delay)


class RetryPolicy:
    """Decides whether a rate-limited request gets another attempt, and when."""

    def __init__(self, config: Union[RetryConfig, None] = None, rng: Union[random.Random, None] = None):
        self.config = config or RetryConfig.DEFAULT
        self._rng = rng

    def should_retry(self, attempt: int) -> bool:
        return self.config.enable_auto_retry and attempt < self.config.max_retries

    def delay(self, attempt: int, rate_limit: Union[RateLimitSnapshot, None] = None) -> float:
        return compute_delay(attempt, self.config, rate_limit, rng=self._rng)


def coerce_retry_config(config: Union[object, None]) -> RetryConfig:
    """Turn None | str | dict | RetryConfig into a RetryConfig.

    Accepted inputs:
      - None            -> RetryConfig.DEFAULT
      - "default" | "aggressive" | "conservative" -> the named preset
      - dict            -> RetryConfig(**dict)
      - RetryConfig     (returned as-is)
    """
    if config is None:
        return RetryConfig.DEFAULT
    if isinstance(config, RetryConfig):
        return config
    if isinstance(config, str):
        name = config.lower()
        if name in PRESETS:
            return PRESETS[name]
        raise ValueError(
            "Unknown retry preset. Use 'default', 'aggressive' or 'conservative', "
            "or pass a RetryConfig."
        )
    if isinstance(config, dict):
        return RetryConfig(**config)
    raise TypeError("retry_config must be None, a preset name, a dict, or a RetryConfig")
