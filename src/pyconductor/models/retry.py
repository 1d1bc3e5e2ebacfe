"""
Retry strategy for agent and step execution.

Design Pattern: Strategy Pattern
RetryStrategy encapsulates retry behavior (which errors are transient, how
long to wait between attempts) so the executors that perform the sleeping
and re-invoking never need to change when the policy does.

The strategy is stateless and purely advisory: it answers "retry?" and
"how long?" for a given (error, attempt index); callers do the sleeping.

Design Rationale:
- Safe default: no automatic retries
- Unclassified errors are never retried, so programming errors fail fast
- Transient transport failures and provider overload messages are retried
  once retries are enabled
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import httpx

from pyconductor.core.errors import StepConfigError
from pyconductor.core.status import BackoffKind

DEFAULT_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    httpx.TimeoutException,
    httpx.NetworkError,
)
"""Exception types treated as transient without any configuration."""

DEFAULT_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "too many requests",
    "429",
    "500",
    "502",
    "503",
    "504",
    "service unavailable",
    "internal server error",
    "bad gateway",
    "gateway timeout",
    "overloaded",
    "capacity",
)
"""Lower-case message fragments that mark a provider error as transient."""


@dataclass(frozen=True)
class RetryStrategy:
    """
    Configuration for retry behavior.

    Attempt indices are 0-based counts of retries already performed:
    attempt 0 is the first try, and a retry is allowed while
    attempt < max_retries.

    Examples:
        # Named policy: predefined sensible defaults
        strategy = RetryStrategy.STANDARD

        # Step shorthand: retry any error 3 times, 1s apart
        strategy = RetryStrategy.from_options(3)

        # Full control
        strategy = RetryStrategy(
            max_retries=5,
            backoff=BackoffKind.LINEAR,
            base_delay=0.5,
            patterns=("quota",),
        )
    """

    max_retries: int = 0
    """Number of retries after the first attempt. 0 disables retrying."""

    backoff: BackoffKind = BackoffKind.EXPONENTIAL
    """How the delay grows between attempts."""

    base_delay: float = 0.4
    """Base delay in seconds."""

    max_delay: float = 3.0
    """Cap in seconds for exponential backoff."""

    retry_on: tuple[type[BaseException], ...] = ()
    """Extra exception types treated as retryable."""

    patterns: tuple[str, ...] = ()
    """Extra case-insensitive message fragments treated as retryable."""

    use_defaults: bool = True
    """Whether DEFAULT_RETRYABLE_ERRORS and DEFAULT_RETRYABLE_PATTERNS apply."""

    # =========================================================================
    # Predefined Strategies
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryStrategy
        STANDARD: RetryStrategy
        AGGRESSIVE: RetryStrategy
    else:
        NONE = cast("RetryStrategy", None)
        STANDARD = cast("RetryStrategy", None)
        AGGRESSIVE = cast("RetryStrategy", None)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise StepConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise StepConfigError("retry delays must be >= 0")

    @classmethod
    def from_options(cls, options: Any) -> RetryStrategy:
        """
        Normalize the shorthand forms accepted by step declarations.

        - None: no retries
        - int N: retry any Exception N times with a flat 1 second delay
        - Mapping: keyword arguments; "max" and "on" are accepted as aliases
          for max_retries and retry_on, and "max" defaults to 3
        - RetryStrategy: returned unchanged

        Raises:
            StepConfigError: If the value has none of these shapes
        """
        if options is None:
            return cls.NONE
        if isinstance(options, RetryStrategy):
            return options
        if isinstance(options, bool):
            raise StepConfigError(f"Invalid retry option: {options!r}")
        if isinstance(options, int):
            return cls(
                max_retries=options,
                backoff=BackoffKind.NONE,
                base_delay=1.0,
                retry_on=(Exception,),
            )
        if isinstance(options, Mapping):
            kwargs = dict(options)
            kwargs.setdefault("max_retries", kwargs.pop("max", 3))
            if "on" in kwargs:
                on = kwargs.pop("on")
                kwargs["retry_on"] = tuple(on) if isinstance(on, list | tuple) else (on,)
            if isinstance(kwargs.get("backoff"), str):
                kwargs["backoff"] = BackoffKind(kwargs["backoff"])
            if "patterns" in kwargs:
                kwargs["patterns"] = tuple(kwargs["patterns"])
            return cls(**kwargs)
        raise StepConfigError(f"Invalid retry option: {options!r}")

    def should_retry(self, attempt: int) -> bool:
        """Return True while another retry is allowed after `attempt` retries."""
        return attempt < self.max_retries

    def delay_for(self, attempt: int) -> float:
        """
        Calculate the delay in seconds before retry number `attempt`.

        - none: base_delay
        - linear: base_delay * attempt
        - exponential: min(base_delay * 2^(attempt-1), max_delay)

        Returns 0 when retries are disabled.

        Example:
            strategy = RetryStrategy(max_retries=3, base_delay=0.4, max_delay=3.0)
            strategy.delay_for(1)  # 0.4
            strategy.delay_for(2)  # 0.8
            strategy.delay_for(5)  # 3.0 (capped)
        """
        if self.max_retries == 0:
            return 0.0

        if self.backoff is BackoffKind.LINEAR:
            return self.base_delay * attempt
        if self.backoff is BackoffKind.EXPONENTIAL:
            exponent = max(attempt - 1, 0)
            return min(self.base_delay * (2**exponent), self.max_delay)
        return self.base_delay

    def is_retryable(self, error: BaseException) -> bool:
        """
        Classify an error as transient (retry) or permanent (fail fast).

        RetryableError subclasses decide for themselves. Otherwise the error
        is retryable if its type matches a configured or default class, or
        its message contains a configured or default pattern.
        """
        if isinstance(error, RetryableError):
            return error.is_retryable()

        classes = self.retry_on
        patterns = self.patterns
        if self.use_defaults:
            classes = classes + DEFAULT_RETRYABLE_ERRORS
            patterns = patterns + DEFAULT_RETRYABLE_PATTERNS

        if classes and isinstance(error, classes):
            return True

        message = str(error).lower()
        return any(pattern.lower() in message for pattern in patterns)

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"RetryStrategy(max_retries={self.max_retries}, "
            f"backoff={self.backoff.value}, "
            f"base_delay={self.base_delay}, "
            f"max_delay={self.max_delay})"
        )


# Initialize predefined strategies after class definition
RetryStrategy.NONE = RetryStrategy(max_retries=0)

RetryStrategy.STANDARD = RetryStrategy(
    max_retries=3,
    backoff=BackoffKind.EXPONENTIAL,
    base_delay=0.4,
    max_delay=3.0,
)

RetryStrategy.AGGRESSIVE = RetryStrategy(
    max_retries=6,
    backoff=BackoffKind.EXPONENTIAL,
    base_delay=0.1,
    max_delay=5.0,
)


# =============================================================================
# RetryableError - Fine-grained error retry control
# =============================================================================


class RetryableError(Exception):
    """
    Base class for errors that decide whether they should be retried.

    Example:
        class QuotaError(RetryableError):
            def __init__(self, message: str, transient: bool = True):
                super().__init__(message)
                self._transient = transient

            def is_retryable(self) -> bool:
                return self._transient

        raise QuotaError("Per-minute quota hit", transient=True)
        raise QuotaError("Monthly quota exhausted", transient=False)
    """

    def is_retryable(self) -> bool:
        """
        Returns True if the error is transient and the call should be retried.

        Returns:
            True if retryable, False if permanent
        """
        return True
