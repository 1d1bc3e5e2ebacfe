"""
Wait declarations and their results.

Four kinds of suspension point:

    wait(5)                                     delay
    wait_until(lambda ctx: ready(), timeout=60) until (polled predicate)
    wait_until(time=lambda ctx: next_hour())    schedule (absolute target)
    wait_for("manager_approval", notify=["slack"], timeout=3600)
                                                approval

Timeout handling is declared with on_timeout: "fail" (default),
"continue", "skip_next" or "escalate" (with escalate_to).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pyconductor.core.errors import WaitConfigError
from pyconductor.core.status import TimeoutAction, WaitStatus, WaitType
from pyconductor.workflow.context import StepContext
from pyconductor.workflow.step import Predicate, evaluate_predicate


@dataclass(frozen=True)
class WaitConfig:
    """Immutable description of one wait."""

    type: WaitType
    name: str | None = None
    duration: float | None = None
    condition: Callable[[StepContext], Any] | None = None
    poll_interval: float = 1.0
    timeout: float | None = None
    on_timeout: TimeoutAction = TimeoutAction.FAIL
    escalate_to: str | None = None
    backoff: float | None = None
    max_interval: float | None = None
    notify: tuple[str, ...] = ()
    message: str | None = None
    reminder_after: float | None = None
    reminder_interval: float | None = None
    approvers: tuple[str, ...] = ()
    if_: Predicate | None = None
    unless: Predicate | None = None
    ui_label: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.type is WaitType.DELAY:
            if self.duration is None or self.duration < 0:
                raise WaitConfigError("A delay wait needs a non-negative duration")
        elif self.type in (WaitType.UNTIL, WaitType.SCHEDULE):
            if self.condition is None:
                raise WaitConfigError(f"A {self.type} wait needs a condition")
        elif self.type is WaitType.APPROVAL:
            if not self.name:
                raise WaitConfigError("An approval wait needs a name")
        if self.poll_interval <= 0:
            raise WaitConfigError("poll_interval must be > 0")
        if self.timeout is not None and self.timeout < 0:
            raise WaitConfigError("timeout must be >= 0")
        if self.backoff is not None and self.backoff < 1:
            raise WaitConfigError("backoff must be >= 1")

    @classmethod
    def create(cls, type: str | WaitType, **options: Any) -> WaitConfig:
        """
        Build a config from loose options.

        Raises:
            WaitConfigError: On an unknown wait type or timeout action
        """
        try:
            wait_type = WaitType(type)
        except ValueError as e:
            raise WaitConfigError(f"Unknown wait type: {type!r}") from e

        if "on_timeout" in options:
            try:
                options["on_timeout"] = TimeoutAction(options["on_timeout"])
            except ValueError as e:
                raise WaitConfigError(f"Unknown on_timeout action: {options['on_timeout']!r}") from e
        for key in ("notify", "approvers"):
            value = options.get(key)
            if isinstance(value, str):
                options[key] = (value,)
            elif value is not None:
                options[key] = tuple(value)
        return cls(type=wait_type, **options)

    @property
    def label(self) -> str:
        if self.ui_label:
            return self.ui_label
        if self.type is WaitType.DELAY:
            return f"Wait {self.duration}s"
        if self.type is WaitType.APPROVAL:
            return f"Awaiting {self.name}"
        return f"Wait ({self.type})"

    async def should_execute(self, ctx: StepContext) -> bool:
        if self.if_ is not None and not await evaluate_predicate(self.if_, ctx):
            return False
        if self.unless is not None and await evaluate_predicate(self.unless, ctx):
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "label": self.label,
            "duration": self.duration,
            "poll_interval": self.poll_interval,
            "timeout": self.timeout,
            "on_timeout": self.on_timeout.value,
            "escalate_to": self.escalate_to,
            "notify": list(self.notify),
            "approvers": list(self.approvers),
        }


def wait(duration: float, **options: Any) -> WaitConfig:
    """Pause for a fixed number of seconds."""
    return WaitConfig.create(WaitType.DELAY, duration=duration, **options)


def wait_until(
    condition: Callable[[StepContext], Any] | None = None,
    *,
    time: Callable[[StepContext], Any] | None = None,
    **options: Any,
) -> WaitConfig:
    """Poll `condition` until true, or sleep until the datetime `time` returns."""
    if (condition is None) == (time is None):
        raise WaitConfigError("wait_until needs exactly one of condition or time")
    if time is not None:
        return WaitConfig.create(WaitType.SCHEDULE, condition=time, **options)
    return WaitConfig.create(WaitType.UNTIL, condition=condition, **options)


def wait_for(name: str, **options: Any) -> WaitConfig:
    """Suspend until the named approval is decided."""
    return WaitConfig.create(WaitType.APPROVAL, name=name, **options)


@dataclass(frozen=True)
class WaitResult:
    """
    How a wait ended.

    The workflow executor only reads should_continue and should_skip_next.
    """

    type: WaitType
    status: WaitStatus
    waited_duration: float = 0.0
    timeout_action: TimeoutAction | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, type: WaitType, waited: float, **metadata: Any) -> WaitResult:
        return cls(type, WaitStatus.SUCCESS, waited, metadata=metadata)

    @classmethod
    def timeout(
        cls, type: WaitType, waited: float, action: TimeoutAction, **metadata: Any
    ) -> WaitResult:
        return cls(type, WaitStatus.TIMEOUT, waited, timeout_action=action, metadata=metadata)

    @classmethod
    def skipped(cls, type: WaitType, reason: str = "condition not met") -> WaitResult:
        return cls(type, WaitStatus.SKIPPED, metadata={"reason": reason})

    @classmethod
    def approved(
        cls, approval_id: str, approved_by: str | None, waited: float, **metadata: Any
    ) -> WaitResult:
        return cls(
            WaitType.APPROVAL,
            WaitStatus.APPROVED,
            waited,
            metadata={"approval_id": approval_id, "actor": approved_by, **metadata},
        )

    @classmethod
    def rejected(
        cls,
        approval_id: str,
        rejected_by: str | None,
        reason: str | None,
        waited: float,
    ) -> WaitResult:
        return cls(
            WaitType.APPROVAL,
            WaitStatus.REJECTED,
            waited,
            metadata={"approval_id": approval_id, "actor": rejected_by, "reason": reason},
        )

    @property
    def is_success(self) -> bool:
        return self.status in (WaitStatus.SUCCESS, WaitStatus.APPROVED)

    @property
    def is_timeout(self) -> bool:
        return self.status is WaitStatus.TIMEOUT

    @property
    def is_rejected(self) -> bool:
        return self.status is WaitStatus.REJECTED

    @property
    def is_skipped(self) -> bool:
        return self.status is WaitStatus.SKIPPED

    @property
    def should_continue(self) -> bool:
        if self.is_success or self.is_skipped:
            return True
        return self.is_timeout and self.timeout_action in (
            TimeoutAction.CONTINUE,
            TimeoutAction.SKIP_NEXT,
        )

    @property
    def should_skip_next(self) -> bool:
        return self.is_timeout and self.timeout_action is TimeoutAction.SKIP_NEXT

    @property
    def approval_id(self) -> str | None:
        return self.metadata.get("approval_id")

    @property
    def actor(self) -> str | None:
        return self.metadata.get("actor")

    @property
    def rejection_reason(self) -> str | None:
        return self.metadata.get("reason") if self.is_rejected else None

    @property
    def escalated_to(self) -> str | None:
        return self.metadata.get("escalated_to")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "status": self.status.value,
            "waited_duration": self.waited_duration,
            "timeout_action": self.timeout_action.value if self.timeout_action else None,
            "metadata": dict(self.metadata),
        }


__all__ = ["WaitConfig", "WaitResult", "wait", "wait_until", "wait_for"]
