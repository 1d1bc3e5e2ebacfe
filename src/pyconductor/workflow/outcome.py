"""
Step outcomes and control signals.

A step body can end in four ways, modelled as the StepOutcome union:

    Completed(result)        the step produced a result (possibly via a
                             fallback, an error handler or a skip default)
    Skipped(result)          a condition was false or the body called skip()
    Halted(result)           the body called halt(); the workflow ends
                             successfully with this result
    Failed(error, result)    every recovery path was exhausted

skip() and halt() need a non-local exit out of user code. They raise
_StepSignal subclasses, which derive from BaseException so that a step
body's own `except Exception` cannot swallow them. The step executor is
the only place that catches them, and it converts them into outcomes
immediately; nothing above the step boundary sees a signal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeGuard

if TYPE_CHECKING:
    from pyconductor.workflow.results import Result, StepResult

_MISSING: Any = object()


class _StepSignal(BaseException):
    """Base class for non-local exits from step bodies."""


class SkipSignal(_StepSignal):
    def __init__(self, reason: str = "", default: Any = _MISSING):
        super().__init__(reason)
        self.reason = reason
        self.default = default

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING


class HaltSignal(_StepSignal):
    def __init__(self, result: Any = None):
        super().__init__("halt")
        self.result = result


@dataclass(frozen=True)
class Completed:
    result: Result


@dataclass(frozen=True)
class Skipped:
    result: StepResult

    @property
    def reason(self) -> str | None:
        return self.result.reason


@dataclass(frozen=True)
class Halted:
    result: Result


@dataclass(frozen=True)
class Failed:
    error: BaseException
    result: Result
    critical: bool


StepOutcome = Completed | Skipped | Halted | Failed


def is_completed(outcome: StepOutcome) -> TypeGuard[Completed]:
    return isinstance(outcome, Completed)


def is_skipped(outcome: StepOutcome) -> TypeGuard[Skipped]:
    return isinstance(outcome, Skipped)


def is_halted(outcome: StepOutcome) -> TypeGuard[Halted]:
    return isinstance(outcome, Halted)


def is_failed(outcome: StepOutcome) -> TypeGuard[Failed]:
    return isinstance(outcome, Failed)


__all__ = [
    "StepOutcome",
    "Completed",
    "Skipped",
    "Halted",
    "Failed",
    "SkipSignal",
    "HaltSignal",
    "is_completed",
    "is_skipped",
    "is_halted",
    "is_failed",
]
