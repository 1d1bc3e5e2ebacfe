"""Per-attempt audit record produced by the reliability executor."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class AttemptRecord:
    """
    One try of one model.

    A short-circuited record means the circuit breaker was open and the
    model was never called; its duration is zero.
    """

    model_id: str
    started_at: datetime
    duration: float = 0.0
    success: bool = False
    short_circuited: bool = False
    error_class: str | None = None
    error_message: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class AttemptSink(Protocol):
    """Receives each finished attempt record, e.g. to persist an audit trail."""

    def __call__(self, record: AttemptRecord) -> None: ...


__all__ = ["AttemptRecord", "AttemptSink"]
