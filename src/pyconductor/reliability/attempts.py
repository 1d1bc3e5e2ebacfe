"""Per-attempt audit trail for one reliability-wrapped call."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pyconductor.models.agent import AgentResult
from pyconductor.models.attempt import AttemptRecord, AttemptSink

logger = logging.getLogger(__name__)


@dataclass
class _OpenAttempt:
    model_id: str
    started_at: datetime
    started: float


class AttemptTracker:
    """
    Collects AttemptRecords and forwards each one to an optional sink.

    A failing sink is logged and ignored; auditing must never fail a call.
    """

    def __init__(self, sink: AttemptSink | None = None):
        self._sink = sink
        self.attempts: list[AttemptRecord] = []

    def start_attempt(self, model_id: str) -> _OpenAttempt:
        return _OpenAttempt(model_id, datetime.now(UTC), time.perf_counter())

    def complete_attempt(
        self,
        attempt: _OpenAttempt,
        result: Any = None,
        error: BaseException | None = None,
    ) -> AttemptRecord:
        usage = result if isinstance(result, AgentResult) else AgentResult()
        record = AttemptRecord(
            model_id=attempt.model_id,
            started_at=attempt.started_at,
            duration=time.perf_counter() - attempt.started,
            success=error is None,
            error_class=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_cost=usage.total_cost,
        )
        self._append(record)
        return record

    def record_short_circuit(self, model_id: str) -> AttemptRecord:
        record = AttemptRecord(
            model_id=model_id,
            started_at=datetime.now(UTC),
            short_circuited=True,
            error_class="CircuitBreakerOpenError",
        )
        self._append(record)
        return record

    def _append(self, record: AttemptRecord) -> None:
        self.attempts.append(record)
        if self._sink is None:
            return
        try:
            self._sink(record)
        except Exception:
            logger.exception(f"Attempt sink failed for model {record.model_id}")

    def successful_attempt(self) -> AttemptRecord | None:
        return next((a for a in self.attempts if a.success), None)

    def failed_attempts(self) -> list[AttemptRecord]:
        return [a for a in self.attempts if not a.success and not a.short_circuited]

    def short_circuited_models(self) -> list[str]:
        return [a.model_id for a in self.attempts if a.short_circuited]

    def total_duration(self) -> float:
        return sum(a.duration for a in self.attempts)

    def to_dicts(self) -> list[dict[str, Any]]:
        return [a.to_dict() for a in self.attempts]

    def __len__(self) -> int:
        return len(self.attempts)
