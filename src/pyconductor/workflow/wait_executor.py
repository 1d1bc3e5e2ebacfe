"""
Execution of wait steps.

Every sleep goes through bounded_sleep, so a workflow deadline cuts waits
short, and the deadline is checked again before every poll.

Approval waits create the Approval, notify the configured channels, then
poll the store. On timeout the record is expired through the store's
atomic transition; if an approver decided it in the meantime, their
decision wins and the poll continues to pick it up.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from pyconductor.core.errors import (
    ConductorError,
    InvalidApprovalStateError,
    StepFailedError,
    StorageError,
    WaitConfigError,
)
from pyconductor.core.status import TimeoutAction, WaitType
from pyconductor.models.approval import Approval
from pyconductor.notifiers.base import NotifierRegistry
from pyconductor.reliability.constraints import bounded_sleep, enforce_deadlines
from pyconductor.storage.base import ApprovalStore
from pyconductor.workflow.context import StepContext
from pyconductor.workflow.step import maybe_await
from pyconductor.workflow.wait import WaitConfig, WaitResult

logger = logging.getLogger(__name__)


class WaitExecutor:
    """Runs WaitConfigs for one workflow run."""

    def __init__(
        self,
        approval_store: ApprovalStore,
        notifiers: NotifierRegistry,
        workflow_type: str,
    ):
        self.approval_store = approval_store
        self.notifiers = notifiers
        self.workflow_type = workflow_type

    async def execute(self, config: WaitConfig, ctx: StepContext) -> WaitResult:
        """
        Raises:
            WaitConfigError: If a schedule condition returns a non-datetime
            StepFailedError: If an until or schedule condition raises
        """
        if not await config.should_execute(ctx):
            return WaitResult.skipped(config.type)

        logger.info(f"Waiting: {config.label}")
        if config.type is WaitType.DELAY:
            return await self._delay(config)
        if config.type is WaitType.UNTIL:
            return await self._until(config, ctx)
        if config.type is WaitType.SCHEDULE:
            return await self._schedule(config, ctx)
        return await self._approval(config, ctx)

    # =========================================================================
    # Kinds
    # =========================================================================

    async def _delay(self, config: WaitConfig) -> WaitResult:
        assert config.duration is not None
        started = time.monotonic()
        await bounded_sleep(config.duration)
        return WaitResult.success(WaitType.DELAY, time.monotonic() - started)

    async def _until(self, config: WaitConfig, ctx: StepContext) -> WaitResult:
        assert config.condition is not None
        started = time.monotonic()
        interval = config.poll_interval
        polls = 0

        while True:
            enforce_deadlines()
            polls += 1
            if await self._evaluate(config, ctx):
                return WaitResult.success(WaitType.UNTIL, time.monotonic() - started, polls=polls)

            elapsed = time.monotonic() - started
            if config.timeout is not None and elapsed >= config.timeout:
                return await self._handle_timeout(config, elapsed, polls=polls)

            pause = interval
            if config.timeout is not None:
                pause = min(pause, config.timeout - elapsed)
            logger.debug(f"Condition not met (poll {polls}), sleeping {pause:.3f}s")
            await bounded_sleep(pause)

            if config.backoff:
                interval *= config.backoff
                if config.max_interval is not None:
                    interval = min(interval, config.max_interval)

    async def _schedule(self, config: WaitConfig, ctx: StepContext) -> WaitResult:
        assert config.condition is not None
        target = await self._evaluate(config, ctx)
        if not isinstance(target, datetime):
            raise WaitConfigError(
                f"Schedule condition must return a datetime, got {type(target).__name__}"
            )

        now = datetime.now(target.tzinfo) if target.tzinfo else datetime.now()
        delay = max((target - now).total_seconds(), 0.0)
        started = time.monotonic()

        if config.timeout is not None and delay > config.timeout:
            await bounded_sleep(config.timeout)
            return await self._handle_timeout(
                config, time.monotonic() - started, target=target.isoformat()
            )

        await bounded_sleep(delay)
        return WaitResult.success(
            WaitType.SCHEDULE, time.monotonic() - started, target=target.isoformat()
        )

    async def _evaluate(self, config: WaitConfig, ctx: StepContext) -> Any:
        assert config.condition is not None
        try:
            return await maybe_await(config.condition(ctx))
        except ConductorError:
            raise
        except Exception as error:
            logger.exception(f"Condition of wait {config.name} raised")
            raise StepFailedError(
                config.name or config.label, f"wait condition raised {error!r}", cause=error
            ) from error

    async def _approval(self, config: WaitConfig, ctx: StepContext) -> WaitResult:
        assert config.name is not None
        store = self.approval_store
        message = config.message or f"Approval required: {config.name}"

        approval = Approval(
            workflow_id=ctx.workflow_id,
            workflow_type=self.workflow_type,
            name=config.name,
            approvers=list(config.approvers),
            expires_at=(
                datetime.now(UTC) + timedelta(seconds=config.timeout)
                if config.timeout is not None
                else None
            ),
            metadata={"message": message, **config.metadata},
        )
        await store.save(approval)
        logger.info(f"Created approval {approval.id} ({config.name})")

        if config.notify:
            delivered = await self.notifiers.notify_all(approval, message, config.notify)
            logger.debug(f"Approval {approval.id} notifications: {delivered}")

        started = time.monotonic()
        while True:
            enforce_deadlines()
            current = await store.find(approval.id)
            if current is None:
                raise StorageError(f"Approval {approval.id} disappeared while waiting")

            waited = time.monotonic() - started
            if current.is_approved:
                logger.info(f"Approval {current.id} approved by {current.approved_by}")
                return WaitResult.approved(current.id, current.approved_by, waited)
            if current.is_rejected:
                logger.info(f"Approval {current.id} rejected by {current.rejected_by}")
                return WaitResult.rejected(current.id, current.rejected_by, current.reason, waited)
            if current.is_expired:
                return await self._handle_timeout(
                    config, waited, approval=current, approval_id=current.id
                )

            if config.timeout is not None and waited >= config.timeout:
                try:
                    expired = await store.expire(current.id)
                except InvalidApprovalStateError:
                    # Decided between our read and the expiry; read it again.
                    continue
                return await self._handle_timeout(
                    config, waited, approval=expired, approval_id=expired.id
                )

            if config.reminder_after is not None and current.should_remind(
                config.reminder_after, config.reminder_interval
            ):
                await self._remind(config, current, message)

            pause = config.poll_interval
            if config.timeout is not None:
                pause = min(pause, config.timeout - waited)
            await bounded_sleep(pause)

    async def _remind(self, config: WaitConfig, approval: Approval, message: str) -> None:
        try:
            reminded = await self.approval_store.mark_reminded(approval.id)
        except InvalidApprovalStateError:
            return
        logger.info(f"Sending reminder {reminded.reminder_count} for approval {approval.id}")
        if config.notify:
            await self.notifiers.remind_all(reminded, message, config.notify)

    # =========================================================================
    # Timeout
    # =========================================================================

    async def _handle_timeout(
        self,
        config: WaitConfig,
        waited: float,
        approval: Approval | None = None,
        **metadata: object,
    ) -> WaitResult:
        action = config.on_timeout
        if action is TimeoutAction.ESCALATE and not config.escalate_to:
            logger.warning(f"{config.label}: escalate requested without escalate_to, failing")
            action = TimeoutAction.FAIL

        logger.warning(f"{config.label} timed out after {waited:.2f}s (action: {action})")

        if action is TimeoutAction.ESCALATE:
            assert config.escalate_to is not None
            metadata["escalated_to"] = config.escalate_to
            if approval is not None and config.notify:
                message = config.message or f"Approval required: {config.name}"
                await self.notifiers.escalate_all(
                    approval, message, config.escalate_to, config.notify
                )

        return WaitResult.timeout(config.type, waited, action, **metadata)


__all__ = ["WaitExecutor"]
