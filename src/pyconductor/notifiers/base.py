"""
Approval notifications.

A Notifier has one wire operation, notify(approval, message) -> bool.
Reminders and escalations are the same operation with a prefixed message.

Delivery failures never raise: a notifier returns False and logs, so a
chat or mail outage cannot fail a workflow.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from pyconductor.models.approval import Approval

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivery channel for approval messages."""

    @abstractmethod
    async def notify(self, approval: Approval, message: str) -> bool:
        """Deliver message about approval. True on success."""

    async def remind(self, approval: Approval, message: str) -> bool:
        return await self.notify(approval, f"[Reminder] {message}")

    async def escalate(self, approval: Approval, message: str, to: str) -> bool:
        return await self.notify(approval, f"[Escalation to {to}] {message}")


class LoggingNotifier(Notifier):
    """Writes notifications to the log. Useful in development."""

    def __init__(self, level: int = logging.INFO):
        self.level = level
        self.sent: list[tuple[str, str]] = []

    async def notify(self, approval: Approval, message: str) -> bool:
        logger.log(self.level, f"Approval {approval.name} ({approval.id}): {message}")
        self.sent.append((approval.id, message))
        return True


class NotifierRegistry:
    """
    Name → Notifier map with fan-out delivery.

    Unknown channel names deliver nothing and report False.

    Usage:
        registry = NotifierRegistry()
        registry.register("slack", SlackNotifier(webhook_url=...))
        await registry.notify_all(approval, "Please review", channels=["slack", "email"])
        # {"slack": True, "email": False}
    """

    def __init__(self) -> None:
        self._notifiers: dict[str, Notifier] = {}

    def register(self, name: str, notifier: Notifier) -> None:
        self._notifiers[name] = notifier

    def unregister(self, name: str) -> Notifier | None:
        return self._notifiers.pop(name, None)

    def get(self, name: str) -> Notifier | None:
        return self._notifiers.get(name)

    def is_registered(self, name: str) -> bool:
        return name in self._notifiers

    @property
    def names(self) -> list[str]:
        return list(self._notifiers)

    def reset(self) -> None:
        self._notifiers.clear()

    async def notify_all(
        self, approval: Approval, message: str, channels: Iterable[str]
    ) -> dict[str, bool]:
        return await self._fan_out(channels, lambda n: n.notify(approval, message))

    async def remind_all(
        self, approval: Approval, message: str, channels: Iterable[str]
    ) -> dict[str, bool]:
        return await self._fan_out(channels, lambda n: n.remind(approval, message))

    async def escalate_all(
        self, approval: Approval, message: str, to: str, channels: Iterable[str]
    ) -> dict[str, bool]:
        return await self._fan_out(channels, lambda n: n.escalate(approval, message, to))

    async def _fan_out(self, channels: Iterable[str], send) -> dict[str, bool]:
        names = list(dict.fromkeys(channels))

        async def deliver(name: str) -> bool:
            notifier = self._notifiers.get(name)
            if notifier is None:
                logger.warning(f"No notifier registered for channel {name!r}")
                return False
            try:
                return bool(await send(notifier))
            except Exception:
                logger.exception(f"Notifier {name!r} raised")
                return False

        results = await asyncio.gather(*(deliver(name) for name in names))
        return dict(zip(names, results, strict=True))


registry = NotifierRegistry()
"""Process-wide default registry."""


__all__ = ["Notifier", "LoggingNotifier", "NotifierRegistry", "registry"]
