"""Notification channels for approval waits."""

from pyconductor.notifiers.base import LoggingNotifier, Notifier, NotifierRegistry, registry
from pyconductor.notifiers.email import EmailNotifier
from pyconductor.notifiers.slack import SlackNotifier
from pyconductor.notifiers.webhook import WebhookNotifier

__all__ = [
    "Notifier",
    "NotifierRegistry",
    "LoggingNotifier",
    "EmailNotifier",
    "SlackNotifier",
    "WebhookNotifier",
    "registry",
]
