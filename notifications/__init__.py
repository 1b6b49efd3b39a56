"""Operator notifications (log or webhook)."""

from notifications.notifier import (
    LogNotifier,
    Notifier,
    WebhookNotifier,
    build_failure_message,
    build_report_message,
)

__all__ = [
    "LogNotifier",
    "Notifier",
    "WebhookNotifier",
    "build_failure_message",
    "build_report_message",
]
