# Overview: Fire-and-forget bridge from delivery transitions to the customer notification sink.

"""
Notification dispatch.

The actual SMS/push delivery lives outside this service. Doorstep only talks to
a NotificationSink with two operations:

    notify_delivery_completed(customer_id, delivery_id, products)
    notify_delivery_failed(customer_id, delivery_id, reason_text)

Dispatch is best-effort: calls run on a small thread pool (or inline when
NOTIFICATIONS_ASYNC is off), and any exception from the sink is logged through
the app logger and swallowed. A notification failure never fails or rolls
back the transition that triggered it.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from flask import Flask, current_app

EXTENSION_KEY = "doorstep.notifications"


class NotificationSink:
    """Interface for the external notification collaborator."""

    def notify_delivery_completed(self, customer_id: int, delivery_id: int, products: list[dict]) -> None:
        raise NotImplementedError

    def notify_delivery_failed(self, customer_id: int, delivery_id: int, reason_text: str) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Default sink: records what would be sent in the application log."""

    def __init__(self, app: Flask):
        self.app = app

    def notify_delivery_completed(self, customer_id, delivery_id, products):
        summary = ", ".join(f"{p['name']} x{p['quantity']}" for p in products) or "no items"
        self.app.logger.info(
            "[NOTIFY] customer=%s delivery=%s completed: %s", customer_id, delivery_id, summary
        )

    def notify_delivery_failed(self, customer_id, delivery_id, reason_text):
        self.app.logger.info(
            "[NOTIFY] customer=%s delivery=%s failed: %s", customer_id, delivery_id, reason_text
        )


@dataclass
class _NotificationState:
    sink: NotificationSink
    executor: ThreadPoolExecutor | None


def init_notifications(app: Flask, sink: NotificationSink | None = None) -> None:
    """Install the notification sink (default: LoggingNotificationSink) on the app."""
    existing = app.extensions.get(EXTENSION_KEY)
    if existing is not None and existing.executor is not None:
        existing.executor.shutdown(wait=False)

    executor = None
    if app.config.get("NOTIFICATIONS_ASYNC", True):
        executor = ThreadPoolExecutor(
            max_workers=max(1, int(app.config.get("NOTIFICATION_WORKERS", 2))),
            thread_name_prefix="doorstep-notify",
        )
    app.extensions[EXTENSION_KEY] = _NotificationState(
        sink=sink or LoggingNotificationSink(app),
        executor=executor,
    )


def _dispatch(kind: str, method_name: str, *args) -> None:
    app = current_app._get_current_object()
    state = app.extensions.get(EXTENSION_KEY)
    if state is None:
        app.logger.warning("Notification sink not configured; dropping %s notification", kind)
        return

    def _call():
        try:
            getattr(state.sink, method_name)(*args)
        except Exception:
            app.logger.exception("Failed to send %s notification for delivery %s", kind, args[1])

    if state.executor is None:
        _call()
        return

    try:
        state.executor.submit(_call)
    except RuntimeError:
        app.logger.exception("Notification pool unavailable; dropping %s notification", kind)


def notify_delivery_completed(customer_id: int, delivery_id: int, products: list[dict]) -> None:
    _dispatch("completion", "notify_delivery_completed", customer_id, delivery_id, products)


def notify_delivery_failed(customer_id: int, delivery_id: int, reason_text: str) -> None:
    _dispatch("failure", "notify_delivery_failed", customer_id, delivery_id, reason_text)
