"""Notification events, sinks and the outbound dispatcher."""

from signal_desk.notify.dispatcher import NotificationDispatcher
from signal_desk.notify.events import LogSink, NotificationEvent, NotificationSink
from signal_desk.notify.telegram import TelegramSink, format_message

__all__ = [
    "LogSink",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationSink",
    "TelegramSink",
    "format_message",
]
