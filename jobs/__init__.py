"""Scheduled jobs for the reminder service."""

from .delivery_sweep import register_delivery_sweep
from .alarm_sync import register_alarm_sync

__all__ = [
    "register_delivery_sweep",
    "register_alarm_sync",
]
