"""Reminders domain: recurrence, device alarms and push delivery.

Reminders live in the document store; device alarms are reconciled against
them on the client side, and a server-side sweep pushes whatever is due.
"""

from .types import Reminder, RecurrenceRule, Frequency, Priority, NotificationPayload, TokenResult, BatchResult
from .recurrence import (
    normalize_recurrence,
    compute_next_occurrence,
    compute_upcoming_occurrences,
    next_future_occurrence,
    fire_instant,
    local_now,
)
from .alarms import (
    notification_id,
    AlarmPlatform,
    PermissionStatus,
    PermissionState,
    NotificationReconciler,
    ReconcileResult,
    SchedulerAlarmPlatform,
    MemoryAlarmPlatform,
)
from .store import DocumentStore, SupabaseStore, MemoryStore, create_store
from .gateway import DeliveryGateway, FcmGateway, MemoryGateway, create_gateway
from .tokens import collect_invalid_tokens, prune_invalid_tokens, register_token, unregister_token
from .dispatcher import DeliveryDispatcher, SweepReport
from .parser import parse_reminder, ParsedReminder
from .assistant import TextService, ClaudeTextService, FallbackTextService, create_text_service
from .handler import ReminderService, ServiceResult
from .exceptions import ReminderError, StoreError, GatewayError, TextServiceError

__all__ = [
    "Reminder",
    "RecurrenceRule",
    "Frequency",
    "Priority",
    "NotificationPayload",
    "TokenResult",
    "BatchResult",
    "normalize_recurrence",
    "compute_next_occurrence",
    "compute_upcoming_occurrences",
    "next_future_occurrence",
    "fire_instant",
    "local_now",
    "notification_id",
    "AlarmPlatform",
    "PermissionStatus",
    "PermissionState",
    "NotificationReconciler",
    "ReconcileResult",
    "SchedulerAlarmPlatform",
    "MemoryAlarmPlatform",
    "DocumentStore",
    "SupabaseStore",
    "MemoryStore",
    "create_store",
    "DeliveryGateway",
    "FcmGateway",
    "MemoryGateway",
    "create_gateway",
    "collect_invalid_tokens",
    "prune_invalid_tokens",
    "register_token",
    "unregister_token",
    "DeliveryDispatcher",
    "SweepReport",
    "parse_reminder",
    "ParsedReminder",
    "TextService",
    "ClaudeTextService",
    "FallbackTextService",
    "create_text_service",
    "ReminderService",
    "ServiceResult",
    "ReminderError",
    "StoreError",
    "GatewayError",
    "TextServiceError",
]
