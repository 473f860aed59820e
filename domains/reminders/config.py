"""Reminders domain configuration - sweep cadence, retry policy, alarm ids."""

import os

# Delivery sweep cadence. The due window of each sweep equals the cadence.
DISPATCH_INTERVAL_SECONDS = int(os.environ.get("NUDGE_DISPATCH_INTERVAL_SECONDS", 60))

# Failed delivery attempts before a due reminder stops being retried.
# 0 disables the cap (retry on every sweep until a delivery succeeds).
MAX_DELIVERY_ATTEMPTS = int(os.environ.get("NUDGE_MAX_DELIVERY_ATTEMPTS", 30))

# How far back a sweep looks for reminders whose own window was missed
# (sweep skipped, store unreachable). Older unsent one-shots are left alone;
# older recurring reminders move on to their next occurrence.
MISSED_GRACE_MINUTES = int(os.environ.get("NUDGE_MISSED_GRACE_MINUTES", 60))

# Supabase rows fetched per request when listing reminder owners
SUPABASE_PAGE_SIZE = int(os.environ.get("NUDGE_SUPABASE_PAGE_SIZE", 1000))

# Fire time for reminders that carry a date but no time
DEFAULT_TIME = os.environ.get("NUDGE_DEFAULT_TIME", "09:00")

# Local alarm ids must be positive, non-zero, and fit the platform's int range
NOTIFICATION_ID_SPACE = 2_000_000_000
FALLBACK_NOTIFICATION_ID = 1

# Upcoming-occurrence preview defaults
UPCOMING_HORIZON_DAYS = 7
UPCOMING_MAX_COUNT = 4

# FCM gateway
FCM_BATCH_SIZE = 500
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
HTTP_TIMEOUT = 10

# Gateway error codes that mean the token will never work again
PERMANENT_TOKEN_ERRORS = frozenset({
    # FCM HTTP v1
    "UNREGISTERED",
    "INVALID_ARGUMENT",
    "SENDER_ID_MISMATCH",
    # Legacy / admin SDK spellings
    "messaging/registration-token-not-registered",
    "messaging/invalid-registration-token",
    "messaging/mismatched-credential",
})

# Notification copy
NOTIFICATION_TITLE = "Gentle nudge"
ALARM_CHANNEL_ID = "nudge_reminders"

# Text service (Claude) and its local fallbacks
PARSE_MAX_TOKENS = 500
MESSAGE_MAX_TOKENS = 200
MAX_MESSAGE_CHARS = 160
FALLBACK_MESSAGE = "Gentle reminder: {task} is coming up! You've got this!"

# Fire times used by the fallback parser for "morning", "tonight", etc.
PART_OF_DAY_TIMES = {
    "morning": "09:00",
    "afternoon": "14:00",
    "evening": "18:00",
    "tonight": "20:00",
}
