"""Global configuration for the Nudge reminder service."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Supabase (document store)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Firebase Cloud Messaging (delivery gateway)
FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID")
FCM_ACCESS_TOKEN = os.getenv("FCM_ACCESS_TOKEN")

# Claude API - used for smart input parsing and notification copy
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-3-5-haiku-20241022")

# Deep links inside notifications
APP_BASE_URL = os.getenv("APP_BASE_URL", "https://nudge.example.app")

# Reminder dates and times are local wall-clock values in this zone
REMINDER_TIMEZONE = os.getenv("REMINDER_TIMEZONE", "Europe/London")

# Logging
LOG_DIR = Path(os.getenv("NUDGE_LOG_DIR", Path(os.getenv("LOCALAPPDATA", ".")) / "nudge" / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_LEVEL = os.getenv("NUDGE_LOG_LEVEL", "INFO").upper()

# Local alarms - when set, this process also keeps APScheduler alarms for one
# user's reminders (a desktop stand-in for device notifications)
LOCAL_ALARM_USER_ID = os.getenv("NUDGE_LOCAL_ALARM_USER_ID")
ALARM_SYNC_INTERVAL_SECONDS = int(os.getenv("NUDGE_ALARM_SYNC_INTERVAL_SECONDS", 300))
