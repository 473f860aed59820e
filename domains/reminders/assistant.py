"""AI text service: reminder parsing and notification copy.

ClaudeTextService asks the model for structured reminder fields and short
notification messages. Every failure (API error, timeout, malformed JSON,
missing fields) falls back to the local regex parser and a template message,
so capturing a reminder never depends on the model being reachable.
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional

import anthropic

from config import ANTHROPIC_API_KEY, CLAUDE_MODEL
from logger import logger
from . import config
from .exceptions import TextServiceError
from .parser import ParsedReminder, parse_reminder
from .recurrence import format_date_time, local_now, normalize_recurrence, parse_date_time
from .types import Priority

PARSE_SYSTEM_PROMPT = """You turn a natural language reminder into JSON for a reminder app.

Return ONLY a JSON object with these keys:
- "task": short action-focused title, at most 60 characters
- "date": YYYY-MM-DD. Resolve "tomorrow", "in 3 days", "next Monday" against the current date.
- "time": HH:MM, 24-hour. Resolve "in 2 hours", "this afternoon" against the current time.
  If no time is given or implied, use the default time.
- "priority": "low", "medium" or "high". Urgent language is high, casual is low.
- "recurrence": null, or {"frequency": "daily"}, {"frequency": "weekdays"}, or
  {"frequency": "weekly", "daysOfWeek": [..]} where 0 = Sunday .. 6 = Saturday
- "location": where it happens, only if clearly stated, else null
- "notificationMessage": a warm, encouraging reminder message under 160 characters"""

MESSAGE_SYSTEM_PROMPT = """You write SHORT push notification messages (under 160 characters)
for a gentle reminder app. Be warm, supportive and playful, reference the task
naturally, and never sound robotic. Higher priority can be more urgent but stays kind.
Reply with the message text only."""


def fallback_message(task: str) -> str:
    """Template message used when the model is unavailable."""
    return config.FALLBACK_MESSAGE.format(task=task or "your task")


def _trim_message(message: str) -> str:
    message = message.strip().strip('"').strip()
    if len(message) > config.MAX_MESSAGE_CHARS:
        message = message[:config.MAX_MESSAGE_CHARS - 1].rstrip() + "…"
    return message


def _extract_json(text: str) -> dict:
    """Pull the first JSON object out of a model reply (fenced or bare)."""
    match = re.search(r'\{.*\}', text, re.DOTALL)
    if not match:
        raise ValueError("No JSON object in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data


def _default_schedule(now: datetime, default_time: str) -> ParsedReminder:
    """Taskless base for a model reply: the next occurrence of the default time."""
    hour, minute = (int(p) for p in default_time.split(':'))
    run_at = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if run_at <= now:
        run_at += timedelta(days=1)
    date, time = format_date_time(run_at)
    return ParsedReminder(task="", date=date, time=time)


def _merge_parsed(data: dict, fallback: ParsedReminder) -> ParsedReminder:
    """Model fields win where valid; anything missing or malformed comes from the local parse."""
    task = str(data.get("task") or "").strip()
    if not task:
        raise ValueError("Response has no task")

    date, time = fallback.date, fallback.time
    instant = parse_date_time(str(data.get("date") or ""), str(data.get("time") or "") or fallback.time)
    if instant is not None:
        date, time = format_date_time(instant)

    recurrence = data.get("recurrence")
    message = data.get("notificationMessage")
    location = data.get("location")

    return ParsedReminder(
        task=task[:60],
        date=date,
        time=time,
        priority=Priority.parse(data.get("priority") or fallback.priority.value),
        recurrence=normalize_recurrence(recurrence) if isinstance(recurrence, dict) else fallback.recurrence,
        notification_message=_trim_message(message) if isinstance(message, str) and message.strip() else None,
        location=location.strip() if isinstance(location, str) and location.strip() else None,
    )


class TextService(ABC):
    """Natural language capture and notification copy."""

    @abstractmethod
    async def parse(
        self, text: str, now: Optional[datetime] = None, default_time: Optional[str] = None
    ) -> Optional[ParsedReminder]:
        """Structured reminder from free text, or None if no task could be found."""

    @abstractmethod
    async def generate_message(
        self,
        task: str,
        date: Optional[str] = None,
        time: Optional[str] = None,
        priority: Priority = Priority.MEDIUM,
        location: Optional[str] = None,
    ) -> str:
        """Notification body for a reminder. Never raises."""


class FallbackTextService(TextService):
    """Local-only text service: regex parser and template messages."""

    async def parse(self, text, now=None, default_time=None):
        parsed = parse_reminder(text, now=now, default_time=default_time)
        if parsed and not parsed.notification_message:
            parsed.notification_message = fallback_message(parsed.task)
        return parsed

    async def generate_message(self, task, date=None, time=None, priority=Priority.MEDIUM, location=None):
        return fallback_message(task)


class ClaudeTextService(TextService):
    """Claude-backed text service with local fallbacks."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.client = anthropic.Anthropic(api_key=api_key or ANTHROPIC_API_KEY)
        self.model = model or CLAUDE_MODEL

    async def _complete(self, system: str, prompt: str, max_tokens: int) -> str:
        """Single-turn completion; returns the concatenated text blocks.

        Raises:
            TextServiceError: On any API failure or an empty reply
        """
        try:
            # Sync client, run in a thread to avoid blocking the event loop
            response = await asyncio.to_thread(
                self.client.messages.create,
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise TextServiceError(f"Claude request failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        if not text:
            raise TextServiceError("Claude returned no text")
        return text

    async def parse(self, text, now=None, default_time=None):
        now = now or local_now()
        default_time = default_time or config.DEFAULT_TIME
        if not text or not text.strip():
            return None
        # The model may find a task the local parser cannot
        fallback = parse_reminder(text, now=now, default_time=default_time)
        base = fallback or _default_schedule(now, default_time)

        current_date, current_time = format_date_time(now)
        prompt = (
            f"Current date: {current_date} ({now:%A})\n"
            f"Current time: {current_time}\n"
            f"Default time: {default_time}\n\n"
            f"Reminder: {text}"
        )

        try:
            raw = await self._complete(PARSE_SYSTEM_PROMPT, prompt, config.PARSE_MAX_TOKENS)
            parsed = _merge_parsed(_extract_json(raw), base)
        except (TextServiceError, ValueError, TypeError) as e:
            logger.warning(f"AI parse failed, using local parser: {e}")
            parsed = fallback

        if parsed is None:
            return None
        if not parsed.notification_message:
            parsed.notification_message = await self.generate_message(
                parsed.task, parsed.date, parsed.time, parsed.priority, parsed.location
            )
        return parsed

    async def generate_message(self, task, date=None, time=None, priority=Priority.MEDIUM, location=None):
        lines = [f"Task: {task}", f"Priority: {Priority.parse(priority).value}"]
        if date:
            lines.append(f"Date: {date}")
        if time:
            lines.append(f"Time: {time}")
        if location:
            lines.append(f"Location: {location}")

        try:
            message = await self._complete(MESSAGE_SYSTEM_PROMPT, "\n".join(lines), config.MESSAGE_MAX_TOKENS)
        except TextServiceError as e:
            logger.warning(f"AI message generation failed, using template: {e}")
            return fallback_message(task)
        return _trim_message(message) or fallback_message(task)


def create_text_service() -> TextService:
    """Claude when an API key is configured, otherwise local-only."""
    if ANTHROPIC_API_KEY:
        return ClaudeTextService()
    logger.warning("ANTHROPIC_API_KEY not set, using local reminder parser")
    return FallbackTextService()
