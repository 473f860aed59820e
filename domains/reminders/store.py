"""Reminder and device-token persistence.

SupabaseStore talks to PostgREST tables:
- reminders (user_id, id, task, date, time, completed, priority, recurrence,
  notificationMessage, notificationSent, notificationSentAt,
  notificationLastAttemptAt, notificationAttempts, details, location)
- device_tokens (user_id, token), unique on (user_id, token)

No multi-row transactions are assumed; every write is a single request.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

import httpx

from config import SUPABASE_URL, SUPABASE_KEY
from logger import logger
from utils.log_sanitizer import sanitize_log
from . import config
from .exceptions import StoreError
from .types import Reminder


class DocumentStore(ABC):
    """Per-user reminder records and device token sets."""

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        """Users that own at least one reminder."""

    @abstractmethod
    async def get_reminders(self, user_id: str) -> list[Reminder]:
        pass

    @abstractmethod
    async def get_reminder(self, user_id: str, reminder_id: str) -> Optional[Reminder]:
        pass

    @abstractmethod
    async def create_reminder(self, user_id: str, reminder: Reminder) -> str:
        """Persist a new reminder, returning its id."""

    @abstractmethod
    async def update_reminder(self, user_id: str, reminder_id: str, fields: dict[str, Any]) -> None:
        """Partial update using record (camelCase) field names."""

    @abstractmethod
    async def delete_reminder(self, user_id: str, reminder_id: str) -> None:
        pass

    @abstractmethod
    async def get_tokens(self, user_id: str) -> list[str]:
        pass

    @abstractmethod
    async def add_tokens(self, user_id: str, tokens: Iterable[str]) -> None:
        """Add tokens; already registered tokens are ignored."""

    @abstractmethod
    async def remove_tokens(self, user_id: str, tokens: Iterable[str]) -> None:
        """Remove tokens in one update; unknown tokens are ignored."""


def _headers(key: str, prefer: str = "return=representation") -> dict:
    """Get headers for Supabase API calls."""
    return {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
        "Prefer": prefer,
    }


def _in_list(values: Iterable[str]) -> str:
    """PostgREST in.() filter with quoted values (tokens contain ':' etc)."""
    quoted = ",".join('"' + v.replace('"', '\\"') + '"' for v in values)
    return f"in.({quoted})"


class SupabaseStore(DocumentStore):
    """Supabase REST persistence."""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        self.url = (url or SUPABASE_URL or "").rstrip("/")
        self.key = key or SUPABASE_KEY

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict] = None,
        json: Any = None,
        prefer: str = "return=representation",
    ) -> Any:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method,
                    f"{self.url}/rest/v1/{table}",
                    headers=_headers(self.key, prefer),
                    params=params,
                    json=json,
                    timeout=config.HTTP_TIMEOUT,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Supabase {method} {table} failed: HTTP {e.response.status_code}")
            raise StoreError(f"{method} {table} failed", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"Supabase {method} {table} failed: {sanitize_log(str(e))}")
            raise StoreError(f"{method} {table} failed: {e}") from e

        if not response.content:
            return None
        return response.json()

    async def _select_all(self, table: str, params: dict) -> list[dict]:
        """GET every matching row, a page at a time.

        PostgREST caps a single response at its max-rows setting, so reads
        that may exceed it walk limit/offset pages until a short page.
        `params` must carry an "order" with a unique tiebreak.
        """
        page_size = config.SUPABASE_PAGE_SIZE
        rows: list[dict] = []
        offset = 0
        while True:
            page = await self._request(
                "GET", table, params={**params, "limit": page_size, "offset": offset}
            ) or []
            rows.extend(page)
            if len(page) < page_size:
                return rows
            offset += page_size

    async def list_user_ids(self) -> list[str]:
        rows = await self._select_all("reminders", {"select": "user_id", "order": "user_id,id"})
        return sorted({str(row["user_id"]) for row in rows})

    async def get_reminders(self, user_id: str) -> list[Reminder]:
        rows = await self._select_all(
            "reminders",
            {"user_id": f"eq.{user_id}", "select": "*", "order": "date,time,id"},
        )
        return [Reminder.from_record(row) for row in rows]

    async def get_reminder(self, user_id: str, reminder_id: str) -> Optional[Reminder]:
        rows = await self._request(
            "GET", "reminders",
            params={"user_id": f"eq.{user_id}", "id": f"eq.{reminder_id}", "select": "*"},
        )
        if not rows:
            return None
        return Reminder.from_record(rows[0])

    async def create_reminder(self, user_id: str, reminder: Reminder) -> str:
        reminder_id = reminder.id or uuid.uuid4().hex
        record = reminder.to_record()
        record["id"] = reminder_id
        record["user_id"] = user_id
        await self._request("POST", "reminders", json=record)
        logger.info(f"Saved reminder {reminder_id} for user {user_id}")
        return reminder_id

    async def update_reminder(self, user_id: str, reminder_id: str, fields: dict[str, Any]) -> None:
        await self._request(
            "PATCH", "reminders",
            params={"user_id": f"eq.{user_id}", "id": f"eq.{reminder_id}"},
            json=fields,
            prefer="return=minimal",
        )
        logger.debug(f"Updated reminder {reminder_id}: {sorted(fields)}")

    async def delete_reminder(self, user_id: str, reminder_id: str) -> None:
        await self._request(
            "DELETE", "reminders",
            params={"user_id": f"eq.{user_id}", "id": f"eq.{reminder_id}"},
            prefer="return=minimal",
        )
        logger.info(f"Deleted reminder {reminder_id}")

    async def get_tokens(self, user_id: str) -> list[str]:
        rows = await self._select_all(
            "device_tokens",
            {"user_id": f"eq.{user_id}", "select": "token", "order": "token"},
        )
        tokens = []
        for row in rows:
            token = row.get("token")
            if isinstance(token, str) and token.strip() and token not in tokens:
                tokens.append(token)
        return tokens

    async def add_tokens(self, user_id: str, tokens: Iterable[str]) -> None:
        rows = [{"user_id": user_id, "token": t} for t in dict.fromkeys(tokens) if t]
        if not rows:
            return
        await self._request(
            "POST", "device_tokens",
            params={"on_conflict": "user_id,token"},
            json=rows,
            prefer="resolution=ignore-duplicates,return=minimal",
        )

    async def remove_tokens(self, user_id: str, tokens: Iterable[str]) -> None:
        tokens = [t for t in dict.fromkeys(tokens) if t]
        if not tokens:
            return
        await self._request(
            "DELETE", "device_tokens",
            params={"user_id": f"eq.{user_id}", "token": _in_list(tokens)},
            prefer="return=minimal",
        )


class MemoryStore(DocumentStore):
    """In-process store for local runs and tests.

    Records are kept in the same camelCase shape the Supabase tables use.
    """

    def __init__(self):
        self.reminders: dict[str, dict[str, dict]] = {}
        self.tokens: dict[str, set[str]] = {}
        self.update_calls: list[tuple[str, str, dict]] = []

    async def list_user_ids(self) -> list[str]:
        return sorted(self.reminders)

    async def get_reminders(self, user_id: str) -> list[Reminder]:
        records = self.reminders.get(user_id, {}).values()
        return [Reminder.from_record(copy.deepcopy(r)) for r in records]

    async def get_reminder(self, user_id: str, reminder_id: str) -> Optional[Reminder]:
        record = self.reminders.get(user_id, {}).get(reminder_id)
        return Reminder.from_record(copy.deepcopy(record)) if record else None

    async def create_reminder(self, user_id: str, reminder: Reminder) -> str:
        reminder_id = reminder.id or uuid.uuid4().hex
        record = reminder.to_record()
        record["id"] = reminder_id
        self.reminders.setdefault(user_id, {})[reminder_id] = record
        return reminder_id

    async def update_reminder(self, user_id: str, reminder_id: str, fields: dict[str, Any]) -> None:
        self.update_calls.append((user_id, reminder_id, dict(fields)))
        record = self.reminders.get(user_id, {}).get(reminder_id)
        if record is None:
            raise StoreError(f"Reminder {reminder_id} not found", status_code=404)
        record.update(copy.deepcopy(fields))

    async def delete_reminder(self, user_id: str, reminder_id: str) -> None:
        self.reminders.get(user_id, {}).pop(reminder_id, None)

    async def get_tokens(self, user_id: str) -> list[str]:
        return sorted(self.tokens.get(user_id, set()))

    async def add_tokens(self, user_id: str, tokens: Iterable[str]) -> None:
        self.tokens.setdefault(user_id, set()).update(t for t in tokens if t)

    async def remove_tokens(self, user_id: str, tokens: Iterable[str]) -> None:
        self.tokens.get(user_id, set()).difference_update(tokens)


def create_store() -> DocumentStore:
    """Supabase when configured, otherwise an in-memory store."""
    if SUPABASE_URL and SUPABASE_KEY:
        return SupabaseStore()
    logger.warning("Supabase not configured, reminders kept in memory only")
    return MemoryStore()
