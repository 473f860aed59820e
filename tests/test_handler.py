"""Tests for the reminder service flows."""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock

from domains.reminders.alarms import PermissionStatus, notification_id
from domains.reminders.assistant import FallbackTextService, fallback_message
from domains.reminders.exceptions import StoreError
from domains.reminders.handler import (
    NO_PERMISSION_WARNING,
    SCHEDULE_FAILED_WARNING,
    ReminderService,
)
from domains.reminders.types import Frequency, Priority, RecurrenceRule


@pytest.fixture
def service(memory_store, reconciler, clock):
    return ReminderService(memory_store, reconciler, FallbackTextService(), user_id="u1", clock=clock)


async def seed(store, reminder):
    await store.create_reminder("u1", reminder)
    return reminder.id


class TestAdd:
    """Test creating reminders."""

    @pytest.mark.asyncio
    async def test_add_persists_and_schedules(self, service, memory_store, alarm_platform, make_reminder):
        result = await service.add(make_reminder("", task="  Call mum ", date="2026-03-05", time="18:00"))

        assert result.ok
        assert result.warnings == []
        reminder = result.reminder
        assert reminder.id
        assert reminder.task == "Call mum"
        assert reminder.notification_message == fallback_message("Call mum")
        assert memory_store.reminders["u1"][reminder.id]["task"] == "Call mum"
        instant, payload = alarm_platform.alarms[notification_id(reminder.id)]
        assert instant == datetime(2026, 3, 5, 18, 0)
        assert payload.data["reminderId"] == reminder.id

    @pytest.mark.asyncio
    async def test_add_without_time_uses_default(self, service, make_reminder):
        result = await service.add(make_reminder("", date="2026-03-05", time=""))

        assert result.reminder.time == "09:00"

    @pytest.mark.asyncio
    async def test_add_resets_delivery_state(self, service, make_reminder):
        result = await service.add(make_reminder(
            "", date="2026-03-05", completed=True, notification_sent=True, notification_attempts=4
        ))

        assert result.reminder.completed is False
        assert result.reminder.notification_sent is False
        assert result.reminder.notification_attempts == 0

    @pytest.mark.asyncio
    async def test_add_rejects_blank_task(self, service, memory_store, make_reminder):
        result = await service.add(make_reminder("", task="   "))

        assert not result.ok
        assert memory_store.reminders == {}

    @pytest.mark.asyncio
    async def test_add_rejects_invalid_date(self, service, make_reminder):
        result = await service.add(make_reminder("", date="2026-02-30"))

        assert not result.ok
        assert "Invalid date/time" in result.message

    @pytest.mark.asyncio
    async def test_past_reminder_saved_without_alarm_or_warning(self, service, alarm_platform, make_reminder):
        result = await service.add(make_reminder("", date="2026-03-01"))

        assert result.ok
        assert result.warnings == []
        assert alarm_platform.alarms == {}

    @pytest.mark.asyncio
    async def test_permission_denied_still_saves(self, service, memory_store, alarm_platform, make_reminder):
        alarm_platform.permission = PermissionStatus.DENIED

        result = await service.add(make_reminder("", date="2026-03-05"))

        assert result.ok
        assert result.warnings == [NO_PERMISSION_WARNING]
        assert result.reminder.id in memory_store.reminders["u1"]
        # Routine flows never prompt
        assert alarm_platform.permission_requests == 0

    @pytest.mark.asyncio
    async def test_platform_failure_is_a_warning(self, service, alarm_platform, make_reminder):
        alarm_platform.schedule_at = AsyncMock(side_effect=RuntimeError("platform error"))

        result = await service.add(make_reminder("", date="2026-03-05"))

        assert result.ok
        assert result.warnings == [SCHEDULE_FAILED_WARNING]

    @pytest.mark.asyncio
    async def test_store_failure(self, service, memory_store, alarm_platform, make_reminder):
        memory_store.create_reminder = AsyncMock(side_effect=StoreError("down"))

        result = await service.add(make_reminder("", date="2026-03-05"))

        assert not result.ok
        assert alarm_platform.alarms == {}


class TestAddFromText:
    """Test natural language capture."""

    @pytest.mark.asyncio
    async def test_recurring_sentence(self, service, memory_store):
        result = await service.add_from_text("call mum every sunday at 6pm")

        assert result.ok
        assert result.reminder.recurrence == RecurrenceRule(Frequency.WEEKLY, (0,))
        assert (result.reminder.date, result.reminder.time) == ("2026-03-08", "18:00")
        assert memory_store.reminders["u1"][result.reminder.id]["recurrence"] == {
            "frequency": "weekly", "daysOfWeek": [0]
        }

    @pytest.mark.asyncio
    async def test_default_time_is_passed_through(self, service):
        result = await service.add_from_text("water plants", default_time="17:30")

        assert (result.reminder.date, result.reminder.time) == ("2026-03-04", "17:30")

    @pytest.mark.asyncio
    async def test_no_task(self, service, memory_store):
        result = await service.add_from_text("at 9am tomorrow")

        assert not result.ok
        assert memory_store.reminders == {}

    @pytest.mark.asyncio
    async def test_without_text_service(self, memory_store, reconciler, clock):
        service = ReminderService(memory_store, reconciler, user_id="u1", clock=clock)

        result = await service.add_from_text("dentist at 14:30")

        assert not result.ok


class TestUpdate:
    """Test editing reminders."""

    @pytest.mark.asyncio
    async def test_schedule_change_resets_delivery(self, service, memory_store, alarm_platform, make_reminder):
        await seed(memory_store, make_reminder(date="2026-03-05", notification_attempts=5))

        result = await service.update("r1", time="10:00")

        assert result.ok
        record = memory_store.reminders["u1"]["r1"]
        assert record["time"] == "10:00"
        assert record["notificationAttempts"] == 0
        assert record["notificationLastAttemptAt"] is None
        assert alarm_platform.alarms[notification_id("r1")][0] == datetime(2026, 3, 5, 10, 0)

    @pytest.mark.asyncio
    async def test_task_change_keeps_delivery_state(self, service, memory_store, make_reminder):
        await seed(memory_store, make_reminder(date="2026-03-05", notification_attempts=5))

        await service.update("r1", task="Take vitamins")

        record = memory_store.reminders["u1"]["r1"]
        assert record["task"] == "Take vitamins"
        assert record["notificationAttempts"] == 5

    @pytest.mark.asyncio
    async def test_priority_string_is_coerced(self, service, memory_store, make_reminder):
        await seed(memory_store, make_reminder(date="2026-03-05"))

        result = await service.update("r1", priority="high")

        assert result.reminder.priority == Priority.HIGH
        assert memory_store.reminders["u1"]["r1"]["priority"] == "high"

    @pytest.mark.asyncio
    async def test_recurrence_dict_is_normalized(self, service, memory_store, make_reminder):
        await seed(memory_store, make_reminder(date="2026-03-05"))

        result = await service.update("r1", recurrence={"frequency": "weekly", "daysOfWeek": [5, 1, 5]})

        assert result.reminder.recurrence == RecurrenceRule(Frequency.WEEKLY, (1, 5))

    @pytest.mark.asyncio
    async def test_unknown_field(self, service, memory_store, make_reminder):
        await seed(memory_store, make_reminder())

        result = await service.update("r1", colour="blue")

        assert not result.ok
        assert "colour" in result.message

    @pytest.mark.asyncio
    async def test_missing_reminder(self, service):
        result = await service.update("nope", task="x")

        assert not result.ok
        assert result.message == "Reminder not found."


class TestDelete:
    """Test deleting reminders."""

    @pytest.mark.asyncio
    async def test_delete_cancels_alarm(self, service, memory_store, alarm_platform, make_reminder):
        added = await service.add(make_reminder("", date="2026-03-05"))

        result = await service.delete(added.reminder.id)

        assert result.ok
        assert result.warnings == []
        assert alarm_platform.alarms == {}
        assert memory_store.reminders["u1"] == {}

    @pytest.mark.asyncio
    async def test_delete_without_permission_warns(self, service, memory_store, alarm_platform, make_reminder):
        await seed(memory_store, make_reminder(date="2026-03-05"))
        alarm_platform.permission = PermissionStatus.DENIED

        result = await service.delete("r1")

        assert result.ok
        assert len(result.warnings) == 1
        assert memory_store.reminders["u1"] == {}


class TestToggleComplete:
    """Test completing and reopening."""

    @pytest.mark.asyncio
    async def test_one_shot_completes_and_clears_alarm(self, service, alarm_platform, make_reminder):
        added = await service.add(make_reminder("", date="2026-03-05"))

        result = await service.toggle_complete(added.reminder.id)

        assert result.reminder.completed is True
        assert alarm_platform.alarms == {}
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_reopen(self, service, memory_store, alarm_platform, make_reminder):
        await seed(memory_store, make_reminder(date="2026-03-05", completed=True))

        result = await service.toggle_complete("r1")

        assert result.reminder.completed is False
        assert memory_store.reminders["u1"]["r1"]["completed"] is False
        assert notification_id("r1") in alarm_platform.alarms

    @pytest.mark.asyncio
    async def test_recurring_moves_to_next_occurrence(self, service, memory_store, alarm_platform, make_reminder):
        await seed(memory_store, make_reminder(
            date="2026-03-08", time="18:00",
            recurrence=RecurrenceRule(Frequency.WEEKLY, (0,)),
            notification_attempts=2,
        ))

        result = await service.toggle_complete("r1")

        record = memory_store.reminders["u1"]["r1"]
        assert (record["date"], record["time"]) == ("2026-03-15", "18:00")
        assert record["completed"] is False
        assert record["notificationAttempts"] == 0
        assert result.message == "Done! Next: 2026-03-15 18:00"
        assert alarm_platform.alarms[notification_id("r1")][0] == datetime(2026, 3, 15, 18, 0)

    @pytest.mark.asyncio
    async def test_overdue_recurring_skips_to_the_future(self, service, memory_store, make_reminder):
        await seed(memory_store, make_reminder(
            date="2026-02-25", time="08:00", recurrence=RecurrenceRule(Frequency.DAILY)
        ))

        await service.toggle_complete("r1")

        assert memory_store.reminders["u1"]["r1"]["date"] == "2026-03-05"


class TestListUpcoming:
    """Test the upcoming list."""

    @pytest.mark.asyncio
    async def test_orders_and_previews(self, service, memory_store, make_reminder):
        await seed(memory_store, make_reminder("late", date="2026-03-10"))
        await seed(memory_store, make_reminder(
            "daily", date="2026-03-05", time="07:00", recurrence=RecurrenceRule(Frequency.DAILY)
        ))
        await seed(memory_store, make_reminder("done", date="2026-03-04", completed=True))

        upcoming = await service.list_upcoming()

        assert [u.reminder.id for u in upcoming] == ["daily", "late"]
        assert upcoming[0].occurrences == [
            datetime(2026, 3, 5, 7, 0),
            datetime(2026, 3, 6, 7, 0),
            datetime(2026, 3, 7, 7, 0),
            datetime(2026, 3, 8, 7, 0),
        ]
        assert upcoming[1].occurrences == [datetime(2026, 3, 10, 9, 0)]


class TestSync:
    """Test alarm reconciliation from the service."""

    @pytest.mark.asyncio
    async def test_sync_schedules_missing_alarms(self, service, memory_store, alarm_platform, make_reminder):
        await seed(memory_store, make_reminder("a", date="2026-03-05"))
        await seed(memory_store, make_reminder("b", date="2026-03-06"))
        await seed(memory_store, make_reminder("old", date="2026-03-01"))

        result = await service.sync()

        assert result.ok
        assert result.message == "Scheduled 2, cancelled 0"
        assert set(alarm_platform.alarms) == {notification_id("a"), notification_id("b")}

    @pytest.mark.asyncio
    async def test_sync_without_permission(self, service, memory_store, alarm_platform, make_reminder):
        await seed(memory_store, make_reminder("a", date="2026-03-05"))
        alarm_platform.permission = PermissionStatus.DENIED

        result = await service.sync()

        assert not result.ok
        assert result.warnings == [NO_PERMISSION_WARNING]
        assert alarm_platform.alarms == {}
