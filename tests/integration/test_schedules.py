"""Integration tests for scheduled job registration and execution."""

import pytest
from unittest.mock import AsyncMock, Mock

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from domains.reminders.alarms import NotificationReconciler, SchedulerAlarmPlatform, notification_id
from domains.reminders.dispatcher import DeliveryDispatcher
from domains.reminders.handler import ReminderService, ServiceResult
from jobs import register_alarm_sync, register_delivery_sweep
from jobs.alarm_sync import alarm_sync
from jobs.delivery_sweep import delivery_sweep


async def on_alarm(alarm_id, payload):
    pass


class TestJobRegistration:
    """Test scheduled job registration."""

    def test_delivery_sweep_registration(self, memory_store, memory_gateway):
        scheduler = AsyncIOScheduler()
        dispatcher = DeliveryDispatcher(memory_store, memory_gateway, interval_seconds=60)

        register_delivery_sweep(scheduler, dispatcher)

        job = scheduler.get_job("reminder_delivery_sweep")
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval.total_seconds() == 60
        assert job.args == (dispatcher,)

    def test_alarm_sync_registration(self, memory_store, reconciler):
        scheduler = AsyncIOScheduler()
        service = ReminderService(memory_store, reconciler, user_id="u1")

        register_alarm_sync(scheduler, service, seconds=300)

        job = scheduler.get_job("reminder_alarm_sync")
        assert job is not None
        assert job.trigger.interval.total_seconds() == 300


class TestJobExecution:
    """Test the job bodies never raise into the scheduler."""

    @pytest.mark.asyncio
    async def test_delivery_sweep_swallows_errors(self):
        dispatcher = Mock()
        dispatcher.run_sweep = AsyncMock(side_effect=RuntimeError("boom"))

        await delivery_sweep(dispatcher)

        dispatcher.run_sweep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_alarm_sync_runs_service_sync(self):
        service = Mock()
        service.sync = AsyncMock(return_value=ServiceResult(ok=False, warnings=["Notifications are turned off."]))

        await alarm_sync(service)

        service.sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_alarm_sync_swallows_errors(self):
        service = Mock()
        service.sync = AsyncMock(side_effect=RuntimeError("boom"))

        await alarm_sync(service)


class TestSchedulerAlarms:
    """Test reminder alarms as APScheduler date jobs."""

    @pytest.mark.asyncio
    async def test_service_flows_drive_scheduler_jobs(self, memory_store, clock, make_reminder):
        scheduler = AsyncIOScheduler()
        platform = SchedulerAlarmPlatform(scheduler, on_alarm)
        service = ReminderService(memory_store, NotificationReconciler(platform, clock=clock), user_id="u1", clock=clock)

        added = await service.add(make_reminder("", date="2026-03-05", time="18:00"))
        job_id = f"alarm:{notification_id(added.reminder.id)}"

        assert added.warnings == []
        assert scheduler.get_job(job_id) is not None

        await service.update(added.reminder.id, time="19:30")
        assert len(scheduler.get_jobs()) == 1

        await service.toggle_complete(added.reminder.id)
        assert scheduler.get_job(job_id) is None
