"""Pytest configuration and fixtures."""

import os
import tempfile

# Keep test logs out of the user's log directory; must run before config is imported
os.environ.setdefault("NUDGE_LOG_DIR", tempfile.mkdtemp(prefix="nudge-test-logs-"))

import pytest
from datetime import datetime
from unittest.mock import Mock, AsyncMock, patch

from domains.reminders.alarms import MemoryAlarmPlatform, NotificationReconciler
from domains.reminders.gateway import MemoryGateway
from domains.reminders.store import MemoryStore
from domains.reminders.types import Reminder

# Wednesday
NOW = datetime(2026, 3, 4, 9, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock(now):
    """Fixed local clock for components that take one."""
    return lambda: now


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def memory_gateway():
    return MemoryGateway()


@pytest.fixture
def alarm_platform():
    return MemoryAlarmPlatform()


@pytest.fixture
def reconciler(alarm_platform, clock):
    return NotificationReconciler(alarm_platform, clock=clock)


@pytest.fixture
def make_reminder():
    """Build a Reminder with sensible defaults."""
    def _make(reminder_id="r1", task="Take meds", date="2026-03-04", time="09:00", **kwargs):
        return Reminder(id=reminder_id, task=task, date=date, time=time, **kwargs)
    return _make


@pytest.fixture
def mock_anthropic_client():
    """Create a mock Anthropic client."""
    with patch('anthropic.Anthropic') as mock:
        client = Mock()
        mock.return_value = client
        yield client


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client


@pytest.fixture
def text_response():
    """Build an Anthropic messages.create() response with one text block."""
    def _make(text: str) -> Mock:
        response = Mock()
        response.content = [Mock(type="text", text=text)]
        return response
    return _make
