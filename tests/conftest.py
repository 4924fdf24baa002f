"""
Shared fixtures for follow-up engine tests
"""

import os
import time
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from followup_engine.config import Settings
from followup_engine.database.init_db import DatabaseManager
from followup_engine.domain.models import FollowupSettings, LeadContext
from followup_engine.utils.runtime_settings import RuntimeSettingsManager

from factories import user, assistant


def _set_host_zone(name):
    if name is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = name
    time.tzset()


@pytest.fixture(autouse=True)
def host_zone():
    """
    Pin the host clock to UTC; quiet hours fall back to the host zone

    Yields a setter so a test can move the host to another zone.
    """
    previous = os.environ.get("TZ")
    _set_host_zone("UTC")
    yield _set_host_zone
    _set_host_zone(previous)


@pytest.fixture
def now():
    """Fixed evaluation instant: 14:00 UTC, outside quiet hours"""
    return datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_lead(now):
    """Factory for lead snapshots with neutral defaults"""
    def _make_lead(**overrides):
        data = {
            "id": "lead-1",
            "sender_id": "psid-1",
            "name": None,
            "pipeline_stage": None,
            "message_count": 0,
            "last_message_at": None,
            "last_ai_followup_at": None,
            "escalation_arc_position": 1,
            "consecutive_followups_no_response": 0,
        }
        data.update(overrides)
        return LeadContext(**data)
    return _make_lead


@pytest.fixture
def engaged_history():
    """Ten-message conversation, five user messages, three user questions, no objections"""
    return [
        user("Hi, I saw your ad about the kitchen remodel package"),
        assistant("Thanks for reaching out! Happy to help with the remodel."),
        user("What does the premium option include for cabinets?"),
        assistant("Premium includes solid wood cabinets and soft-close hinges."),
        user("Nice, how long does installation usually take for you?"),
        assistant("Most installs take about two weeks."),
        user("We would like it done before the holidays this year"),
        assistant("That timeline works well for us."),
        user("Can you send me the pricing details for premium?"),
        assistant("Sure, I'll put the pricing together for you."),
    ]


@pytest.fixture
def hot_lead(make_lead, now):
    """Qualified lead, ten messages, last inbound two hours ago"""
    return make_lead(
        name="Jordan",
        pipeline_stage="Qualified",
        message_count=10,
        last_message_at=now - timedelta(hours=2),
    )


@pytest.fixture
def default_settings():
    return FollowupSettings(aggressiveness=5)


@pytest.fixture
def engine_settings(tmp_path):
    return Settings(
        environment="testing",
        database_url="sqlite+aiosqlite:///:memory:",
        runtime_settings_path=str(tmp_path / "runtime_settings.json"),
        persistence_max_retries=2,
        persistence_retry_delay=0,
    )


@pytest.fixture
def runtime_settings(tmp_path):
    return RuntimeSettingsManager(
        storage_path=str(tmp_path / "runtime_settings.json"),
        default_aggressiveness=5,
    )


@pytest_asyncio.fixture
async def db_manager():
    """In-memory lead store"""
    manager = DatabaseManager(database_url="sqlite+aiosqlite:///:memory:", echo=False)
    await manager.init_database()
    yield manager
    await manager.close()
