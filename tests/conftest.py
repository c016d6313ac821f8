from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from alert_notifier.core.models import Alert, NotificationContext
from alert_notifier.templates.factory import new_factory

NOW = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def make_alert(labels=None, annotations=None, resolved=False, generator_url="", starts_at=None):
    return Alert(
        labels=dict(labels or {}),
        annotations=dict(annotations or {}),
        starts_at=starts_at or NOW - timedelta(minutes=10),
        ends_at=NOW - timedelta(minutes=1) if resolved else None,
        generator_url=generator_url,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def logger():
    return MagicMock()


@pytest.fixture
def ctx():
    return NotificationContext(receiver="my-receiver", group_key="{}:{alertname=\"alert1\"}", now=NOW)


@pytest.fixture
def factory(logger):
    return new_factory(None, logger, "http://localhost", tenant_id="test")
