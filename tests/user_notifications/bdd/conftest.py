"""Shared BDD fixtures and step definitions for notification tracking."""

from datetime import datetime, timedelta

import pytest
from pytest_bdd import given, parsers, then
from user_notifications.notification.notification import ConfirmMode, UserNotification

BASE = datetime(2026, 3, 1, 9, 0, 0)


def at_minute(minute) -> datetime:
    return BASE + timedelta(minutes=minute)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def outcome():
    """Container for values returned by the store."""
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a notification sent through "{channels}" at minute {minute:d}'),
    target_fixture="notification_id",
)
def sent_notification(repository, channels, minute):
    n = UserNotification.create(
        app_id="app-1",
        user_id="user-1",
        subject="Your parcel is on its way",
        channels=[c.strip() for c in channels.split(",")],
        created=at_minute(minute),
    )
    repository.insert(n)
    return n.id


@given(
    parsers.cfparse('a notification requiring explicit confirmation sent through "{channels}"'),
    target_fixture="notification_id",
)
def confirmable_notification(repository, channels):
    n = UserNotification.create(
        app_id="app-1",
        user_id="user-1",
        subject="Approve the new device",
        channels=[c.strip() for c in channels.split(",")],
        confirm_mode=ConfirmMode.EXPLICIT.value,
        confirm_text="Approve",
        created=BASE,
    )
    repository.insert(n)
    return n.id


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the notification was last updated at minute {minute:d}"))
def last_updated_at(repository, notification_id, minute):
    assert repository.find(notification_id).updated == at_minute(minute)
