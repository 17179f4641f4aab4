"""UserNotification aggregate — one notification as seen by one user.

A notification is inserted once and then mutated by delivery callbacks from
every channel it was sent through. Record-level "first" markers are set at most
once (first write wins); channel-level timestamps keep the earliest value ever
reported (min wins), so late or repeated callbacks are harmless.

Lifecycle:
    inserted → delivered → seen → confirmed (Explicit confirm mode only)
    any state → soft deleted (flag) | hard deleted (retention)
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, String, Text, ValueObject

from user_notifications.domain import user_notifications


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ConfirmMode(Enum):
    NONE = "None"
    EXPLICIT = "Explicit"
    SEEN = "Seen"


class ProcessStatus(Enum):
    PENDING = "Pending"
    SENT = "Sent"
    DELIVERED = "Delivered"
    SEEN = "Seen"
    HANDLED = "Handled"
    FAILED = "Failed"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@user_notifications.value_object(part_of="UserNotification")
class HandledInfo:
    """When an event happened and which channel reported it.

    The channel is optional: events raised by the API (e.g. the user opening
    the inbox) are not tied to a delivery channel.
    """

    timestamp = DateTime(required=True)
    channel = String(max_length=100)


@user_notifications.value_object(part_of="UserNotification")
class NotificationFormatting:
    """Rendered content of the notification and how it must be confirmed."""

    subject = String(required=True, max_length=1000)
    body = Text()
    link_url = String(max_length=2000)
    confirm_text = String(max_length=200)
    confirm_mode = String(choices=ConfirmMode, default=ConfirmMode.NONE.value)


@user_notifications.value_object(part_of="UserNotification")
class ChannelSendInfo:
    """Last reported send status for one configuration of a channel."""

    detail = Text()
    status = String(choices=ProcessStatus, default=ProcessStatus.PENDING.value)
    last_update = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@user_notifications.entity(part_of="UserNotification")
class UserNotificationChannel:
    """A channel the notification was sent through, with its earliest events."""

    name = String(required=True, max_length=100)
    first_delivered = DateTime()
    first_seen = DateTime()


@user_notifications.entity(part_of="UserNotification")
class ChannelSendStatus:
    """Send status of a channel for one configuration (e.g. one device token)."""

    channel = String(required=True, max_length=100)
    configuration = String(required=True, max_length=1000)
    detail = Text()
    status = String(choices=ProcessStatus, default=ProcessStatus.PENDING.value)
    last_update = DateTime()

    @property
    def info(self) -> ChannelSendInfo:
        return ChannelSendInfo(detail=self.detail, status=self.status, last_update=self.last_update)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@user_notifications.aggregate
class UserNotification:
    """A notification addressed to one user of one app.

    ``updated`` is the latest timestamp ever applied to the notification and
    drives incremental queries (``after``). It never moves backwards.
    """

    app_id = String(required=True, max_length=255)
    user_id = String(required=True, max_length=255)
    created = DateTime(required=True)
    updated = DateTime(required=True)
    is_deleted = Boolean(default=False)
    formatting = ValueObject(NotificationFormatting, required=True)
    first_delivered = ValueObject(HandledInfo)
    first_seen = ValueObject(HandledInfo)
    first_confirmed = ValueObject(HandledInfo)
    channels = HasMany(UserNotificationChannel)
    send_statuses = HasMany(ChannelSendStatus)

    @invariant.post
    def only_explicit_notifications_can_be_confirmed(self):
        if self.first_confirmed is not None and not self.is_confirmable:
            raise ValidationError({"first_confirmed": ["Only notifications with explicit confirm mode can be confirmed"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        app_id,
        user_id,
        subject,
        channels=(),
        confirm_mode=ConfirmMode.NONE.value,
        body=None,
        link_url=None,
        confirm_text=None,
        notification_id=None,
        created=None,
    ):
        """Create a new, untracked notification for the given channels."""
        now = created or datetime.now(UTC)

        identity = {}
        if notification_id is not None:
            identity["id"] = str(notification_id)

        return cls(
            app_id=app_id,
            user_id=user_id,
            created=now,
            updated=now,
            formatting=NotificationFormatting(
                subject=subject,
                body=body,
                link_url=link_url,
                confirm_text=confirm_text,
                confirm_mode=confirm_mode,
            ),
            channels=[UserNotificationChannel(name=name) for name in channels],
            **identity,
        )

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    @property
    def is_confirmable(self) -> bool:
        return self.formatting is not None and self.formatting.confirm_mode == ConfirmMode.EXPLICIT.value

    @property
    def channel_names(self) -> list[str]:
        return [channel.name for channel in self.channels]

    def channel(self, name):
        """Return the channel state for ``name``, or None when not sent through it."""
        return next((c for c in self.channels if c.name == name), None)

    def channel_statuses(self, channel) -> dict[str, ChannelSendInfo]:
        """Send statuses of a channel keyed by raw configuration key."""
        return {s.configuration: s.info for s in self.send_statuses if s.channel == channel}

    def send_status(self, channel, configuration):
        return self.channel_statuses(channel).get(configuration)
