"""Conversion between UserNotification aggregates and table rows."""

from datetime import UTC, datetime

from user_notifications.notification.notification import (
    ChannelSendStatus,
    HandledInfo,
    NotificationFormatting,
    UserNotification,
    UserNotificationChannel,
)
from user_notifications.store.paths import decode_configuration, encode_configuration
from user_notifications.store.tables import ChannelRow, NotificationRow, SendStatusRow


def to_storage_time(value: datetime | None) -> datetime | None:
    """Normalize to naive UTC, the representation used by every timestamp column."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _handled_columns(info: HandledInfo | None) -> tuple[datetime | None, str | None]:
    if info is None:
        return None, None
    return to_storage_time(info.timestamp), info.channel


def _handled_info(timestamp, channel) -> HandledInfo | None:
    if timestamp is None:
        return None
    return HandledInfo(timestamp=timestamp, channel=channel)


def to_row(notification: UserNotification) -> NotificationRow:
    formatting = notification.formatting
    first_delivered_at, first_delivered_channel = _handled_columns(notification.first_delivered)
    first_seen_at, first_seen_channel = _handled_columns(notification.first_seen)
    first_confirmed_at, first_confirmed_channel = _handled_columns(notification.first_confirmed)

    return NotificationRow(
        id=str(notification.id),
        app_id=notification.app_id,
        user_id=notification.user_id,
        created=to_storage_time(notification.created),
        updated=to_storage_time(notification.updated),
        is_deleted=bool(notification.is_deleted),
        subject=formatting.subject,
        body=formatting.body,
        link_url=formatting.link_url,
        confirm_text=formatting.confirm_text,
        confirm_mode=formatting.confirm_mode,
        first_delivered_at=first_delivered_at,
        first_delivered_channel=first_delivered_channel,
        first_seen_at=first_seen_at,
        first_seen_channel=first_seen_channel,
        first_confirmed_at=first_confirmed_at,
        first_confirmed_channel=first_confirmed_channel,
        channels=[
            ChannelRow(
                channel=channel.name,
                first_delivered=to_storage_time(channel.first_delivered),
                first_seen=to_storage_time(channel.first_seen),
            )
            for channel in notification.channels
        ],
        send_statuses=[
            SendStatusRow(
                channel=status.channel,
                configuration=encode_configuration(status.configuration),
                detail=status.detail,
                status=status.status,
                last_update=to_storage_time(status.last_update),
            )
            for status in notification.send_statuses
        ],
    )


def to_aggregate(row: NotificationRow) -> UserNotification:
    return UserNotification(
        id=row.id,
        app_id=row.app_id,
        user_id=row.user_id,
        created=row.created,
        updated=row.updated,
        is_deleted=row.is_deleted,
        formatting=NotificationFormatting(
            subject=row.subject,
            body=row.body,
            link_url=row.link_url,
            confirm_text=row.confirm_text,
            confirm_mode=row.confirm_mode,
        ),
        first_delivered=_handled_info(row.first_delivered_at, row.first_delivered_channel),
        first_seen=_handled_info(row.first_seen_at, row.first_seen_channel),
        first_confirmed=_handled_info(row.first_confirmed_at, row.first_confirmed_channel),
        channels=[
            UserNotificationChannel(
                name=channel.channel,
                first_delivered=channel.first_delivered,
                first_seen=channel.first_seen,
            )
            for channel in row.channels
        ],
        send_statuses=[
            ChannelSendStatus(
                channel=status.channel,
                configuration=decode_configuration(status.configuration),
                detail=status.detail,
                status=status.status,
                last_update=status.last_update,
            )
            for status in row.send_statuses
        ],
    )
