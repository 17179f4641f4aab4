"""Status transitions — idempotent delivered/seen/confirmed updates and status writes.

Every transition is a single UPDATE statement, so the database applies it
atomically per row and concurrent callers never see a half-applied change.
Merges are expressed in SQL instead of read-modify-write:

    first_* markers     set only while NULL          (first write wins)
    updated             max(updated, timestamp)      (never moves backwards)
    channel timestamps  min(current, timestamp)      (earliest report wins)

Reapplying the same event, or applying events out of order, converges to the
same row. Updates that match nothing are not errors.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from protean.exceptions import ValidationError
from sqlalchemy import DateTime, String, case, exists, literal, or_, select, update
from sqlalchemy.orm import Session

from user_notifications.notification.notification import (
    ChannelSendInfo,
    ConfirmMode,
    HandledInfo,
    ProcessStatus,
)
from user_notifications.store.mapping import to_storage_time
from user_notifications.store.paths import ChannelStatusPath, StatusField, encode_configuration
from user_notifications.store.tables import ChannelRow, NotificationRow, SendStatusRow
from user_notifications.utils.db import dialect_insert

_NO_SYNC = {"synchronize_session": False}


def _timestamp(value: datetime):
    return literal(to_storage_time(value), DateTime())


def _max_of(column, timestamp):
    return case((column < timestamp, timestamp), else_=column)


def _min_of(column, timestamp):
    return case((or_(column.is_(None), column > timestamp), timestamp), else_=column)


def _set_first(at_column, channel_column, handle: HandledInfo):
    """Values that fill a first-wins marker only while it is still empty."""
    timestamp = _timestamp(handle.timestamp)
    unset = at_column.is_(None)

    return {
        at_column.key: case((unset, timestamp), else_=at_column),
        channel_column.key: case((unset, literal(handle.channel, String())), else_=channel_column),
        NotificationRow.updated.key: _max_of(NotificationRow.updated, timestamp),
    }


def _lower_channel_timestamp(session: Session, ids: Sequence[str], channel, column, handle: HandledInfo):
    # Only channels the notification was sent through have a state row.
    if not channel or not channel.strip():
        return

    stmt = (
        update(ChannelRow)
        .where(ChannelRow.notification_id.in_(ids), ChannelRow.channel == channel)
        .values({column.key: _min_of(column, _timestamp(handle.timestamp))})
        .execution_options(**_NO_SYNC)
    )
    session.execute(stmt)


def mark_delivered(session: Session, ids: Sequence[str], handle: HandledInfo):
    if not ids:
        return

    stmt = (
        update(NotificationRow)
        .where(NotificationRow.id.in_(ids))
        .values(_set_first(NotificationRow.first_delivered_at, NotificationRow.first_delivered_channel, handle))
        .execution_options(**_NO_SYNC)
    )
    session.execute(stmt)

    _lower_channel_timestamp(session, ids, handle.channel, ChannelRow.first_delivered, handle)


def mark_seen(session: Session, ids: Sequence[str], handle: HandledInfo):
    if not ids:
        return

    stmt = (
        update(NotificationRow)
        .where(NotificationRow.id.in_(ids))
        .values(_set_first(NotificationRow.first_seen_at, NotificationRow.first_seen_channel, handle))
        .execution_options(**_NO_SYNC)
    )
    session.execute(stmt)

    _lower_channel_timestamp(session, ids, handle.channel, ChannelRow.first_seen, handle)


def mark_confirmed(session: Session, notification_id: str, handle: HandledInfo) -> bool:
    """Set ``first_confirmed``; True only for the caller whose update matched."""
    timestamp = _timestamp(handle.timestamp)

    stmt = (
        update(NotificationRow)
        .where(
            NotificationRow.id == notification_id,
            NotificationRow.confirm_mode == ConfirmMode.EXPLICIT.value,
            NotificationRow.first_confirmed_at.is_(None),
        )
        .values(
            first_confirmed_at=timestamp,
            first_confirmed_channel=handle.channel,
            updated=_max_of(NotificationRow.updated, timestamp),
        )
        .execution_options(**_NO_SYNC)
    )
    return session.execute(stmt).rowcount == 1


def status_paths(channel, configuration, info: ChannelSendInfo) -> list[tuple[ChannelStatusPath, object]]:
    """Field-level writes for one reported send status."""
    return [
        (ChannelStatusPath.build(channel, configuration, StatusField.DETAIL), info.detail),
        (ChannelStatusPath.build(channel, configuration, StatusField.STATUS), info.status),
        (
            ChannelStatusPath.build(channel, configuration, StatusField.LAST_UPDATE),
            to_storage_time(info.last_update),
        ),
    ]


def write_statuses(session: Session, notification_id: str, writes: Iterable[tuple[ChannelStatusPath, object]]) -> bool:
    """Apply combined field writes to one notification; False when it does not exist."""
    found = session.scalar(select(NotificationRow.id).where(NotificationRow.id == notification_id))
    if found is None:
        return False

    rows: dict[tuple[str, str], dict] = {}
    for path, value in writes:
        rows.setdefault(path.row_key, {})[path.column] = value

    for (channel, configuration), values in rows.items():
        channel_stmt = (
            dialect_insert(session, ChannelRow.__table__)
            .values(notification_id=notification_id, channel=channel)
            .on_conflict_do_nothing(index_elements=["notification_id", "channel"])
        )
        session.execute(channel_stmt)

        insert_values = {"status": ProcessStatus.PENDING.value, **values}
        status_stmt = dialect_insert(session, SendStatusRow.__table__).values(
            notification_id=notification_id,
            channel=channel,
            configuration=configuration,
            **insert_values,
        )
        status_stmt = status_stmt.on_conflict_do_update(
            index_elements=["notification_id", "channel", "configuration"],
            set_=values,
        )
        session.execute(status_stmt)

    return True


def is_confirmed_or_handled(session: Session, notification_id: str, channel, configuration) -> bool:
    if configuration is None:
        raise ValidationError({"configuration": ["Configuration key is required"]})

    handled = exists().where(
        SendStatusRow.notification_id == NotificationRow.id,
        SendStatusRow.channel == channel,
        SendStatusRow.configuration == encode_configuration(configuration),
        SendStatusRow.status == ProcessStatus.HANDLED.value,
    )

    stmt = (
        select(NotificationRow.id)
        .where(
            NotificationRow.id == notification_id,
            or_(NotificationRow.first_confirmed_at.is_not(None), handled),
        )
        .limit(1)
    )
    return session.scalar(stmt) is not None
