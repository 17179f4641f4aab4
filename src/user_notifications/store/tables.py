"""Persisted layout of user notifications.

One row per notification plus child rows for the channels it was sent
through and for the send status of each channel configuration:

    user_notifications                  (id)
    └── user_notification_channels      (notification_id, channel)
    └── user_notification_send_statuses (notification_id, channel, configuration)

All timestamps are naive UTC.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class TrackingBase(DeclarativeBase):
    """Declarative base for notification tracking tables."""


class NotificationRow(TrackingBase):
    __tablename__ = "user_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    app_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Formatting
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str | None] = mapped_column(Text)
    link_url: Mapped[str | None] = mapped_column(String(2000))
    confirm_text: Mapped[str | None] = mapped_column(String(200))
    confirm_mode: Mapped[str] = mapped_column(String(32), nullable=False)

    # First-wins markers
    first_delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    first_delivered_channel: Mapped[str | None] = mapped_column(String(100))
    first_seen_at: Mapped[datetime | None] = mapped_column(DateTime)
    first_seen_channel: Mapped[str | None] = mapped_column(String(100))
    first_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime)
    first_confirmed_channel: Mapped[str | None] = mapped_column(String(100))

    channels: Mapped[list["ChannelRow"]] = relationship(
        cascade="all, delete-orphan", lazy="selectin", order_by="ChannelRow.channel"
    )
    send_statuses: Mapped[list["SendStatusRow"]] = relationship(
        cascade="all, delete-orphan", lazy="selectin", order_by="SendStatusRow.channel"
    )


class ChannelRow(TrackingBase):
    __tablename__ = "user_notification_channels"

    notification_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_notifications.id", ondelete="CASCADE"), primary_key=True
    )
    channel: Mapped[str] = mapped_column(String(100), primary_key=True)
    first_delivered: Mapped[datetime | None] = mapped_column(DateTime)
    first_seen: Mapped[datetime | None] = mapped_column(DateTime)


class SendStatusRow(TrackingBase):
    __tablename__ = "user_notification_send_statuses"

    notification_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_notifications.id", ondelete="CASCADE"), primary_key=True
    )
    channel: Mapped[str] = mapped_column(String(100), primary_key=True)
    # Encoded configuration key, see ``store.paths``.
    configuration: Mapped[str] = mapped_column(String(1400), primary_key=True)
    detail: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    last_update: Mapped[datetime | None] = mapped_column(DateTime)


_notifications = NotificationRow.__table__

# Inbox queries: scope, incremental sync and newest-first paging.
Index(
    "ix_user_notifications_query",
    _notifications.c.app_id,
    _notifications.c.user_id,
    _notifications.c.updated,
    _notifications.c.is_deleted,
    _notifications.c.created.desc(),
)

# Per-user retention cap.
Index(
    "ix_user_notifications_owner_created",
    _notifications.c.app_id,
    _notifications.c.user_id,
    _notifications.c.created,
)

# Expiry sweep.
Index("ix_user_notifications_created", _notifications.c.created.desc())
