"""UserNotificationRepository — the store contract seen by the delivery and API layers.

Composes the query builder, the status transitions and the retention engine.
Each public method runs in its own transaction; tracking methods are safe to
call concurrently and redundantly for the same notification.
"""

from collections.abc import Iterable

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from user_notifications.config import UserNotificationsOptions
from user_notifications.notification.notification import ChannelSendInfo, HandledInfo, UserNotification
from user_notifications.store import transitions
from user_notifications.store.errors import BatchWriteError, ConflictError, InsertResult
from user_notifications.store.mapping import to_aggregate, to_row
from user_notifications.store.query import ResultList, UserNotificationQuery, find_page
from user_notifications.store.retention import CleanupScheduler, RetentionEngine
from user_notifications.store.tables import NotificationRow
from user_notifications.utils.db import (
    DatabaseConfig,
    SessionFactory,
    create_session_factory,
    create_sqlalchemy_engine,
    session_scope,
)

logger = structlog.get_logger(__name__)

StatusUpdate = tuple[str, str, str, ChannelSendInfo]


class UserNotificationRepository:
    def __init__(
        self,
        session_factory: SessionFactory,
        options: UserNotificationsOptions | None = None,
        scheduler: CleanupScheduler | None = None,
    ):
        self._session_factory = session_factory
        self._options = options or UserNotificationsOptions()
        self.retention = RetentionEngine(session_factory, self._options, scheduler)

    @classmethod
    def from_options(cls, options: UserNotificationsOptions, scheduler: CleanupScheduler | None = None):
        """Build a repository with its own engine for ``options.database_uri``."""
        engine = create_sqlalchemy_engine(DatabaseConfig(url=options.database_uri))
        return cls(create_session_factory(engine), options=options, scheduler=scheduler)

    # -------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------
    def insert(self, notification: UserNotification) -> InsertResult:
        """Store a new notification, then schedule the per-user cleanup.

        A duplicate id is returned as a conflict; the existing row is untouched.
        """
        notification_id = str(notification.id)

        try:
            with session_scope(self._session_factory) as session:
                session.add(to_row(notification))
        except IntegrityError:
            if not self._exists(notification_id):
                raise

            logger.warning("Duplicate notification id rejected", notification_id=notification_id)
            return InsertResult(notification_id=notification_id, conflict=ConflictError(notification_id))

        logger.info(
            "Notification inserted",
            notification_id=notification_id,
            app_id=notification.app_id,
            user_id=notification.user_id,
        )

        self.retention.schedule_cleanup(notification.app_id, notification.user_id)
        return InsertResult(notification_id=notification_id)

    def find(self, notification_id) -> UserNotification | None:
        with session_scope(self._session_factory) as session:
            row = session.get(NotificationRow, str(notification_id))
            return to_aggregate(row) if row is not None else None

    def delete(self, notification_id) -> None:
        """Soft delete: the notification stays queryable with the Deleted scope."""
        with session_scope(self._session_factory) as session:
            session.execute(
                update(NotificationRow)
                .where(NotificationRow.id == str(notification_id))
                .values(is_deleted=True)
                .execution_options(synchronize_session=False)
            )

    def query(self, app_id, user_id, query: UserNotificationQuery | None = None) -> ResultList:
        query = query or UserNotificationQuery()

        with session_scope(self._session_factory) as session:
            rows, total = find_page(session, app_id, user_id, query)
            return ResultList(total=total, items=[to_aggregate(row) for row in rows])

    def _exists(self, notification_id) -> bool:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(NotificationRow.id).where(NotificationRow.id == notification_id)) is not None

    # -------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------
    def is_confirmed_or_handled(self, notification_id, channel, configuration) -> bool:
        with session_scope(self._session_factory) as session:
            return transitions.is_confirmed_or_handled(session, str(notification_id), channel, configuration)

    def track_delivered(self, ids: Iterable, handle: HandledInfo) -> None:
        ids = [str(i) for i in ids]

        with session_scope(self._session_factory) as session:
            transitions.mark_delivered(session, ids, handle)

    def track_seen(self, ids: Iterable, handle: HandledInfo) -> None:
        """Mark as seen; seeing a notification implies it was delivered."""
        ids = [str(i) for i in ids]

        with session_scope(self._session_factory) as session:
            transitions.mark_delivered(session, ids, handle)
            transitions.mark_seen(session, ids, handle)

    def track_confirmed(self, notification_id, handle: HandledInfo) -> UserNotification | None:
        """Confirm a notification; returns it only to the caller that confirmed it.

        Seen and confirmed are two separate atomic steps. If the second one does
        not happen the notification stays seen but unconfirmed, and calling
        again is safe.
        """
        notification_id = str(notification_id)
        self.track_seen([notification_id], handle)

        with session_scope(self._session_factory) as session:
            if not transitions.mark_confirmed(session, notification_id, handle):
                return None

            logger.info("Notification confirmed", notification_id=notification_id, channel=handle.channel)
            return to_aggregate(session.get(NotificationRow, notification_id))

    def batch_write(self, updates: Iterable[StatusUpdate]) -> None:
        """Write reported send statuses, one combined update per notification.

        Notifications are written independently: a failure for one does not
        stop the others, and is reported with ``BatchWriteError`` at the end.
        """
        grouped = {}
        for notification_id, channel, configuration, info in updates:
            writes = transitions.status_paths(channel, configuration, info)
            grouped.setdefault(str(notification_id), []).extend(writes)

        failures = {}
        for notification_id, writes in grouped.items():
            try:
                with session_scope(self._session_factory) as session:
                    transitions.write_statuses(session, notification_id, writes)
            except SQLAlchemyError as exc:
                logger.error("Status write failed", notification_id=notification_id, error=str(exc))
                failures[notification_id] = exc

        if failures:
            raise BatchWriteError(failures)

    # -------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------
    def purge_expired(self, now=None) -> int:
        return self.retention.purge_expired(now)
