"""Retention — time-based expiry and the per-user count cap.

Both policies hard-delete rows and are independent of each other:

* Expiry: rows whose ``created`` is older than the retention time are removed
  by ``purge_expired``. It is triggered periodically by an external scheduler
  (cron, K8s CronJob); the ``created`` index keeps the sweep cheap.
* Count cap: after each insert, everything beyond the newest
  ``max_items_per_user`` rows of that user is removed. The cleanup runs as its
  own task with its own transactions; it never fails or rolls back the insert
  that scheduled it.

Deletes are issued in batches so no single statement grows unbounded.
"""

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from user_notifications.config import UserNotificationsOptions
from user_notifications.store.mapping import to_storage_time
from user_notifications.store.query import owner_filter
from user_notifications.store.tables import ChannelRow, NotificationRow, SendStatusRow
from user_notifications.utils.db import SessionFactory, session_scope

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExpiryPolicy:
    """Rows created before ``now - retention_time`` are expired."""

    retention_time: timedelta

    def cutoff(self, now: datetime) -> datetime:
        return to_storage_time(now) - self.retention_time


class CleanupScheduler(Protocol):
    def schedule(self, task: Callable[[], None]) -> None: ...


class InlineCleanupScheduler:
    """Runs cleanup right away on the calling thread (sync mode, tests)."""

    def schedule(self, task: Callable[[], None]) -> None:
        task()


class ThreadPoolCleanupScheduler:
    """Fire-and-forget cleanup on a small worker pool."""

    def __init__(self, max_workers: int = 1):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notification-cleanup")

    def schedule(self, task: Callable[[], None]) -> None:
        self._executor.submit(task)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def delete_notifications(session: Session, ids: Sequence[str]):
    """Hard-delete notifications together with their channel and status rows."""
    session.execute(delete(SendStatusRow).where(SendStatusRow.notification_id.in_(ids)))
    session.execute(delete(ChannelRow).where(ChannelRow.notification_id.in_(ids)))
    session.execute(delete(NotificationRow).where(NotificationRow.id.in_(ids)))


def _log_cleanup_failure(exc: Exception, app_id, user_id) -> None:
    logger.error(
        "Notification cleanup failed",
        action="CleanupNotifications",
        status="Failed",
        app_id=app_id,
        user_id=user_id,
        error=str(exc),
        exc_info=exc,
    )


class RetentionEngine:
    def __init__(
        self,
        session_factory: SessionFactory,
        options: UserNotificationsOptions,
        scheduler: CleanupScheduler | None = None,
    ):
        self._session_factory = session_factory
        self._options = options
        self._scheduler = scheduler or InlineCleanupScheduler()
        self.expiry = ExpiryPolicy(retention_time=options.retention_time)

    def schedule_cleanup(self, app_id, user_id) -> None:
        """Queue the count-cap cleanup for one user, if the cap is enabled."""
        if not self._options.caps_items_per_user:
            return

        try:
            self._scheduler.schedule(lambda: self._cleanup_isolated(app_id, user_id))
        except Exception as exc:
            _log_cleanup_failure(exc, app_id, user_id)

    def _cleanup_isolated(self, app_id, user_id) -> None:
        try:
            self.cleanup_user(app_id, user_id)
        except Exception as exc:
            _log_cleanup_failure(exc, app_id, user_id)

    def cleanup_user(self, app_id, user_id) -> int:
        """Delete everything beyond the newest ``max_items_per_user`` notifications of a user."""
        max_items = self._options.max_items_per_user
        batch_size = self._options.cleanup_batch_size
        deleted = 0

        while True:
            with session_scope(self._session_factory) as session:
                ids = session.scalars(
                    select(NotificationRow.id)
                    .where(owner_filter(app_id, user_id))
                    .order_by(NotificationRow.created.desc(), NotificationRow.id.desc())
                    .offset(max_items)
                    .limit(batch_size)
                ).all()

                if not ids:
                    break

                delete_notifications(session, ids)

            deleted += len(ids)

        if deleted:
            logger.info(
                "Cleaned up notifications beyond per-user cap",
                app_id=app_id,
                user_id=user_id,
                max_items=max_items,
                deleted=deleted,
            )
        return deleted

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete notifications older than the retention time; returns the number removed."""
        cutoff = self.expiry.cutoff(now or datetime.now(UTC))
        batch_size = self._options.cleanup_batch_size
        deleted = 0

        while True:
            with session_scope(self._session_factory) as session:
                ids = session.scalars(
                    select(NotificationRow.id).where(NotificationRow.created < cutoff).limit(batch_size)
                ).all()

                if not ids:
                    break

                delete_notifications(session, ids)

            deleted += len(ids)

        logger.info("Expired notifications purged", cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted
