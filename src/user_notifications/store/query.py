"""Query builder — scoped, free-text and incremental inbox queries.

Results are always ordered newest first by ``created``. The exact total is
only counted with a second statement when the page came back full (more rows
may exist) or empty past the first page; a short page already tells us the
total.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import structlog
from protean.exceptions import ValidationError
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from user_notifications.store.mapping import to_storage_time
from user_notifications.store.tables import NotificationRow

logger = structlog.get_logger(__name__)


class UserNotificationQueryScope(Enum):
    ALL = "All"
    DELETED = "Deleted"
    NON_DELETED = "NonDeleted"


@dataclass(frozen=True)
class UserNotificationQuery:
    """What to return from a user's inbox and which page of it."""

    scope: UserNotificationQueryScope = UserNotificationQueryScope.NON_DELETED
    after: datetime | None = None
    query: str | None = None
    skip: int = 0
    take: int | None = None

    def __post_init__(self):
        errors = {}
        if self.skip < 0:
            errors["skip"] = ["Skip cannot be negative"]
        if self.take is not None and self.take <= 0:
            errors["take"] = ["Take must be positive"]
        if errors:
            raise ValidationError(errors)

    def should_query_total(self, returned: int) -> bool:
        if self.take is None:
            return False
        if returned >= self.take:
            return True
        # An empty page past the start says nothing about how many rows exist.
        return returned == 0 and self.skip > 0


@dataclass
class ResultList:
    total: int
    items: list = field(default_factory=list)


def owner_filter(app_id, user_id):
    return and_(NotificationRow.app_id == app_id, NotificationRow.user_id == user_id)


def build_filter(app_id, user_id, query: UserNotificationQuery):
    clauses = [owner_filter(app_id, user_id)]

    if query.after is not None:
        clauses.append(NotificationRow.updated >= to_storage_time(query.after))

    if query.scope == UserNotificationQueryScope.DELETED:
        clauses.append(NotificationRow.is_deleted.is_(True))
    elif query.scope == UserNotificationQueryScope.NON_DELETED:
        clauses.append(NotificationRow.is_deleted.is_(False))

    if query.query and query.query.strip():
        # Wildcards in user input are escaped: literal, case-insensitive substring.
        clauses.append(NotificationRow.subject.icontains(query.query, autoescape=True))

    return and_(*clauses)


def find_page(session: Session, app_id, user_id, query: UserNotificationQuery) -> tuple[list[NotificationRow], int]:
    """Return one page of rows and the total number of matching rows."""
    criteria = build_filter(app_id, user_id, query)

    stmt = (
        select(NotificationRow)
        .where(criteria)
        .order_by(NotificationRow.created.desc(), NotificationRow.id.desc())
        .offset(query.skip)
    )
    if query.take is not None:
        stmt = stmt.limit(query.take)

    rows = list(session.scalars(stmt).all())
    total = query.skip + len(rows)

    if query.should_query_total(len(rows)):
        total = session.scalar(select(func.count()).select_from(NotificationRow).where(criteria))

    logger.debug(
        "Queried user notifications",
        app_id=app_id,
        user_id=user_id,
        scope=query.scope.value,
        num_results=len(rows),
        num_total=total,
    )
    return rows, total
