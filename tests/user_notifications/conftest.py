import pytest
from protean.integrations.pytest import DomainFixture
from user_notifications.config import UserNotificationsOptions
from user_notifications.store.repository import UserNotificationRepository
from user_notifications.store.retention import InlineCleanupScheduler
from user_notifications.utils.db import (
    DatabaseConfig,
    create_session_factory,
    create_sqlalchemy_engine,
    drop_db,
    setup_db,
)


@pytest.fixture(scope="session")
def user_notifications_bed():
    from user_notifications.domain import user_notifications

    bed = DomainFixture(user_notifications)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(user_notifications_bed):
    with user_notifications_bed.domain_context():
        yield


@pytest.fixture()
def engine(tmp_path):
    """A fresh file-backed SQLite database per test."""
    engine = create_sqlalchemy_engine(DatabaseConfig(url=f"sqlite:///{tmp_path / 'user_notifications.db'}"))
    setup_db(engine)
    yield engine
    drop_db(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def options():
    return UserNotificationsOptions(max_items_per_user=0)


@pytest.fixture()
def repository(session_factory, options):
    return UserNotificationRepository(session_factory, options=options, scheduler=InlineCleanupScheduler())
