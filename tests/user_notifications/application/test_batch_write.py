"""Application tests for batched send status writes."""

from datetime import datetime, timedelta

import pytest
from protean.exceptions import ValidationError
from sqlalchemy import select
from user_notifications.notification.notification import ChannelSendInfo, ProcessStatus, UserNotification
from user_notifications.store.paths import encode_configuration
from user_notifications.store.tables import SendStatusRow

CREATED = datetime(2026, 3, 1, 9, 0, 0)
ENDPOINT = "https://fcm.googleapis.com/fcm/send/abc.def"


def _insert(repository, channels=("email", "webpush")):
    n = UserNotification.create(
        app_id="app-1",
        user_id="user-1",
        subject="Invoice ready",
        channels=list(channels),
        created=CREATED,
    )
    repository.insert(n)
    return n.id


def _info(status, minutes=1, detail=None):
    return ChannelSendInfo(status=status.value, detail=detail, last_update=CREATED + timedelta(minutes=minutes))


class TestBatchWrite:
    def test_writes_status_for_configuration(self, repository):
        nid = _insert(repository)

        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.SENT, detail="201 Created"))])

        info = repository.find(nid).send_status("webpush", ENDPOINT)
        assert info.status == ProcessStatus.SENT.value
        assert info.detail == "201 Created"
        assert info.last_update == CREATED + timedelta(minutes=1)

    def test_configuration_key_is_stored_encoded(self, repository, session_factory):
        nid = _insert(repository)

        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.SENT))])

        with session_factory() as session:
            stored = session.scalars(select(SendStatusRow.configuration)).all()
        assert stored == [encode_configuration(ENDPOINT)]
        assert "." not in stored[0]

    def test_later_write_overwrites_status(self, repository):
        nid = _insert(repository)

        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.SENT, minutes=1))])
        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.DELIVERED, minutes=2))])

        info = repository.find(nid).send_status("webpush", ENDPOINT)
        assert info.status == ProcessStatus.DELIVERED.value
        assert info.last_update == CREATED + timedelta(minutes=2)

    def test_updates_are_grouped_per_notification(self, repository):
        first = _insert(repository)
        second = _insert(repository)

        repository.batch_write(
            [
                (first, "email", "alice@example.com", _info(ProcessStatus.SENT)),
                (second, "email", "bob@example.com", _info(ProcessStatus.FAILED, detail="mailbox full")),
                (first, "webpush", ENDPOINT, _info(ProcessStatus.DELIVERED)),
            ]
        )

        one = repository.find(first)
        assert one.send_status("email", "alice@example.com").status == ProcessStatus.SENT.value
        assert one.send_status("webpush", ENDPOINT).status == ProcessStatus.DELIVERED.value
        two = repository.find(second)
        assert two.send_status("email", "bob@example.com").detail == "mailbox full"
        assert two.send_status("webpush", ENDPOINT) is None

    def test_multiple_configurations_of_one_channel(self, repository):
        nid = _insert(repository)

        repository.batch_write(
            [
                (nid, "webpush", "device-a", _info(ProcessStatus.SENT)),
                (nid, "webpush", "device-b", _info(ProcessStatus.FAILED)),
            ]
        )

        statuses = repository.find(nid).channel_statuses("webpush")
        assert set(statuses) == {"device-a", "device-b"}
        assert statuses["device-b"].status == ProcessStatus.FAILED.value

    def test_new_channel_is_added(self, repository):
        nid = _insert(repository, channels=["email"])

        repository.batch_write([(nid, "sms", "+15550100", _info(ProcessStatus.SENT))])

        n = repository.find(nid)
        assert sorted(n.channel_names) == ["email", "sms"]
        assert n.send_status("sms", "+15550100").status == ProcessStatus.SENT.value

    def test_unknown_notification_is_skipped(self, repository):
        nid = _insert(repository)

        repository.batch_write(
            [
                ("00000000-0000-4000-8000-000000000000", "email", "x@example.com", _info(ProcessStatus.SENT)),
                (nid, "email", "alice@example.com", _info(ProcessStatus.SENT)),
            ]
        )

        assert repository.find("00000000-0000-4000-8000-000000000000") is None
        assert repository.find(nid).send_status("email", "alice@example.com") is not None

    def test_empty_batch_is_a_no_op(self, repository):
        repository.batch_write([])

    @pytest.mark.parametrize("channel", ["", "   ", "e.mail", "$email"])
    def test_invalid_channel_is_rejected_before_writing(self, repository, channel):
        nid = _insert(repository)

        with pytest.raises(ValidationError) as exc:
            repository.batch_write(
                [
                    (nid, "email", "alice@example.com", _info(ProcessStatus.SENT)),
                    (nid, channel, "alice@example.com", _info(ProcessStatus.SENT)),
                ]
            )

        assert "channel" in exc.value.messages
        assert repository.find(nid).send_statuses == []

    def test_missing_configuration_is_rejected(self, repository):
        nid = _insert(repository)

        with pytest.raises(ValidationError) as exc:
            repository.batch_write([(nid, "email", None, _info(ProcessStatus.SENT))])

        assert "configuration" in exc.value.messages


class TestIsConfirmedOrHandled:
    def test_handled_configuration(self, repository):
        nid = _insert(repository)

        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.HANDLED))])

        assert repository.is_confirmed_or_handled(nid, "webpush", ENDPOINT) is True

    def test_other_configuration_is_not_handled(self, repository):
        nid = _insert(repository)

        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.HANDLED))])

        assert repository.is_confirmed_or_handled(nid, "webpush", "another-device") is False
        assert repository.is_confirmed_or_handled(nid, "email", ENDPOINT) is False

    def test_sent_is_not_handled(self, repository):
        nid = _insert(repository)

        repository.batch_write([(nid, "webpush", ENDPOINT, _info(ProcessStatus.SENT))])

        assert repository.is_confirmed_or_handled(nid, "webpush", ENDPOINT) is False

    def test_missing_configuration_is_rejected(self, repository):
        nid = _insert(repository)

        with pytest.raises(ValidationError) as exc:
            repository.is_confirmed_or_handled(nid, "webpush", None)

        assert "configuration" in exc.value.messages

    def test_unknown_notification(self, repository):
        assert repository.is_confirmed_or_handled("00000000-0000-4000-8000-000000000000", "email", "a") is False
