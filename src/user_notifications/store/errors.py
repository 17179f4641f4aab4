"""Outcomes and errors reported by the notification store.

Connectivity, timeout and driver failures are SQLAlchemy exceptions and reach
callers unchanged; the store does not retry.
"""

from dataclasses import dataclass


class ConflictError(Exception):
    """A notification with the same id already exists."""

    def __init__(self, notification_id):
        super().__init__(f"Notification {notification_id} already exists")
        self.notification_id = notification_id


class BatchWriteError(Exception):
    """Some per-notification writes of a batch failed; the others were committed."""

    def __init__(self, failures: dict):
        super().__init__(f"Status writes failed for {len(failures)} notification(s): {', '.join(map(str, failures))}")
        self.failures = failures


@dataclass(frozen=True)
class InsertResult:
    """Outcome of an insert: either stored, or rejected with a conflict."""

    notification_id: str
    conflict: ConflictError | None = None

    @property
    def ok(self) -> bool:
        return self.conflict is None
