"""Store options — retention policies and connection settings.

Values come from the ``[custom]`` section of the domain configuration
(``domain.toml``, overlaid per ``PROTEAN_ENV``) or are passed in directly.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

# Values at or above this cap are treated as "no per-user limit".
UNBOUNDED_ITEMS = 2**31 - 1

# Largest number of ids removed by one retention DELETE statement.
CLEANUP_BATCH_SIZE = 5000

DEFAULT_DATABASE_URI = "sqlite:///user_notifications.db"


@dataclass(frozen=True)
class UserNotificationsOptions:
    """Retention and connection settings for the notification store."""

    retention_time: timedelta = timedelta(days=90)
    max_items_per_user: int = 0
    cleanup_batch_size: int = CLEANUP_BATCH_SIZE
    database_uri: str = DEFAULT_DATABASE_URI

    @property
    def caps_items_per_user(self) -> bool:
        """True when the per-user count cap is active."""
        return 0 < self.max_items_per_user < UNBOUNDED_ITEMS

    @classmethod
    def from_config(cls, custom: Mapping) -> "UserNotificationsOptions":
        retention_days = custom.get("NOTIFICATION_RETENTION_DAYS", 90)
        return cls(
            retention_time=timedelta(days=int(retention_days)),
            max_items_per_user=int(custom.get("MAX_ITEMS_PER_USER", 0)),
            cleanup_batch_size=int(custom.get("CLEANUP_BATCH_SIZE", CLEANUP_BATCH_SIZE)),
            database_uri=custom.get("DATABASE_URI", DEFAULT_DATABASE_URI),
        )

    @classmethod
    def from_domain(cls, domain) -> "UserNotificationsOptions":
        """Read options from the ``custom`` section of a Protean domain's config."""
        return cls.from_config(domain.config.get("custom") or {})
