"""User Notifications bounded context — lifecycle tracking for delivered notifications.

Records, per notification and per delivery channel, when a notification was
delivered, seen and confirmed. Channel callbacks report events concurrently and
out of order; the store merges them with per-row atomic conditional updates
instead of in-process locks.
"""

from protean.domain import Domain

from user_notifications.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

# Get logger for this module
logger = get_logger(__name__)

# Domain Composition Root
user_notifications = Domain(name="user_notifications")
