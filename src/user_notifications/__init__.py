"""User notification tracking — delivery, seen and confirmation state per channel."""
