"""Typed addresses for per-channel, per-configuration status fields.

Configuration keys are opaque (device tokens, webhook URLs, email
addresses) and may contain the path separator or start with characters
that are reserved in field paths. They are stored URL-safe base64 encoded;
the encoding is reversible so the raw key can be handed back to callers.
"""

import base64
import binascii
from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError

PATH_SEPARATOR = "."


class StatusField(Enum):
    DETAIL = "detail"
    STATUS = "status"
    LAST_UPDATE = "last_update"


def encode_configuration(configuration: str) -> str:
    return base64.urlsafe_b64encode(configuration.encode("utf-8")).decode("ascii")


def decode_configuration(encoded: str) -> str:
    try:
        return base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise ValidationError({"configuration": [f"Not an encoded configuration key: {encoded!r}"]}) from exc


def validate_channel(channel) -> str:
    if not channel or not channel.strip():
        raise ValidationError({"channel": ["Channel name is required"]})
    if PATH_SEPARATOR in channel or channel.startswith("$"):
        raise ValidationError({"channel": [f"Invalid channel name: {channel!r}"]})
    return channel


@dataclass(frozen=True)
class ChannelStatusPath:
    """Address of one status field: ``channels.<channel>.status.<encoded key>.<field>``."""

    channel: str
    configuration: str
    field: StatusField

    @classmethod
    def build(cls, channel, configuration, field) -> "ChannelStatusPath":
        """Validate the channel and encode the raw configuration key."""
        if configuration is None:
            raise ValidationError({"configuration": ["Configuration key is required"]})

        return cls(
            channel=validate_channel(channel),
            configuration=encode_configuration(configuration),
            field=StatusField(field),
        )

    @property
    def row_key(self) -> tuple[str, str]:
        return self.channel, self.configuration

    @property
    def column(self) -> str:
        return self.field.value

    def __str__(self):
        return PATH_SEPARATOR.join(("channels", self.channel, "status", self.configuration, self.field.value))
