"""
Notification preference error hierarchy.

Provides:
- PreferenceError: base for all preference failures
- InvalidNotificationTypeError: notification type not registered in the catalog
- InvalidChannelError: channel not registered, or disabled, in the catalog
- ForcedChannelError: explicit write targeting a forced channel
- CatalogError: malformed catalog document
"""

from typing import Optional


class PreferenceError(Exception):
    """Base exception for preference-related failures."""

    error_code = "PREFERENCE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class InvalidNotificationTypeError(PreferenceError):
    """Raised by write paths when the notification type is not in the catalog."""

    error_code = "INVALID_NOTIFICATION_TYPE"

    def __init__(self, notification_type: str, message: str):
        self.notification_type = notification_type
        super().__init__(message)

    @classmethod
    def not_registered(cls, notification_type: str) -> "InvalidNotificationTypeError":
        return cls(
            notification_type,
            f"Notification type '{notification_type}' is not registered in the configuration.",
        )

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["notification_type"] = self.notification_type
        return d


class InvalidChannelError(PreferenceError):
    """Raised by write paths when the channel is unknown or disabled."""

    error_code = "INVALID_CHANNEL"

    def __init__(self, channel: str, message: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(message)

    @classmethod
    def not_registered(cls, channel: str) -> "InvalidChannelError":
        return cls(
            channel,
            f"Channel '{channel}' is not registered in the configuration.",
            reason="not_registered",
        )

    @classmethod
    def disabled(cls, channel: str) -> "InvalidChannelError":
        return cls(
            channel,
            f"Channel '{channel}' is disabled in the configuration.",
            reason="disabled",
        )

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["channel"] = self.channel
        d["reason"] = self.reason
        return d


class ForcedChannelError(PreferenceError):
    """Raised when an explicit write targets a channel forced for the notification type."""

    error_code = "FORCED_CHANNEL"

    def __init__(self, notification_type: str, channel: str):
        self.notification_type = notification_type
        self.channel = channel
        super().__init__(
            f"Channel '{channel}' is forced for notification type "
            f"'{notification_type}' and cannot be changed."
        )

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["notification_type"] = self.notification_type
        d["channel"] = self.channel
        return d


class CatalogError(ValueError):
    """Raised when a catalog document is malformed."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)
