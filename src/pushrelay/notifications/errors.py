"""Exception types for push delivery."""


class PushError(Exception):
    """Base class for push delivery errors."""


class VapidConfigError(PushError):
    """The server's VAPID identity is unusable.

    Fatal for a whole send call, never for a single subscription.
    """


class VapidNotConfiguredError(VapidConfigError):
    """No VAPID key pair has been generated yet."""


class VapidKeyError(VapidConfigError):
    """The stored VAPID key pair is malformed or inconsistent."""


class InvalidSubscriptionError(PushError):
    """Stored subscription data cannot be used for delivery."""
