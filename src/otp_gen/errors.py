"""Exceptions raised by the OTP store and its collaborators."""

from __future__ import annotations

from typing import Any


class OTPError(Exception):
    """Base class for every OTP Gen error."""


class OTPAlreadyExistsError(OTPError):
    """An OTP is already outstanding for the key."""

    def __init__(self, key: Any) -> None:
        super().__init__(f"OTP already exists for key {key!r}")
        self.key = key


class ExpiryScheduleError(OTPError):
    """Expiry could not be scheduled, for one OTP or for the whole store."""

    def __init__(self, key: Any = None) -> None:
        if key is None:
            super().__init__("Could not start the expiry scheduler")
        else:
            super().__init__(f"Could not schedule expiry for key {key!r}")
        self.key = key


class StoreNotRunningError(OTPError):
    """The store was used before ``start()`` or after ``stop()``."""


class StoreAlreadyStartedError(OTPError):
    """``start()`` was called on a store that is already running."""


class OTPServiceError(OTPError):
    """The OTP HTTP API answered with something unexpected."""
