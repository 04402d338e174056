"""Error taxonomy shared by the overlay and the toggle governor."""

from __future__ import annotations


class EphoneError(Exception):
    """Base class for every error raised by ephone."""


class InvalidOperation(EphoneError):
    """A toggle mutation would break the shura ⇒ check-in dependency."""


class InvalidState(EphoneError):
    """An overlay intent arrived while the session could not accept it."""


class StoreUnavailable(EphoneError):
    """The settings store could not be read or written."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"settings store unavailable for {key!r}: {reason}")
        self.key = key
        self.reason = reason
