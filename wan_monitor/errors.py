"""
Exception hierarchy for the WAN monitor.

Every poll either completes or fails as a unit; failures are raised as one of
the `AcquisitionError` subclasses below and are never retried internally.
"""

from typing import Optional


class ConfigurationError(Exception):
    """A required setting is missing. Fatal at startup."""


class AcquisitionError(Exception):
    """Base class for failures that abort the current poll."""


class ChallengeError(AcquisitionError):
    """No usable Digest challenge, or the challenge lacks realm/nonce."""


class AuthenticationError(AcquisitionError):
    """The device rejected a digest-authenticated request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(AcquisitionError):
    """Timeout, connection failure or an unreadable response body."""


class ResolutionError(AcquisitionError):
    """None of the wanted interfaces could be found on the device."""
