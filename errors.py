"""Typed errors for the booking and settlement flow.

Every failure an operation can hit is raised as one of these, so callers
(the webhook app, scripts, tests) can tell a failed store read from an
empty result, and a missing profile from a bad rating.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional


@dataclass
class BookingError(Exception):
    """Base error. ``user_message`` is the generic notice shown to end users."""

    message: str
    cause: Optional[Exception] = field(default=None, repr=False)

    user_message: ClassVar[str] = "Something went wrong. Please try again."

    def __post_init__(self):
        super().__init__(self.message)

    def __str__(self):
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message


@dataclass
class AuthRequired(BookingError):
    user_message: ClassVar[str] = "Please sign in to continue."


@dataclass
class ValidationFailed(BookingError):
    user_message: ClassVar[str] = "Please check the details you entered."


@dataclass
class NotFound(BookingError):
    user_message: ClassVar[str] = "We could not find what you were looking for."


@dataclass
class RemoteReadFailed(BookingError):
    pass


@dataclass
class RemoteWriteFailed(BookingError):
    pass


@dataclass
class ExternalGatewayFailed(BookingError):
    user_message: ClassVar[str] = "Payment failed. Please try again."


@dataclass
class SettlementBusy(BookingError):
    """Another delivery of the same payment is settling it right now; retry later."""

    user_message: ClassVar[str] = "This payment is already being processed."
