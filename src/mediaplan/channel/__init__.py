"""Confirmation channel and transports."""

from mediaplan.channel.confirmation import ConfirmationChannel, ConfirmationTransport
from mediaplan.channel.transports import (
    AutoResponder,
    ConsoleConfirmationTransport,
    RecordingTransport,
)

__all__ = [
    "AutoResponder",
    "ConfirmationChannel",
    "ConfirmationTransport",
    "ConsoleConfirmationTransport",
    "RecordingTransport",
]
