"""Exception taxonomy shared by the sampling engine and its callers."""
from __future__ import annotations

from typing import Optional, Sequence


class ViewerError(RuntimeError):
    """Base class for all errors raised by the viewer core."""


class InvalidArgument(ViewerError, ValueError):
    """Rejected before any I/O: empty test id or selection, bad range, bad budget."""


class UnknownDevice(InvalidArgument):
    """The requested device table is not part of the channel registry."""


class SourceUnavailable(ViewerError):
    """A row source failed while counting or fetching rows."""

    def __init__(self, message: str, device: Optional[str] = None) -> None:
        super().__init__(message)
        self.device = device


class AmbiguousChannel(ViewerError):
    """A bare channel name exists in more than one device."""

    def __init__(self, channel: str, devices: Sequence[str]) -> None:
        super().__init__(
            f"Channel '{channel}' exists in several devices: {', '.join(devices)}"
        )
        self.channel = channel
        self.devices = list(devices)
