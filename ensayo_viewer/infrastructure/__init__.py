"""Storage, row sources and channel metadata."""

from .registry import Channel, ChannelRef, ChannelRegistry, load_registry
from .row_source import FrameRowSource, RowSource, SqlRowSource

__all__ = [
    "Channel",
    "ChannelRef",
    "ChannelRegistry",
    "FrameRowSource",
    "RowSource",
    "SqlRowSource",
    "load_registry",
]
