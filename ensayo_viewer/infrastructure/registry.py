"""Per-device channel lookup used for selection routing and axis grouping."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import Engine, select
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from ..errors import AmbiguousChannel, InvalidArgument, SourceUnavailable, UnknownDevice
from .database import RESERVED_COLUMNS, description_table_name, reflect_table

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Channel:
    name: str
    display_name: str
    unit: str = ""
    device: str = ""

    def as_row(self) -> Dict[str, str]:
        return {"column_name": self.name, "display_name": self.display_name, "unit": self.unit}


@dataclass(frozen=True)
class ChannelRef:
    """A channel qualified by the device that owns it."""

    device: str
    name: str

    @classmethod
    def parse(cls, text: str) -> Tuple[Optional[str], str]:
        """Split ``"device:channel"``; bare names return ``(None, name)``."""
        device, sep, name = text.strip().partition(":")
        if not sep:
            return None, device
        return device.strip() or None, name.strip()

    def __str__(self) -> str:
        return f"{self.device}:{self.name}"


SelectionItem = Union[str, ChannelRef]


class ChannelRegistry:
    """Immutable ``device -> ordered channels`` table.

    Device order is significant: a bare channel name present in several
    devices resolves to the first device in this order.
    """

    def __init__(self, devices: Mapping[str, Sequence[Channel]]) -> None:
        frozen: Dict[str, Tuple[Channel, ...]] = {}
        for device, channels in devices.items():
            frozen[device] = tuple(
                channel if channel.device == device else Channel(channel.name, channel.display_name, channel.unit, device)
                for channel in channels
            )
        self._devices = MappingProxyType(frozen)

    @property
    def devices(self) -> List[str]:
        return list(self._devices.keys())

    def __contains__(self, device: object) -> bool:
        return device in self._devices

    def list_channels(self, device: str) -> Tuple[Channel, ...]:
        try:
            return self._devices[device]
        except KeyError as exc:
            raise UnknownDevice(f"Unknown device '{device}'") from exc

    def all_channels(self) -> Dict[str, Tuple[Channel, ...]]:
        return dict(self._devices)

    def devices_for(self, name: str) -> List[str]:
        return [device for device, channels in self._devices.items() if any(c.name == name for c in channels)]

    def get(self, device: str, name: str) -> Channel:
        for channel in self.list_channels(device):
            if channel.name == name:
                return channel
        raise InvalidArgument(f"Channel '{name}' does not exist in device '{device}'")

    def resolve(self, item: SelectionItem, *, strict: bool = False) -> Tuple[ChannelRef, List[str]]:
        """Return the owning device of ``item`` and the other candidate devices.

        A non-empty second element means the bare name was ambiguous and the
        first device in registry order was chosen.
        """
        if isinstance(item, ChannelRef):
            device, name = item.device, item.name
        else:
            device, name = ChannelRef.parse(item)
        if not name:
            raise InvalidArgument("Channel names must be non-empty")
        if device is not None:
            self.get(device, name)
            return ChannelRef(device, name), []
        candidates = self.devices_for(name)
        if not candidates:
            raise InvalidArgument(f"Channel '{name}' is not provided by any device")
        if len(candidates) > 1 and strict:
            raise AmbiguousChannel(name, candidates)
        return ChannelRef(candidates[0], name), candidates[1:]

    def channel_lookup(self) -> Dict[str, Channel]:
        """Name -> channel, first device wins for duplicated names."""
        lookup: Dict[str, Channel] = {}
        for channels in self._devices.values():
            for channel in channels:
                lookup.setdefault(channel.name, channel)
        return lookup


def _load_descriptions(engine: Engine, value_table: str) -> Dict[int, Tuple[str, str]]:
    try:
        table = reflect_table(engine, description_table_name(value_table))
    except NoSuchTableError:
        LOGGER.info("No description table for %s; using column names", value_table)
        return {}
    with engine.connect() as conn:
        rows = conn.execute(select(table.c.canal_id, table.c.nombre, table.c.unidad)).all()
    return {int(canal_id): (nombre or "", unidad or "") for canal_id, nombre, unidad in rows}


def load_channels(engine: Engine, value_table: str) -> List[Channel]:
    """Introspect ``value_table``: data columns in ordinal order joined to descriptions."""
    table = reflect_table(engine, value_table)
    descriptions = _load_descriptions(engine, value_table)
    channels: List[Channel] = []
    data_columns = [column.name for column in table.columns if column.name not in RESERVED_COLUMNS]
    for canal_id, column in enumerate(data_columns, start=1):
        display, unit = descriptions.get(canal_id, ("", ""))
        channels.append(Channel(name=column, display_name=display or column, unit=unit, device=value_table))
    return channels


def load_registry(engine: Engine, tables: Iterable[str]) -> ChannelRegistry:
    devices: Dict[str, List[Channel]] = {}
    for table in tables:
        try:
            devices[table] = load_channels(engine, table)
        except NoSuchTableError:
            LOGGER.warning("Device table %s does not exist; skipping", table)
        except SQLAlchemyError as exc:
            raise SourceUnavailable(f"Unable to introspect {table}: {exc}", device=table) from exc
    LOGGER.info("Channel registry loaded for %d device(s)", len(devices))
    return ChannelRegistry(devices)
