"""Overview and detail chart specs (ECharts option dictionaries)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ensayo_viewer.errors import InvalidArgument
from ensayo_viewer.infrastructure.registry import Channel, ChannelRef, ChannelRegistry
from ensayo_viewer.models import DataPoint, as_utc

LOGGER = logging.getLogger(__name__)

ChartSpec = Dict[str, Any]
ChannelTable = Union[ChannelRegistry, Mapping[str, Channel], Sequence[Channel]]

AXIS_OFFSET_PX = 60
DEFAULT_UNIT = "default"
OVERVIEW_SUFFIX = " (overview)"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)

PALETTE = [
    "#5470c6",
    "#91cc75",
    "#fac858",
    "#ee6666",
    "#73c0de",
    "#3ba272",
    "#fc8452",
    "#9a60b4",
    "#ea7ccc",
    "#ff9f7f",
]


def color_for(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


def to_epoch_ms(value: datetime) -> Union[int, float]:
    """Epoch milliseconds keeping microseconds as the fractional part."""
    micros = (as_utc(value) - EPOCH) // _MICROSECOND
    if micros % 1000 == 0:
        return micros // 1000
    return micros / 1000


def from_epoch_ms(value: float) -> datetime:
    """Inverse of :func:`to_epoch_ms`, exact to the microsecond."""
    return EPOCH + timedelta(microseconds=round(value * 1000))


def _resolve_item(channels: ChannelTable, item: Union[str, ChannelRef]) -> Optional[Channel]:
    if isinstance(channels, ChannelRegistry):
        try:
            ref, _ = channels.resolve(item)
            return channels.get(ref.device, ref.name)
        except InvalidArgument:
            return None
    if isinstance(item, ChannelRef):
        device, name = item.device, item.name
    else:
        device, name = ChannelRef.parse(item)
    if isinstance(channels, Mapping):
        channel = channels.get(name)
        if channel is not None and device and channel.device and channel.device != device:
            return None
        return channel
    for channel in channels:
        if channel.name == name and (not device or not channel.device or channel.device == device):
            return channel
    return None


def _selected(channels: ChannelTable, selection: Sequence[Union[str, ChannelRef]]) -> List[Tuple[int, Channel]]:
    """``(selection index, channel)`` for every selected item known to ``channels``.

    Qualified items (``device:channel`` or :class:`ChannelRef`) take the
    metadata of that device; bare names follow registry order.
    """
    picked: List[Tuple[int, Channel]] = []
    for index, item in enumerate(selection):
        channel = _resolve_item(channels, item)
        if channel is None:
            LOGGER.debug("Selected channel %s has no metadata; skipped", item)
            continue
        picked.append((index, channel))
    return picked


def unit_groups(selected: Sequence[Tuple[int, Channel]]) -> List[str]:
    """Units in first-seen order; channels without a unit share ``default``."""
    units: List[str] = []
    for _, channel in selected:
        unit = channel.unit or DEFAULT_UNIT
        if unit not in units:
            units.append(unit)
    return units


def axis_placement(index: int, offset_px: int = AXIS_OFFSET_PX) -> Tuple[str, int]:
    """Alternate left/right; the third and later axes on a side are pushed outwards."""
    return ("left" if index % 2 == 0 else "right", (index // 2) * offset_px)


def series_data(points: Sequence[DataPoint], channel: str) -> List[List[Any]]:
    """``[epoch_ms, value]`` pairs from the points carrying ``channel``."""
    return [
        [to_epoch_ms(point.timestamp), point.values[channel]]
        for point in points
        if channel in point.values
    ]


def _y_axes(units: Sequence[str], offset_px: int, *, decorated: bool) -> List[Dict[str, Any]]:
    axes: List[Dict[str, Any]] = []
    for index, unit in enumerate(units):
        position, offset = axis_placement(index, offset_px)
        if decorated:
            axes.append(
                {
                    "type": "value",
                    "name": unit,
                    "position": position,
                    "offset": offset,
                    "axisLabel": {"formatter": f"{{value}} {unit}"},
                    "axisLine": {"show": True, "lineStyle": {"color": color_for(index)}},
                }
            )
        else:
            axes.append(
                {
                    "type": "value",
                    "position": position,
                    "offset": offset,
                    "axisLabel": {"show": False},
                    "axisLine": {"show": False},
                    "splitLine": {"show": False},
                }
            )
    return axes


def build_detail(
    points: Sequence[DataPoint],
    channels: ChannelTable,
    selection: Sequence[Union[str, ChannelRef]],
    *,
    title: str = "Time Series Chart",
    axis_offset: int = AXIS_OFFSET_PX,
) -> ChartSpec:
    """Fully labelled, windowed chart."""
    if not points or not selection:
        return {}
    selected = _selected(channels, selection)
    if not selected:
        return {}
    units = unit_groups(selected)
    series = [
        {
            "name": channel.display_name,
            "id": channel.name,
            "type": "line",
            "data": series_data(points, channel.name),
            "yAxisIndex": units.index(channel.unit or DEFAULT_UNIT),
            "symbol": "none",
            "lineStyle": {"width": 2, "color": color_for(index)},
            "connectNulls": False,
        }
        for index, channel in selected
    ]
    return {
        "title": {"text": title, "left": "center"},
        "legend": {
            "data": [channel.display_name for _, channel in selected],
            "top": 40,
            "left": "center",
            "orient": "horizontal",
            "icon": "circle",
            "show": True,
        },
        "xAxis": {"type": "time"},
        "yAxis": _y_axes(units, axis_offset, decorated=True),
        "series": series,
        "tooltip": {"trigger": "axis"},
    }


def build_overview(
    points: Sequence[DataPoint],
    channels: ChannelTable,
    selection: Sequence[Union[str, ChannelRef]],
    *,
    zoom_start: float = 0.0,
    zoom_end: float = 100.0,
    axis_offset: int = AXIS_OFFSET_PX,
) -> ChartSpec:
    """Decoration-free full-range chart carrying the range slider."""
    if not points or not selection:
        return {}
    selected = _selected(channels, selection)
    if not selected:
        return {}
    units = unit_groups(selected)
    series = [
        {
            "name": channel.display_name + OVERVIEW_SUFFIX,
            "id": channel.name,
            "type": "line",
            "data": series_data(points, channel.name),
            "yAxisIndex": units.index(channel.unit or DEFAULT_UNIT),
            "symbol": "none",
            "showSymbol": False,
            "lineStyle": {"width": 2, "color": color_for(index)},
            "emphasis": {"disabled": True},
            "tooltip": {"show": False},
        }
        for index, channel in selected
    ]
    return {
        "grid": {"left": "10%", "right": "10%", "top": 0, "height": "100%"},
        "xAxis": {
            "type": "time",
            "axisLine": {"show": False},
            "axisLabel": {"show": False},
            "splitLine": {"show": False},
        },
        "yAxis": _y_axes(units, axis_offset, decorated=False),
        "series": series,
        "legend": {"show": False},
        "dataZoom": [
            {
                "type": "slider",
                "xAxisIndex": 0,
                "start": zoom_start,
                "end": zoom_end,
                "bottom": 10,
            }
        ],
        "tooltip": {"show": False},
    }


def overview_series(spec: Optional[ChartSpec]) -> List[List[List[Any]]]:
    """Plotted ``[epoch_ms, value]`` sequences of an overview spec."""
    if not spec:
        return []
    return [list(series.get("data") or []) for series in spec.get("series", [])]
