"""Apply a sampling plan to one device's row source."""
from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

import pandas as pd

from ..errors import InvalidArgument, SourceUnavailable, UnknownDevice, ViewerError
from ..infrastructure.row_source import RowSource
from ..models import DataPoint, DataResponse, DeviceMetadata, TimeRange
from .sampling import DEFAULT_POINT_BUDGET, minmax_bucket, plan

LOGGER = logging.getLogger(__name__)

METHODS = ("stride", "minmax")


def validate_request(
    test_id: str,
    channel_names: Sequence[str],
    time_range: Optional[TimeRange],
    point_budget: int,
) -> List[str]:
    """Reject malformed requests before any I/O; return cleaned channel names."""
    if not test_id or not str(test_id).strip():
        raise InvalidArgument("A test id is required")
    cleaned: List[str] = []
    for name in channel_names:
        name = str(name).strip()
        if not name:
            raise InvalidArgument("Channel names must be non-empty")
        if name not in cleaned:
            cleaned.append(name)
    if not cleaned:
        raise InvalidArgument("At least one channel is required")
    if time_range is not None and time_range.start and time_range.end and time_range.start > time_range.end:
        raise InvalidArgument("Time range start must not be after its end")
    if point_budget < 1:
        raise InvalidArgument(f"point budget must be at least 1, got {point_budget}")
    return cleaned


def frame_to_points(frame: pd.DataFrame, channels: Sequence[str]) -> List[DataPoint]:
    points: List[DataPoint] = []
    for record in frame.to_dict(orient="records"):
        values = {
            channel: None if pd.isna(record.get(channel)) else float(record[channel])
            for channel in channels
        }
        points.append(DataPoint(timestamp=pd.Timestamp(record["timestamp"]).to_pydatetime(), values=values))
    return points


class QueryExecutor:
    """Count, plan and fetch for a single device.

    Row source failures surface as :class:`SourceUnavailable`; nothing is
    retried here.
    """

    def __init__(self, sources: Mapping[str, RowSource], *, method: str = "stride") -> None:
        if method not in METHODS:
            raise ValueError(f"Unsupported sampling method '{method}'")
        self.sources = dict(sources)
        self.method = method

    def source(self, device: str) -> RowSource:
        try:
            return self.sources[device]
        except KeyError as exc:
            raise UnknownDevice(f"Unknown device '{device}'") from exc

    async def execute(
        self,
        device: str,
        test_id: str,
        channel_names: Sequence[str],
        time_range: Optional[TimeRange] = None,
        point_budget: int = DEFAULT_POINT_BUDGET,
        *,
        method: Optional[str] = None,
    ) -> DataResponse:
        channels = validate_request(test_id, channel_names, time_range, point_budget)
        method = method or self.method
        if method not in METHODS:
            raise InvalidArgument(f"Unsupported sampling method '{method}'")
        source = self.source(device)
        window = time_range if time_range is not None and not time_range.is_open() else None
        LOGGER.debug(
            "Data request device=%s ensayo=%s channels=%s window=%s budget=%s",
            device,
            test_id,
            channels,
            window,
            point_budget,
        )

        try:
            total = await source.count(test_id, window)
            sampling = plan(total, point_budget)
            if sampling.uses_full_scan:
                frame = await source.fetch_range(test_id, channels, window)
            elif method == "minmax":
                frame = minmax_bucket(await source.fetch_range(test_id, channels, window), channels, point_budget)
            else:
                frame = await source.fetch_range(test_id, channels, window, sampling.stride, point_budget)
        except SourceUnavailable as exc:
            if exc.device is None:
                exc.device = device
            raise
        except ViewerError:
            raise
        except (OSError, TimeoutError) as exc:
            LOGGER.error("Row source %s failed: %s", device, exc)
            raise SourceUnavailable(f"Row source '{device}' is unavailable: {exc}", device=device) from exc

        frame = frame.head(point_budget)
        points = frame_to_points(frame, channels)
        LOGGER.info(
            "Sampled %s/%s: total=%d stride=%d returned=%d",
            device,
            test_id,
            sampling.total_count,
            sampling.stride,
            len(points),
        )
        return DataResponse(
            points=points,
            total_points=sampling.total_count,
            returned_points=len(points),
            sampling_rate=sampling.stride,
            time_range=time_range or TimeRange(),
            devices={
                device: DeviceMetadata(
                    total_points=sampling.total_count,
                    returned_points=len(points),
                    sampling_rate=sampling.stride,
                )
            },
        )
