"""Pydantic value types produced per query by the sampling engine."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimeRange(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    def is_open(self) -> bool:
        return self.start is None and self.end is None


class DataPoint(BaseModel):
    timestamp: datetime
    values: Dict[str, Optional[float]] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class DeviceMetadata(BaseModel):
    total_points: int
    returned_points: int
    sampling_rate: int


class DataResponse(BaseModel):
    points: List[DataPoint] = Field(default_factory=list)
    total_points: int = 0
    returned_points: int = 0
    sampling_rate: int = 1
    time_range: TimeRange = Field(default_factory=TimeRange)
    devices: Dict[str, DeviceMetadata] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    def metadata(self) -> Dict[str, Any]:
        return {
            "totalPoints": self.total_points,
            "returnedPoints": self.returned_points,
            "samplingRate": self.sampling_rate,
            "timeRange": {
                "start": self.time_range.start.isoformat() if self.time_range.start else None,
                "end": self.time_range.end.isoformat() if self.time_range.end else None,
            },
            "devices": {name: meta.model_dump() for name, meta in self.devices.items()},
            "warnings": list(self.warnings),
        }

    def to_payload(self) -> Dict[str, Any]:
        """Flatten to the ``{"data": [...], "metadata": {...}}`` wire shape."""
        data = [
            {"timestamp": point.timestamp.isoformat(), **point.values}
            for point in self.points
        ]
        return {"data": data, "metadata": self.metadata()}


class ZoomRange(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _ordered(self) -> "ZoomRange":
        if self.start > self.end:
            raise ValueError("zoom range start must not be after its end")
        return self

    def as_time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)
