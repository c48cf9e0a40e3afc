"""Pydantic models for UI API responses."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ensayo_viewer.models import DataPoint, DataResponse, TimeRange, ZoomRange


class EnsayoRow(BaseModel):
    codigo_ensayo: str
    descripcion: str = ""


class ChannelRow(BaseModel):
    column_name: str
    display_name: str
    unit: str = ""


class TableRow(BaseModel):
    table_name: str


class DataStats(BaseModel):
    total_records: int = 0
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_hours: Optional[float] = None


class ChartBundle(BaseModel):
    overview: Dict[str, Any] = Field(default_factory=dict)
    detail: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    status: str = "OK"
    timestamp: str


__all__ = [
    "ChannelRow",
    "ChartBundle",
    "DataPoint",
    "DataResponse",
    "DataStats",
    "EnsayoRow",
    "HealthStatus",
    "TableRow",
    "TimeRange",
    "ZoomRange",
]
