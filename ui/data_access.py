"""Data access helpers wiring settings to row sources and the orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from dateutil import parser
from sqlalchemy import Engine

from ensayo_viewer.config.settings import Settings
from ensayo_viewer.errors import InvalidArgument
from ensayo_viewer.infrastructure import database
from ensayo_viewer.infrastructure.demo import DEMO_ENSAYOS, demo_registry, demo_sources
from ensayo_viewer.infrastructure.registry import ChannelRegistry, load_registry
from ensayo_viewer.infrastructure.row_source import RowSource, SqlRowSource
from ensayo_viewer.models import DataResponse, TimeRange
from ensayo_viewer.processing.executor import QueryExecutor
from ensayo_viewer.processing.orchestrator import FetchOrchestrator

from .schemas import ChannelRow, DataStats, EnsayoRow, TableRow
from .view_state import ChartSession

LOGGER = logging.getLogger(__name__)


@dataclass
class ViewerServices:
    settings: Settings
    registry: ChannelRegistry
    sources: Dict[str, RowSource]
    executor: QueryExecutor
    orchestrator: FetchOrchestrator
    engine: Optional[Engine] = None
    ensayos: List[EnsayoRow] = field(default_factory=list)

    def list_ensayos(self) -> List[EnsayoRow]:
        if self.engine is None:
            return list(self.ensayos)
        return [EnsayoRow(codigo_ensayo=code, descripcion=desc) for code, desc in database.fetch_ensayos(self.engine)]

    def list_tables(self) -> List[TableRow]:
        if self.engine is None:
            names = list(self.registry.devices)
        else:
            names = database.list_tables(self.engine)
        return [TableRow(table_name=name) for name in names]

    def device_labels(self) -> Dict[str, str]:
        """Configured label per registry device, the table name when none is set."""
        labels = {device.table: device.label for device in self.settings.devices if device.label}
        return {device: labels.get(device, device) for device in self.registry.devices}

    def channels(self, device: str) -> List[ChannelRow]:
        return [ChannelRow(**channel.as_row()) for channel in self.registry.list_channels(device)]

    def all_channels(self) -> Dict[str, List[ChannelRow]]:
        return {device: self.channels(device) for device in self.registry.devices}

    async def stats(self, device: str, test_id: str) -> DataStats:
        if not test_id:
            raise InvalidArgument("Missing required parameter: ensayo")
        source = self.executor.source(device)
        return DataStats(**await source.stats(test_id))

    async def get_data(
        self,
        selection: Sequence[str],
        test_id: str,
        time_range: Optional[TimeRange] = None,
        point_budget: Optional[int] = None,
        method: Optional[str] = None,
    ) -> DataResponse:
        budget = point_budget or self.settings.sampling.point_budget
        return await self.orchestrator.fetch(selection, test_id, time_range, budget, method=method)

    def session(self, point_budget: Optional[int] = None) -> ChartSession:
        """A fresh overview/detail session configured from ``settings.zoom``."""
        return ChartSession(
            self.orchestrator,
            self.registry,
            point_budget=point_budget or self.settings.sampling.point_budget,
            axis_offset=self.settings.zoom.axis_offset_px,
            debounce_s=self.settings.zoom.debounce_ms / 1000,
        )


def build_services(settings: Settings, *, engine: Optional[Engine] = None) -> ViewerServices:
    """Build the engine, registry and orchestrator described by ``settings``."""
    ordinal = settings.sampling.ordinal
    if settings.demo:
        LOGGER.info("Demo mode: serving synthetic recordings")
        registry = demo_registry()
        sources: Dict[str, RowSource] = dict(demo_sources(ordinal=ordinal))
        ensayos = [EnsayoRow(codigo_ensayo=code, descripcion=desc) for code, desc in DEMO_ENSAYOS]
        engine = None
    else:
        if engine is None:
            engine = database.init_engine(
                settings.database.url,
                pool_size=settings.database.pool_size,
                echo=settings.database.echo,
            )
        tables = settings.device_tables or database.list_value_tables(engine)
        registry = load_registry(engine, tables)
        sources = {device: SqlRowSource(engine, device, ordinal=ordinal) for device in registry.devices}
        ensayos = []
    executor = QueryExecutor(sources, method=settings.sampling.method)
    orchestrator = FetchOrchestrator(registry, executor, strict=settings.sampling.strict_channels)
    return ViewerServices(
        settings=settings,
        registry=registry,
        sources=sources,
        executor=executor,
        orchestrator=orchestrator,
        engine=engine,
        ensayos=ensayos,
    )


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 to an aware UTC datetime; naive input is taken as UTC."""
    if not value:
        return None
    try:
        parsed = parser.isoparse(value)
    except (ValueError, OverflowError) as exc:
        raise InvalidArgument(f"Invalid timestamp '{value}'") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_time_range(start: Optional[str], end: Optional[str]) -> Optional[TimeRange]:
    start_dt = parse_instant(start)
    end_dt = parse_instant(end)
    if start_dt is None and end_dt is None:
        return None
    if start_dt and end_dt and start_dt > end_dt:
        raise InvalidArgument("startTime must not be after endTime")
    return TimeRange(start=start_dt, end=end_dt)


def parse_channels(raw: str) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]
