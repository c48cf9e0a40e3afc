"""Row sources: count and fetch timestamped readings of one device."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sqlalchemy import Engine, Table, func, select
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from ..errors import InvalidArgument, SourceUnavailable, UnknownDevice
from ..models import TimeRange
from .database import RESERVED_COLUMNS, reflect_table

LOGGER = logging.getLogger(__name__)

ORDINAL_COLUMN = "row_ordinal"


def _to_utc_naive(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; bind parameters the same way."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _as_utc_timestamp(value: Any) -> Optional[pd.Timestamp]:
    if value is None:
        return None
    ts = pd.Timestamp(value)
    if ts.tz is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def normalise_frame(frame: pd.DataFrame, channels: Sequence[str]) -> pd.DataFrame:
    """Return ``timestamp`` (UTC) plus ``channels`` columns, float-typed."""
    working = pd.DataFrame(frame, columns=["timestamp", *channels]).copy()
    working["timestamp"] = pd.to_datetime(working["timestamp"], utc=True)
    for channel in channels:
        working[channel] = pd.to_numeric(working[channel], errors="coerce").astype("float64")
    return working.reset_index(drop=True)


class RowSource(ABC):
    """Queryable table of readings for one device.

    Rows carry a stable ordinal, distinct from the timestamp, that the
    decimated fetch filters on with ``ordinal % stride == 0``.
    """

    def __init__(self, device: str, *, ordinal: str = "position") -> None:
        if ordinal not in {"position", "id"}:
            raise ValueError(f"Unsupported ordinal mode '{ordinal}'")
        self.device = device
        self.ordinal = ordinal

    @abstractmethod
    async def count(self, test_id: str, window: Optional[TimeRange] = None) -> int:
        """Number of rows for ``test_id`` inside the closed interval ``window``."""

    @abstractmethod
    async def fetch_range(
        self,
        test_id: str,
        channels: Sequence[str],
        window: Optional[TimeRange] = None,
        stride: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> pd.DataFrame:
        """Rows ordered by timestamp, optionally decimated and capped."""

    @abstractmethod
    async def stats(self, test_id: str) -> Dict[str, Any]:
        """Record count and time span of one test."""


def _stats_payload(total: int, start: Optional[pd.Timestamp], end: Optional[pd.Timestamp]) -> Dict[str, Any]:
    duration = None
    if start is not None and end is not None:
        duration = (end - start).total_seconds() / 3600
    return {
        "total_records": int(total),
        "start_time": start.isoformat() if start is not None else None,
        "end_time": end.isoformat() if end is not None else None,
        "duration_hours": duration,
    }


class SqlRowSource(RowSource):
    """Device table accessed through SQLAlchemy.

    Queries run on executor threads; the engine's connection pool is the
    only state shared between concurrent calls.
    """

    def __init__(self, engine: Engine, table_name: str, *, ordinal: str = "position") -> None:
        super().__init__(table_name, ordinal=ordinal)
        self.engine = engine
        self._table: Optional[Table] = None

    @property
    def table(self) -> Table:
        if self._table is None:
            try:
                self._table = reflect_table(self.engine, self.device)
            except NoSuchTableError as exc:
                raise UnknownDevice(f"Device table '{self.device}' does not exist") from exc
        return self._table

    async def _run(self, func_: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func_, *args))
        except (SQLAlchemyError, OSError) as exc:
            LOGGER.error("Row source %s failed: %s", self.device, exc)
            raise SourceUnavailable(f"Row source '{self.device}' is unavailable: {exc}", device=self.device) from exc

    def _conditions(self, table: Table, test_id: str, window: Optional[TimeRange]) -> List[Any]:
        conditions = [table.c.codigo_ensayo == test_id]
        if window is not None and window.start is not None:
            conditions.append(table.c.timestamp >= _to_utc_naive(window.start))
        if window is not None and window.end is not None:
            conditions.append(table.c.timestamp <= _to_utc_naive(window.end))
        return conditions

    def _columns(self, table: Table, channels: Sequence[str]) -> List[Any]:
        unknown = [name for name in channels if name in RESERVED_COLUMNS or name not in table.c]
        if unknown:
            raise InvalidArgument(f"Unknown channel(s) for {self.device}: {', '.join(unknown)}")
        return [table.c[name] for name in channels]

    def _count_sync(self, test_id: str, window: Optional[TimeRange]) -> int:
        table = self.table
        stmt = select(func.count()).select_from(table).where(*self._conditions(table, test_id, window))
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def _fetch_sync(
        self,
        test_id: str,
        channels: Sequence[str],
        window: Optional[TimeRange],
        stride: Optional[int],
        limit: Optional[int],
    ) -> pd.DataFrame:
        table = self.table
        columns = self._columns(table, channels)
        conditions = self._conditions(table, test_id, window)

        if stride is None or stride <= 1:
            stmt = select(table.c.timestamp, *columns).where(*conditions).order_by(table.c.timestamp, table.c.id)
        elif self.ordinal == "id":
            stmt = (
                select(table.c.timestamp, *columns)
                .where(*conditions, table.c.id % stride == 0)
                .order_by(table.c.timestamp, table.c.id)
            )
        else:
            ordinal = func.row_number().over(order_by=(table.c.timestamp, table.c.id)).label(ORDINAL_COLUMN)
            numbered = select(table.c.timestamp, *columns, ordinal).where(*conditions).subquery()
            stmt = (
                select(numbered.c.timestamp, *[numbered.c[name] for name in channels])
                .where((numbered.c[ORDINAL_COLUMN] - 1) % stride == 0)
                .order_by(numbered.c.timestamp, numbered.c[ORDINAL_COLUMN])
            )
        if limit is not None:
            stmt = stmt.limit(limit)

        LOGGER.debug("Fetch on %s: %s", self.device, stmt)
        with self.engine.connect() as conn:
            result = conn.execute(stmt)
            frame = pd.DataFrame(result.fetchall(), columns=list(result.keys()))
        return normalise_frame(frame, channels)

    def _stats_sync(self, test_id: str) -> Dict[str, Any]:
        table = self.table
        stmt = select(func.count(), func.min(table.c.timestamp), func.max(table.c.timestamp)).where(
            table.c.codigo_ensayo == test_id
        )
        with self.engine.connect() as conn:
            total, start, end = conn.execute(stmt).one()
        return _stats_payload(total, _as_utc_timestamp(start), _as_utc_timestamp(end))

    async def count(self, test_id: str, window: Optional[TimeRange] = None) -> int:
        return await self._run(self._count_sync, test_id, window)

    async def fetch_range(
        self,
        test_id: str,
        channels: Sequence[str],
        window: Optional[TimeRange] = None,
        stride: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> pd.DataFrame:
        return await self._run(self._fetch_sync, test_id, list(channels), window, stride, limit)

    async def stats(self, test_id: str) -> Dict[str, Any]:
        return await self._run(self._stats_sync, test_id)


class FrameRowSource(RowSource):
    """In-memory device backed by a pandas frame (demo mode and tests).

    The frame needs ``timestamp`` and ``codigo_ensayo`` columns; an ``id``
    column is synthesised from the row order when absent.
    """

    def __init__(self, device: str, frame: pd.DataFrame, *, ordinal: str = "position") -> None:
        super().__init__(device, ordinal=ordinal)
        working = frame.copy()
        working["timestamp"] = pd.to_datetime(working["timestamp"], utc=True)
        if "id" not in working.columns:
            working["id"] = np.arange(1, len(working) + 1)
        self.frame = working.sort_values(["timestamp", "id"], kind="mergesort").reset_index(drop=True)

    @property
    def channel_names(self) -> List[str]:
        return [column for column in self.frame.columns if column not in RESERVED_COLUMNS]

    def _select(self, test_id: str, window: Optional[TimeRange]) -> pd.DataFrame:
        frame = self.frame
        mask = frame["codigo_ensayo"] == test_id
        if window is not None and window.start is not None:
            mask &= frame["timestamp"] >= pd.Timestamp(window.start)
        if window is not None and window.end is not None:
            mask &= frame["timestamp"] <= pd.Timestamp(window.end)
        return frame.loc[mask]

    async def count(self, test_id: str, window: Optional[TimeRange] = None) -> int:
        return int(len(self._select(test_id, window)))

    async def fetch_range(
        self,
        test_id: str,
        channels: Sequence[str],
        window: Optional[TimeRange] = None,
        stride: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> pd.DataFrame:
        unknown = [name for name in channels if name not in self.channel_names]
        if unknown:
            raise InvalidArgument(f"Unknown channel(s) for {self.device}: {', '.join(unknown)}")
        selected = self._select(test_id, window)
        if stride is not None and stride > 1:
            if self.ordinal == "id":
                selected = selected.loc[selected["id"] % stride == 0]
            else:
                selected = selected.iloc[::stride]
        if limit is not None:
            selected = selected.head(limit)
        return normalise_frame(selected, channels)

    async def stats(self, test_id: str) -> Dict[str, Any]:
        selected = self._select(test_id, None)
        if selected.empty:
            return _stats_payload(0, None, None)
        return _stats_payload(len(selected), selected["timestamp"].min(), selected["timestamp"].max())
