"""Debounced conversion of overview slider moves into absolute zoom ranges."""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from typing import Any, Callable, List, Optional, Protocol, Sequence, Set

from ensayo_viewer.models import ZoomRange

from .charts import ChartSpec, from_epoch_ms, overview_series

LOGGER = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.2

IDLE = "idle"
DEBOUNCING = "debouncing"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules on the running event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


def _index_window(length: int, start_pct: float, end_pct: float) -> range:
    start_idx = max(0, math.floor(length * start_pct / 100))
    end_idx = min(length, math.ceil(length * end_pct / 100))
    return range(start_idx, end_idx)


def visible_range(
    series: Sequence[Sequence[Sequence[Any]]],
    start_pct: float,
    end_pct: float,
) -> Optional[ZoomRange]:
    """Min/max timestamp over the points visible in ``[start_pct, end_pct]``.

    Each series is windowed against its own length; ``None`` when no point
    falls inside the window.
    """
    start_pct = min(max(start_pct, 0.0), 100.0)
    end_pct = min(max(end_pct, 0.0), 100.0)
    if start_pct > end_pct:
        start_pct, end_pct = end_pct, start_pct

    stamps: List[float] = []
    for data in series:
        for idx in _index_window(len(data), start_pct, end_pct):
            stamps.append(data[idx][0])
    if not stamps:
        return None
    return ZoomRange(
        start=from_epoch_ms(min(stamps)),
        end=from_epoch_ms(max(stamps)),
    )


class ZoomSynchronizer:
    """Two states: ``idle`` and ``debouncing``.

    Every slider event (re)starts the timer; when it fires the latest slider
    position is mapped onto the attached overview series and ``on_zoom`` is
    called once with the resulting :class:`ZoomRange`.
    """

    def __init__(
        self,
        on_zoom: Callable[[ZoomRange], Any],
        *,
        debounce_s: float = DEBOUNCE_SECONDS,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.on_zoom = on_zoom
        self.debounce_s = debounce_s
        self.scheduler = scheduler or AsyncioScheduler()
        self._series: List[List[List[Any]]] = []
        self._fraction = (0.0, 100.0)
        self._handle: Optional[TimerHandle] = None
        self._tasks: Set[asyncio.Future] = set()
        self.emitted = 0

    @property
    def state(self) -> str:
        return DEBOUNCING if self._handle is not None else IDLE

    @property
    def fraction(self) -> tuple:
        return self._fraction

    def attach(self, overview: Optional[ChartSpec]) -> None:
        """Track the series currently plotted in the overview."""
        self._series = overview_series(overview)

    def on_slider(self, start_pct: float, end_pct: float) -> None:
        self._fraction = (float(start_pct), float(end_pct))
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self.scheduler.call_later(self.debounce_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> Optional[ZoomRange]:
        """Fire a pending emission immediately."""
        if self._handle is None:
            return None
        self._handle.cancel()
        return self._fire()

    def _fire(self) -> Optional[ZoomRange]:
        self._handle = None
        zoom = visible_range(self._series, *self._fraction)
        if zoom is None:
            LOGGER.debug("Slider window %s holds no overview points; nothing emitted", self._fraction)
            return None
        self.emitted += 1
        LOGGER.info("Zoom range %s -> %s", zoom.start.isoformat(), zoom.end.isoformat())
        result = self.on_zoom(zoom)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
        return zoom

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Zoom handler failed: %s", exc, exc_info=exc)
