"""Overview/detail view state driven by selection changes and zoom events."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union

from ensayo_viewer.errors import ViewerError
from ensayo_viewer.infrastructure.registry import ChannelRegistry, SelectionItem
from ensayo_viewer.models import DataPoint, DataResponse, TimeRange, ZoomRange
from ensayo_viewer.processing.orchestrator import FetchOrchestrator, LatestWins
from ensayo_viewer.processing.sampling import DEFAULT_POINT_BUDGET

from .charts import AXIS_OFFSET_PX, ChartSpec, build_detail, build_overview, overview_series
from .zoom import DEBOUNCE_SECONDS, Scheduler, ZoomSynchronizer, visible_range

LOGGER = logging.getLogger(__name__)


class ChartSession:
    """One operator's dual view.

    Every fetch takes a token from the view's :class:`LatestWins` guard, so a
    response that resolves after a newer one is dropped. A failed fetch keeps
    the previous view and records both ``error`` and ``exception``.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        registry: ChannelRegistry,
        *,
        point_budget: int = DEFAULT_POINT_BUDGET,
        axis_offset: int = AXIS_OFFSET_PX,
        debounce_s: float = DEBOUNCE_SECONDS,
        scheduler: Optional[Scheduler] = None,
        title: str = "Time Series Chart",
    ) -> None:
        self.orchestrator = orchestrator
        self.registry = registry
        self.point_budget = point_budget
        self.axis_offset = axis_offset
        self.title = title
        self.selection: List[SelectionItem] = []
        self.test_id: Optional[str] = None
        self.window: Optional[Union[ZoomRange, TimeRange]] = None
        self.overview_points: List[DataPoint] = []
        self.detail_points: List[DataPoint] = []
        self.overview_spec: ChartSpec = {}
        self.detail_spec: ChartSpec = {}
        self.metadata: Optional[DataResponse] = None
        self.error: Optional[str] = None
        self.exception: Optional[ViewerError] = None
        self._overview_guard = LatestWins()
        self._detail_guard = LatestWins()
        self._last_action = None
        self.synchronizer = ZoomSynchronizer(self.zoom, debounce_s=debounce_s, scheduler=scheduler)

    def _render_overview(self, zoom_start: float = 0.0, zoom_end: float = 100.0) -> None:
        self.overview_spec = build_overview(
            self.overview_points,
            self.registry,
            self.selection,
            zoom_start=zoom_start,
            zoom_end=zoom_end,
            axis_offset=self.axis_offset,
        )
        self.synchronizer.attach(self.overview_spec)

    def _render_detail(self) -> None:
        self.detail_spec = build_detail(
            self.detail_points,
            self.registry,
            self.selection,
            title=self.title,
            axis_offset=self.axis_offset,
        )

    async def _fetch(self, guard: LatestWins, time_range: Optional[TimeRange]) -> Optional[DataResponse]:
        token = guard.next_token()
        try:
            response = await self.orchestrator.fetch(self.selection, self.test_id, time_range, self.point_budget)
        except ViewerError as exc:
            if guard.accept(token):
                LOGGER.error("Fetch failed, keeping previous view: %s", exc)
                self.error = str(exc)
                self.exception = exc
            return None
        if not guard.accept(token):
            LOGGER.debug("Discarding stale response #%d", token)
            return None
        self.error = None
        self.exception = None
        self.metadata = response
        return response

    async def load(self, selection: Sequence[SelectionItem], test_id: Optional[str]) -> bool:
        """New selection or test: refresh both views over the full range."""
        self.selection = list(selection)
        self.test_id = test_id
        self.window = None
        self._last_action = ("load",)
        self.synchronizer.cancel()
        if not test_id or not self.selection:
            self._overview_guard.next_token()
            self._detail_guard.next_token()
            self.overview_points, self.detail_points = [], []
            self.overview_spec, self.detail_spec = {}, {}
            self.metadata = None
            self.error = None
            self.exception = None
            return True

        detail_token = self._detail_guard.next_token()
        response = await self._fetch(self._overview_guard, None)
        if response is None:
            return False
        self.overview_points = response.points
        self._render_overview()
        if self._detail_guard.accept(detail_token):
            self.detail_points = response.points
            self._render_detail()
        return True

    async def zoom(self, zoom_range: Union[ZoomRange, TimeRange]) -> bool:
        """Refetch the detail view for ``zoom_range``; the overview is untouched."""
        self.window = zoom_range
        self._last_action = ("zoom", zoom_range)
        if not self.test_id or not self.selection:
            self.detail_points, self.detail_spec = [], {}
            return True
        response = await self._fetch(self._detail_guard, _as_time_range(zoom_range))
        if response is None:
            return False
        self.detail_points = response.points
        self._render_detail()
        return True

    async def reset_overview(self) -> bool:
        """Reload the overview over the full range and put the slider back to 0-100."""
        self._last_action = ("reset",)
        if not self.test_id or not self.selection:
            self.overview_points, self.overview_spec = [], {}
            return True
        response = await self._fetch(self._overview_guard, None)
        if response is None:
            return False
        self.overview_points = response.points
        self._render_overview(0.0, 100.0)
        return True

    def apply_slider(self, start_pct: float, end_pct: float) -> Optional[ZoomRange]:
        """Move the overview slider and return the span it leaves visible."""
        self._render_overview(start_pct, end_pct)
        return visible_range(overview_series(self.overview_spec), start_pct, end_pct)

    def copy_detail_to_overview(self) -> None:
        self.overview_points = list(self.detail_points)
        self._render_overview()

    async def retry(self) -> bool:
        if self._last_action is None:
            return False
        kind = self._last_action[0]
        if kind == "zoom":
            return await self.zoom(self._last_action[1])
        if kind == "reset":
            return await self.reset_overview()
        return await self.load(self.selection, self.test_id)


def _as_time_range(window: Union[ZoomRange, TimeRange]) -> TimeRange:
    if isinstance(window, ZoomRange):
        return window.as_time_range()
    return window
