"""Fan a channel selection out to its devices and merge the answers."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import InvalidArgument
from ..infrastructure.registry import ChannelRegistry, SelectionItem
from ..models import DataPoint, DataResponse, TimeRange
from .executor import QueryExecutor
from .sampling import DEFAULT_POINT_BUDGET

LOGGER = logging.getLogger(__name__)


class LatestWins:
    """Monotonic request tokens; a response is applied only if nothing newer was."""

    def __init__(self) -> None:
        self._issued = 0
        self._applied = 0

    def next_token(self) -> int:
        self._issued += 1
        return self._issued

    @property
    def latest_issued(self) -> int:
        return self._issued

    def accept(self, token: int) -> bool:
        if token < self._applied:
            return False
        self._applied = token
        return True


def merge_points(responses: Iterable[DataResponse]) -> List[DataPoint]:
    """Concatenate in call order, then stable-sort by timestamp."""
    merged: List[DataPoint] = []
    for response in responses:
        merged.extend(response.points)
    return sorted(merged, key=lambda point: point.timestamp)


class FetchOrchestrator:
    """Multi-device ``getData``.

    Bare channel names resolve to the first device in registry order that
    provides them; the choice is logged and reported in ``warnings``.
    ``device:channel`` selections skip that lookup. With ``strict=True`` an
    ambiguous bare name raises :class:`AmbiguousChannel` instead.
    """

    def __init__(self, registry: ChannelRegistry, executor: QueryExecutor, *, strict: bool = False) -> None:
        self.registry = registry
        self.executor = executor
        self.strict = strict

    def partition(self, selection: Iterable[SelectionItem]) -> Tuple[Dict[str, List[str]], List[str]]:
        groups: Dict[str, List[str]] = {}
        owners: Dict[str, str] = {}
        warnings: List[str] = []
        for item in selection:
            ref, others = self.registry.resolve(item, strict=self.strict)
            if others:
                message = (
                    f"Channel '{ref.name}' exists in {', '.join([ref.device, *others])}; "
                    f"using {ref.device}"
                )
                LOGGER.warning(message)
                warnings.append(message)
            owner = owners.setdefault(ref.name, ref.device)
            if owner != ref.device:
                raise InvalidArgument(
                    f"Channel '{ref.name}' selected from both {owner} and {ref.device}"
                )
            names = groups.setdefault(ref.device, [])
            if ref.name not in names:
                names.append(ref.name)
        ordered = {device: groups[device] for device in self.registry.devices if device in groups}
        return ordered, warnings

    async def fetch(
        self,
        selection: Iterable[SelectionItem],
        test_id: str,
        time_range: Optional[TimeRange] = None,
        point_budget: int = DEFAULT_POINT_BUDGET,
        *,
        method: Optional[str] = None,
    ) -> DataResponse:
        items = list(selection)
        if not test_id or not str(test_id).strip():
            raise InvalidArgument("A test id is required")
        if not items:
            raise InvalidArgument("At least one channel must be selected")
        if time_range is not None and time_range.start and time_range.end and time_range.start > time_range.end:
            raise InvalidArgument("Time range start must not be after its end")
        groups, warnings = self.partition(items)

        devices = list(groups)
        results = await asyncio.gather(
            *[
                self.executor.execute(device, test_id, groups[device], time_range, point_budget, method=method)
                for device in devices
            ],
            return_exceptions=True,
        )
        failures = [(device, result) for device, result in zip(devices, results) if isinstance(result, BaseException)]
        if failures:
            for device, error in failures:
                LOGGER.error("Fetch for device %s failed: %s", device, error)
            raise failures[0][1]

        responses: List[DataResponse] = list(results)
        points = merge_points(responses)
        representative = responses[0]
        return DataResponse(
            points=points,
            total_points=representative.total_points,
            returned_points=representative.returned_points,
            sampling_rate=representative.sampling_rate,
            time_range=time_range or TimeRange(),
            devices={name: meta for response in responses for name, meta in response.devices.items()},
            warnings=warnings,
        )
