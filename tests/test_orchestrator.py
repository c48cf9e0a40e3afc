"""Multi-device fetch orchestration tests."""

from __future__ import annotations

import asyncio

import pandas as pd
import pytest

from ensayo_viewer.errors import AmbiguousChannel, InvalidArgument, SourceUnavailable
from ensayo_viewer.infrastructure.registry import Channel, ChannelRef, ChannelRegistry
from ensayo_viewer.infrastructure.row_source import FrameRowSource
from ensayo_viewer.processing.executor import QueryExecutor
from ensayo_viewer.processing.orchestrator import FetchOrchestrator, LatestWins, merge_points
from tests.conftest import get_test_logger
from tests.helpers import (
    BASE_TIME,
    CountingRowSource,
    FailingRowSource,
    build_device_frame,
    build_points,
    build_response,
)

logger = get_test_logger(__name__)
logger.info("Starting tests for orchestrator module")


def _seconds(*values: float) -> list:
    return [BASE_TIME + pd.Timedelta(seconds=value) for value in values]


def test_points_from_two_devices_are_interleaved(orchestrator: FetchOrchestrator) -> None:
    """Readings from both devices are merged into one ascending sequence."""
    response = asyncio.run(orchestrator.fetch(["temp", "pres"], "T1", None, 100))

    stamps = [point.timestamp for point in response.points]
    assert len(stamps) == 80
    assert stamps == sorted(stamps)
    assert "temp" in response.points[0].values
    assert "pres" in response.points[1].values
    assert set(response.devices) == {"fuente_valores", "camara_valores"}
    assert response.warnings == []


def test_merge_is_stable_for_equal_timestamps() -> None:
    """Ties keep the order in which the devices were queried."""
    first = build_response(build_points(_seconds(0, 2), "a"))
    second = build_response(build_points(_seconds(1, 2, 3), "b"))

    merged = merge_points([first, second])

    assert [point.timestamp for point in merged] == [s.to_pydatetime() for s in _seconds(0, 1, 2, 2, 3)]
    assert list(merged[2].values) == ["a"]
    assert list(merged[3].values) == ["b"]


def test_one_failing_device_fails_the_whole_fetch(registry, frame_sources) -> None:
    """No partial result is returned when any device fails."""
    sources = dict(frame_sources)
    sources["camara_valores"] = FailingRowSource("camara_valores")
    orchestrator = FetchOrchestrator(registry, QueryExecutor(sources))

    with pytest.raises(SourceUnavailable) as excinfo:
        asyncio.run(orchestrator.fetch(["temp", "pres"], "T1", None, 100))
    assert excinfo.value.device == "camara_valores"


def test_selection_is_validated_before_io(registry, frame_sources) -> None:
    """Empty selections and test ids never reach a row source."""
    counting = {device: CountingRowSource(source) for device, source in frame_sources.items()}
    orchestrator = FetchOrchestrator(registry, QueryExecutor(counting))

    with pytest.raises(InvalidArgument):
        asyncio.run(orchestrator.fetch([], "T1"))
    with pytest.raises(InvalidArgument):
        asyncio.run(orchestrator.fetch(["temp"], ""))
    with pytest.raises(InvalidArgument):
        asyncio.run(orchestrator.fetch(["nope"], "T1"))
    assert all(source.calls == [] for source in counting.values())


def test_single_device_selection_only_queries_that_device(registry, frame_sources) -> None:
    """Devices without selected channels are not queried."""
    counting = {device: CountingRowSource(source) for device, source in frame_sources.items()}
    orchestrator = FetchOrchestrator(registry, QueryExecutor(counting))

    response = asyncio.run(orchestrator.fetch(["hum", "temp"], "T1", None, 100))

    assert counting["camara_valores"].calls == []
    assert response.total_points == 40
    assert set(response.points[0].values) == {"hum", "temp"}


def _shared_registry() -> ChannelRegistry:
    return ChannelRegistry(
        {
            "fuente_valores": [Channel("temp", "Temperatura", "°C")],
            "camara_valores": [Channel("temp", "Temperatura cámara", "°C"), Channel("pres", "Presión", "hPa")],
        }
    )


def _shared_sources() -> dict:
    return {
        "fuente_valores": FrameRowSource("fuente_valores", build_device_frame("T1", 10, ["temp"])),
        "camara_valores": FrameRowSource("camara_valores", build_device_frame("T1", 10, ["temp", "pres"])),
    }


def test_ambiguous_name_resolves_to_first_device() -> None:
    """A bare name present in two devices uses the first and says so."""
    orchestrator = FetchOrchestrator(_shared_registry(), QueryExecutor(_shared_sources()))

    response = asyncio.run(orchestrator.fetch(["temp"], "T1"))

    assert list(response.devices) == ["fuente_valores"]
    assert len(response.warnings) == 1
    assert "fuente_valores" in response.warnings[0]


def test_ambiguous_name_strict_mode() -> None:
    """Strict resolution refuses ambiguous bare names."""
    orchestrator = FetchOrchestrator(_shared_registry(), QueryExecutor(_shared_sources()), strict=True)
    with pytest.raises(AmbiguousChannel) as excinfo:
        asyncio.run(orchestrator.fetch(["temp"], "T1"))
    assert excinfo.value.devices == ["fuente_valores", "camara_valores"]


def test_qualified_selection_picks_the_device() -> None:
    """``device:channel`` and ChannelRef selections bypass first-match lookup."""
    orchestrator = FetchOrchestrator(_shared_registry(), QueryExecutor(_shared_sources()), strict=True)

    by_text = asyncio.run(orchestrator.fetch(["camara_valores:temp"], "T1"))
    by_ref = asyncio.run(orchestrator.fetch([ChannelRef("camara_valores", "temp")], "T1"))

    assert list(by_text.devices) == ["camara_valores"]
    assert by_text.warnings == []
    assert by_text.to_payload() == by_ref.to_payload()


def test_same_name_from_two_devices_is_rejected() -> None:
    """One channel name cannot be plotted twice in the same view."""
    orchestrator = FetchOrchestrator(_shared_registry(), QueryExecutor(_shared_sources()))
    with pytest.raises(InvalidArgument):
        asyncio.run(orchestrator.fetch(["fuente_valores:temp", "camara_valores:temp"], "T1"))


def test_latest_wins_discards_older_tokens() -> None:
    """A response resolving after a newer one is not applied."""
    guard = LatestWins()
    older = guard.next_token()
    newer = guard.next_token()

    assert guard.latest_issued == newer
    assert guard.accept(newer)
    assert not guard.accept(older)
    assert guard.accept(guard.next_token())


def test_repeated_fetch_returns_identical_payload(orchestrator: FetchOrchestrator) -> None:
    """The same decimated two-device request yields the same answer twice."""
    first = asyncio.run(orchestrator.fetch(["temp", "pres"], "T1", None, 10))
    second = asyncio.run(orchestrator.fetch(["temp", "pres"], "T1", None, 10))

    assert first.sampling_rate == 4
    assert first.returned_points == 10
    assert len(first.points) == 20
    assert first.to_payload() == second.to_payload()


def test_minmax_merge_with_shared_timestamps() -> None:
    """Min/max buckets from devices sharing timestamps merge stably and repeatably."""
    registry = ChannelRegistry(
        {
            "fuente_valores": [Channel("temp", "Temperatura", "°C")],
            "camara_valores": [Channel("pres", "Presión", "hPa")],
        }
    )
    sources = {
        "fuente_valores": FrameRowSource("fuente_valores", build_device_frame("T1", 60, ["temp"])),
        "camara_valores": FrameRowSource("camara_valores", build_device_frame("T1", 60, ["pres"])),
    }
    orchestrator = FetchOrchestrator(registry, QueryExecutor(sources))

    first = asyncio.run(orchestrator.fetch(["temp", "pres"], "T1", None, 12, method="minmax"))
    second = asyncio.run(orchestrator.fetch(["temp", "pres"], "T1", None, 12, method="minmax"))

    stamps = [point.timestamp for point in first.points]
    assert stamps == sorted(stamps)
    assert all(meta.returned_points <= 12 for meta in first.devices.values())
    ties = [(a, b) for a, b in zip(first.points, first.points[1:]) if a.timestamp == b.timestamp]
    assert ties
    assert all("temp" in a.values and "pres" in b.values for a, b in ties)
    assert first.to_payload() == second.to_payload()
