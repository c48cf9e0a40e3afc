"""Sampling planner, query executor and multi-device orchestration."""

from .executor import QueryExecutor
from .orchestrator import FetchOrchestrator, LatestWins, merge_points
from .sampling import DEFAULT_POINT_BUDGET, SamplingPlan, minmax_bucket, plan

__all__ = [
    "DEFAULT_POINT_BUDGET",
    "FetchOrchestrator",
    "LatestWins",
    "QueryExecutor",
    "SamplingPlan",
    "merge_points",
    "minmax_bucket",
    "plan",
]
