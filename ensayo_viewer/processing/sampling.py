"""Point-budget planning and decimation."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd

from ..errors import InvalidArgument

DEFAULT_POINT_BUDGET = 10000


@dataclass(frozen=True)
class SamplingPlan:
    total_count: int
    point_budget: int
    stride: int
    uses_full_scan: bool


def plan(total_count: int, point_budget: int) -> SamplingPlan:
    """Decide between returning every row and keeping every ``stride``-th row.

    ``uses_full_scan`` holds exactly when ``total_count <= point_budget``;
    otherwise ``stride = ceil(total_count / point_budget)``.
    """
    if point_budget < 1:
        raise InvalidArgument(f"point budget must be at least 1, got {point_budget}")
    if total_count < 0:
        raise InvalidArgument(f"row count cannot be negative, got {total_count}")
    if total_count <= point_budget:
        return SamplingPlan(total_count, point_budget, 1, True)
    stride = math.ceil(total_count / point_budget)
    return SamplingPlan(total_count, point_budget, stride, False)


def minmax_bucket(frame: pd.DataFrame, channels: Sequence[str], point_budget: int) -> pd.DataFrame:
    """Amplitude-preserving reduction to at most ``point_budget`` rows.

    Rows are split into consecutive buckets; each bucket keeps its first and
    last row plus the rows holding the minimum and maximum of every channel,
    so short spikes between stride samples stay visible.
    """
    n = len(frame)
    if n <= point_budget:
        return frame.reset_index(drop=True)
    per_bucket = 2 + 2 * len(channels)
    if per_bucket > point_budget:
        stride = math.ceil(n / point_budget)
        return frame.iloc[::stride].head(point_budget).reset_index(drop=True)

    num_buckets = max(1, point_budget // per_bucket)
    bucket_size = math.ceil(n / num_buckets)
    values = frame.loc[:, list(channels)].to_numpy(dtype="float64")

    keep: List[int] = []
    for start in range(0, n, bucket_size):
        stop = min(n, start + bucket_size)
        indices = {start, stop - 1}
        block = values[start:stop]
        for column in range(block.shape[1]):
            col = block[:, column]
            if np.isnan(col).all():
                continue
            indices.add(start + int(np.nanargmin(col)))
            indices.add(start + int(np.nanargmax(col)))
        keep.extend(sorted(indices))
    return frame.iloc[keep].reset_index(drop=True)
