from __future__ import annotations

import math
from typing import Sequence, Union

import numpy as np

Number = Union[int, float]


def clamp(value: Number, lo: Number, hi: Number) -> Number:
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """
    Round to nearest integer with .5 going up (Python's round() is banker's rounding,
    which would shift band sizes and bin means on exact halves).
    """
    return int(math.floor(value + 0.5))


def color_distance(rgb: np.ndarray, r: float, g: float, b: float) -> np.ndarray:
    """
    Euclidean RGB distance from every colour in `rgb` (..., 3) to (r, g, b).

    Returns float64 with the leading shape of `rgb`.
    """
    rgb = np.asarray(rgb)
    if rgb.shape[-1] < 3:
        raise ValueError(f"Expected (..., 3) colour array, got shape={rgb.shape}")
    c = rgb[..., :3].astype(np.float64)
    ref = np.array([r, g, b], dtype=np.float64)
    return np.sqrt(np.sum((c - ref) ** 2, axis=-1))


def pair_distance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Element-wise Euclidean RGB distance between two broadcastable (..., 3+) arrays."""
    d = a[..., :3].astype(np.float64) - b[..., :3].astype(np.float64)
    return np.sqrt(np.sum(d * d, axis=-1))


def percentile_sorted(sorted_values: Sequence[float], percentile: float) -> float:
    """
    Nearest-rank style lookup into an ascending array: index floor((n-1)*p).
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    idx = int(clamp(math.floor((n - 1) * percentile), 0, n - 1))
    return float(sorted_values[idx])


def mean_color(samples: np.ndarray) -> tuple[int, int, int]:
    """Rounded mean of an (N, 3) sample array; black for an empty pool."""
    if samples.shape[0] == 0:
        return (0, 0, 0)
    sums = samples[:, :3].astype(np.int64).sum(axis=0)
    n = samples.shape[0]
    return (
        round_half_up(sums[0] / n),
        round_half_up(sums[1] / n),
        round_half_up(sums[2] / n),
    )
