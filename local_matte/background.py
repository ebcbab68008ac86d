from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .colors import clamp, color_distance, mean_color, percentile_sorted, round_half_up
from .config import (
    BG_BIN_SHIFT,
    BG_BORDER_FRACTION,
    BG_BORDER_MAX,
    BG_BORDER_MIN,
    BG_EXPANSION_MAX,
    BG_EXPANSION_MIN,
    BG_EXPANSION_PERCENTILE,
    BG_EXPANSION_SCALE,
    BG_MIN_ALPHA,
    BG_REFINE_MIN_SAMPLES,
    BG_REFINE_RADIUS,
    BG_SAMPLES_PER_SIDE,
    BG_TOLERANCE_MAX,
    BG_TOLERANCE_MIN,
    BG_TOLERANCE_PERCENTILE,
    BG_TOLERANCE_SCALE,
    FALLBACK_BG_COLOR,
    FALLBACK_EXPANSION_TOLERANCE,
    FALLBACK_TOLERANCE,
    SEED_BORDER_FRACTION,
    SEED_FALLBACK_FRACTION,
    SEED_FALLBACK_GRADIENT_WEIGHT,
    SEED_FALLBACK_MIN_COUNT,
    SEED_MAX_GRADIENT,
)

logger = logging.getLogger(__name__)

_BINS_PER_CHANNEL = 256 >> BG_BIN_SHIFT


@dataclass(frozen=True)
class BackgroundModel:
    """Estimated background colour plus the two admission distances derived from it."""

    r: float
    g: float
    b: float
    tolerance: float
    expansion_tolerance: float

    def distance(self, rgb: np.ndarray) -> np.ndarray:
        return color_distance(rgb, self.r, self.g, self.b)


FALLBACK_MODEL = BackgroundModel(
    r=FALLBACK_BG_COLOR[0],
    g=FALLBACK_BG_COLOR[1],
    b=FALLBACK_BG_COLOR[2],
    tolerance=FALLBACK_TOLERANCE,
    expansion_tolerance=FALLBACK_EXPANSION_TOLERANCE,
)


def _sample_border(pixels: np.ndarray) -> np.ndarray:
    """
    Gather border-band samples in scan order:
      - top/bottom bands over the full width (pairs: row y, row h-1-y)
      - left/right bands over the rows between them (pairs: column x, column w-1-x)

    Pixels shared by two bands are sampled twice, which weights corners slightly.
    """
    h, w = pixels.shape[:2]
    short = min(w, h)
    border = int(clamp(round_half_up(short * BG_BORDER_FRACTION), BG_BORDER_MIN, BG_BORDER_MAX))
    step = max(1, round_half_up(short / BG_SAMPLES_PER_SIDE))

    xs = np.arange(0, w, step)
    band_rows = np.arange(0, min(border, h), step)
    yy, xx = np.meshgrid(band_rows, xs, indexing="ij")
    horizontal = np.stack([pixels[yy, xx], pixels[h - 1 - yy, xx]], axis=2).reshape(-1, 4)

    band_cols = np.arange(0, min(border, w), step)
    inner_rows = np.arange(border, h - border, step)
    xx, yy = np.meshgrid(band_cols, inner_rows, indexing="ij")
    vertical = np.stack([pixels[yy, xx], pixels[yy, w - 1 - xx]], axis=2).reshape(-1, 4)

    samples = np.concatenate([horizontal, vertical], axis=0)
    return samples[samples[:, 3] >= BG_MIN_ALPHA, :3]


def estimate_background_model(pixels: np.ndarray) -> BackgroundModel:
    """
    Estimate the background colour from the image border.

    Steps:
      1) sample the border band (skipping near-transparent pixels)
      2) 16x16x16 colour histogram -> most populous bin is the first guess
      3) keep samples close to that guess (if there are enough) and average them
      4) tolerances from the 80th / 95th percentile distance to the refined centre
    """
    samples = _sample_border(pixels)
    if samples.shape[0] == 0:
        logger.info("No opaque border samples; using fallback background model.")
        return FALLBACK_MODEL

    q = samples.astype(np.int64) >> BG_BIN_SHIFT
    keys = (q[:, 0] * _BINS_PER_CHANNEL + q[:, 1]) * _BINS_PER_CHANNEL + q[:, 2]
    n_bins = _BINS_PER_CHANNEL ** 3
    counts = np.bincount(keys, minlength=n_bins)
    # argmax returns the lowest index on ties, which keeps the choice stable.
    dominant = int(np.argmax(counts))
    members = samples[keys == dominant]
    center = mean_color(members)

    near = samples[color_distance(samples, *center) < BG_REFINE_RADIUS]
    pool = near if near.shape[0] >= BG_REFINE_MIN_SAMPLES else samples
    center = mean_color(pool)

    distances = np.sort(color_distance(pool, *center), kind="stable")
    p_tol = percentile_sorted(distances, BG_TOLERANCE_PERCENTILE)
    p_exp = percentile_sorted(distances, BG_EXPANSION_PERCENTILE)

    tolerance = clamp(max(BG_TOLERANCE_MIN, p_tol * BG_TOLERANCE_SCALE), BG_TOLERANCE_MIN, BG_TOLERANCE_MAX)
    expansion = clamp(max(BG_EXPANSION_MIN, p_exp * BG_EXPANSION_SCALE), BG_EXPANSION_MIN, BG_EXPANSION_MAX)

    model = BackgroundModel(
        r=float(center[0]),
        g=float(center[1]),
        b=float(center[2]),
        tolerance=float(tolerance),
        expansion_tolerance=float(expansion),
    )
    logger.debug(
        "Background model from %d samples (pool=%d): rgb=(%d,%d,%d) tol=%.1f exp=%.1f",
        samples.shape[0],
        pool.shape[0],
        center[0],
        center[1],
        center[2],
        model.tolerance,
        model.expansion_tolerance,
    )
    return model


def _border_indices(h: int, w: int, thickness: int) -> np.ndarray:
    """Flat indices of the seed band, in the same pairwise scan order as the border sampler."""
    rows = np.arange(min(thickness, h))
    cols = np.arange(w)
    yy, xx = np.meshgrid(rows, cols, indexing="ij")
    horizontal = np.stack([yy * w + xx, (h - 1 - yy) * w + xx], axis=2).ravel()

    band_cols = np.arange(min(thickness, w))
    inner_rows = np.arange(thickness, h - thickness)
    xx, yy = np.meshgrid(band_cols, inner_rows, indexing="ij")
    vertical = np.stack([yy * w + xx, yy * w + (w - 1 - xx)], axis=2).ravel()

    return np.concatenate([horizontal, vertical]).astype(np.int64)


def collect_border_seeds(pixels: np.ndarray, model: BackgroundModel, gradient: np.ndarray) -> np.ndarray:
    """
    Pick border pixels that confidently belong to the background.

    A candidate is a seed when it is close to the model colour AND sits on a smooth patch.
    If nothing qualifies, the best-scoring border pixels (distance + 0.2*gradient) are
    used instead so that region growing always has a starting set.

    Returns flat pixel indices (int64).
    """
    h, w = pixels.shape[:2]
    short = min(w, h)
    thickness = max(1, round_half_up(short * SEED_BORDER_FRACTION))

    idx = _border_indices(h, w, thickness)
    flat_rgb = pixels.reshape(-1, pixels.shape[2])
    dist = model.distance(flat_rgb[idx])
    grad = gradient.reshape(-1)[idx].astype(np.float64)

    is_seed = (dist <= model.tolerance) & (grad <= SEED_MAX_GRADIENT)
    if bool(is_seed.any()):
        seeds = idx[is_seed]
        logger.debug("Collected %d border seeds from %d candidates.", seeds.size, idx.size)
        return seeds

    score = dist + grad * SEED_FALLBACK_GRADIENT_WEIGHT
    order = np.argsort(score, kind="stable")
    count = max(SEED_FALLBACK_MIN_COUNT, round_half_up(short * SEED_FALLBACK_FRACTION))
    seeds = idx[order[: min(count, idx.size)]]
    logger.info("No clean border seeds; falling back to %d best-scoring border pixels.", seeds.size)
    return seeds
