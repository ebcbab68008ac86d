from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .background import BackgroundModel
from .colors import pair_distance
from .config import (
    GROW_EDGE_TOLERANCE_SCALE,
    GROW_GRADIENT_BONUS_MAX,
    GROW_GRADIENT_BONUS_SCALE,
    GROW_MAX_GRADIENT,
    GROW_MAX_PARENT_DISTANCE,
)

logger = logging.getLogger(__name__)


def admissible_pixels(pixels: np.ndarray, model: BackgroundModel, gradient: np.ndarray) -> np.ndarray:
    """
    Per-pixel half of the growth rule (bool (H, W)):
      - close enough to the model colour, with a small allowance on busy pixels
      - not on a hard edge, unless the colour is almost exactly the background
    """
    dist = model.distance(pixels)
    grad = gradient.astype(np.float64)
    threshold = model.expansion_tolerance + np.minimum(GROW_GRADIENT_BONUS_MAX, grad * GROW_GRADIENT_BONUS_SCALE)
    near_model = dist <= threshold
    soft_edge = (grad <= GROW_MAX_GRADIENT) | (dist <= model.tolerance * GROW_EDGE_TOLERANCE_SCALE)
    return near_model & soft_edge


def continuity_edges(pixels: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pairwise half of the growth rule: may the fill step between two 4-neighbours?

    Returns:
      - horizontal: bool (H, W-1), step between (y, x) and (y, x+1)
      - vertical:   bool (H-1, W), step between (y, x) and (y+1, x)
    """
    horizontal = pair_distance(pixels[:, :-1], pixels[:, 1:]) <= GROW_MAX_PARENT_DISTANCE
    vertical = pair_distance(pixels[:-1, :], pixels[1:, :]) <= GROW_MAX_PARENT_DISTANCE
    return horizontal, vertical


def _step_tables(admissible: np.ndarray, horizontal: np.ndarray, vertical: np.ndarray):
    """
    For every pixel p, whether the fill may move to its left/right/up/down neighbour n.
    Folds bounds, colour continuity and the admission of n into one lookup per direction.
    """
    h, w = admissible.shape
    left = np.zeros((h, w), dtype=bool)
    right = np.zeros((h, w), dtype=bool)
    up = np.zeros((h, w), dtype=bool)
    down = np.zeros((h, w), dtype=bool)

    left[:, 1:] = horizontal & admissible[:, :-1]
    right[:, :-1] = horizontal & admissible[:, 1:]
    up[1:, :] = vertical & admissible[:-1, :]
    down[:-1, :] = vertical & admissible[1:, :]

    return (
        left.ravel().tolist(),
        right.ravel().tolist(),
        up.ravel().tolist(),
        down.ravel().tolist(),
    )


def grow_background_region(
    pixels: np.ndarray,
    model: BackgroundModel,
    gradient: np.ndarray,
    seeds: np.ndarray,
) -> np.ndarray:
    """
    Breadth-first region growing of the background from the border seeds.

    Uses a fixed-capacity FIFO (one slot per pixel) and marks pixels on enqueue, so every
    pixel is visited at most once and no recursion is involved.

    Returns uint8 (H, W) mask, 1 = reached as background.
    """
    h, w = pixels.shape[:2]
    total = h * w

    admissible = admissible_pixels(pixels, model, gradient)
    horizontal, vertical = continuity_edges(pixels)
    can_left, can_right, can_up, can_down = _step_tables(admissible, horizontal, vertical)

    visited = bytearray(total)
    queue = [0] * total
    head = 0
    tail = 0

    for seed in np.asarray(seeds, dtype=np.int64).tolist():
        if not visited[seed]:
            visited[seed] = 1
            queue[tail] = seed
            tail += 1

    while head < tail:
        idx = queue[head]
        head += 1

        if can_left[idx] and not visited[idx - 1]:
            visited[idx - 1] = 1
            queue[tail] = idx - 1
            tail += 1
        if can_right[idx] and not visited[idx + 1]:
            visited[idx + 1] = 1
            queue[tail] = idx + 1
            tail += 1
        if can_up[idx] and not visited[idx - w]:
            visited[idx - w] = 1
            queue[tail] = idx - w
            tail += 1
        if can_down[idx] and not visited[idx + w]:
            visited[idx + w] = 1
            queue[tail] = idx + w
            tail += 1

    logger.debug("Region growing reached %d / %d pixels.", tail, total)
    return np.frombuffer(bytes(visited), dtype=np.uint8).reshape(h, w).copy()


def invert_mask(mask: np.ndarray) -> np.ndarray:
    return (mask == 0).astype(np.uint8)
