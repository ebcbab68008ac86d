from __future__ import annotations

import numpy as np

from .config import LUMA_WEIGHTS


def compute_luma(pixels: np.ndarray) -> np.ndarray:
    """Rec.601 luma of an (H, W, 3+) uint8 buffer as float32 (H, W)."""
    rgb = pixels[..., :3].astype(np.float64)
    wr, wg, wb = LUMA_WEIGHTS
    return (wr * rgb[..., 0] + wg * rgb[..., 1] + wb * rgb[..., 2]).astype(np.float32)


def compute_gradient_map(pixels: np.ndarray) -> np.ndarray:
    """
    Local gradient magnitude |dL/dx| + |dL/dy| from immediate neighbours.

    Neighbour lookups are clamped to the pixel itself at the buffer edges, so edge
    pixels get a one-sided (smaller) difference instead of an error.
    """
    luma = compute_luma(pixels).astype(np.float64)
    # Edge padding == clamping the neighbour index to the pixel itself.
    padded = np.pad(luma, 1, mode="edge")
    left = padded[1:-1, :-2]
    right = padded[1:-1, 2:]
    up = padded[:-2, 1:-1]
    down = padded[2:, 1:-1]
    grad = np.abs(right - left) + np.abs(down - up)
    return grad.astype(np.float32)
