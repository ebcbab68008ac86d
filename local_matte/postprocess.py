from __future__ import annotations

import logging

import cv2
import numpy as np

from .colors import round_half_up
from .config import (
    CENTER_SCORE_BONUS,
    CENTER_WINDOW,
    COMPONENT_MIN_AREA,
    COMPONENT_MIN_AREA_FRACTION,
    COMPONENT_SECONDARY_FRACTION,
    MORPH_RADIUS,
    SOFTEN_LOW,
    SOFTEN_RANGE,
)
from .preprocess import WorkingMeta

logger = logging.getLogger(__name__)


def _check_mask(mask: np.ndarray) -> None:
    if mask.ndim != 2:
        raise ValueError(f"Expected 2D mask, got shape={mask.shape}")


def _center_window(h: int, w: int):
    lo, hi = CENTER_WINDOW
    x0, x1 = int(np.floor(w * lo)), int(np.ceil(w * hi))
    y0, y1 = int(np.floor(h * lo)), int(np.ceil(h * hi))
    return x0, x1, y0, y1


def keep_main_components(mask: np.ndarray) -> np.ndarray:
    """
    Keep the main subject and drop background noise blobs.

    The "best" 4-connected component maximises area, with a bonus of 20% of the image
    for components reaching into the central 50%x50% window. Other components are kept
    only if they also reach the centre and are not tiny relative to the best one
    (e.g. a detached limb).
    """
    _check_mask(mask)
    h, w = mask.shape
    total = h * w
    binary = (mask > 0).astype(np.uint8)

    num_labels, labels, stats, _centroids = cv2.connectedComponentsWithStats(binary, connectivity=4)
    n_components = num_labels - 1
    if n_components <= 1:
        return mask

    # label 0 is background
    areas = stats[1:, cv2.CC_STAT_AREA].astype(np.int64)

    x0, x1, y0, y1 = _center_window(h, w)
    center_labels = np.unique(labels[y0 : y1 + 1, x0 : x1 + 1])
    touches_center = np.zeros(num_labels, dtype=bool)
    touches_center[center_labels] = True
    touches_center = touches_center[1:]

    # Rank ties by the raster position of each component's first pixel.
    flat = labels.ravel()
    found, first_index = np.unique(flat, return_index=True)
    first_pixel = np.empty(num_labels, dtype=np.int64)
    first_pixel[found] = first_index
    scan_order = np.argsort(first_pixel[1:], kind="stable")

    scores = areas + np.where(touches_center, total * CENTER_SCORE_BONUS, 0.0)
    best = int(scan_order[0])
    for comp in scan_order[1:]:
        if scores[comp] > scores[best]:
            best = int(comp)

    min_area = max(COMPONENT_MIN_AREA, round_half_up(total * COMPONENT_MIN_AREA_FRACTION))
    secondary_min = max(min_area, round_half_up(int(areas[best]) * COMPONENT_SECONDARY_FRACTION))

    keep = np.zeros(num_labels, dtype=bool)
    keep[best + 1] = True
    keep[1:] |= touches_center & (areas >= secondary_min)

    logger.debug(
        "Component filter: %d components, best area=%d, kept=%d",
        n_components,
        int(areas[best]),
        int(keep.sum()),
    )
    return keep[labels].astype(np.uint8)


def fill_mask_holes(mask: np.ndarray) -> np.ndarray:
    """
    Close background pockets enclosed by the foreground.

    Background cells 4-connected to the canvas border stay background; every other
    background cell is flipped to foreground.
    """
    _check_mask(mask)
    background = (mask == 0).astype(np.uint8)
    if not background.any():
        return mask.astype(np.uint8, copy=True)

    _n, labels = cv2.connectedComponents(background, connectivity=4)
    border_labels = np.unique(
        np.concatenate([labels[0, :], labels[-1, :], labels[:, 0], labels[:, -1]])
    )
    reachable = np.zeros(int(labels.max()) + 1, dtype=bool)
    reachable[border_labels] = True
    reachable[0] = True  # label 0 == foreground cells

    out = mask.astype(np.uint8, copy=True)
    out[~reachable[labels]] = 1
    return out


def _square_kernel(radius: int) -> np.ndarray:
    k = 2 * int(radius) + 1
    return np.ones((k, k), np.uint8)


def erode_binary(mask: np.ndarray, radius: int = MORPH_RADIUS) -> np.ndarray:
    """
    Binary erosion over a (2r+1)^2 square clamped to the image.

    Replicated borders keep out-of-bounds cells from counting as background.
    """
    _check_mask(mask)
    if radius <= 0:
        return mask.astype(np.uint8, copy=True)
    return cv2.erode(mask.astype(np.uint8), _square_kernel(radius), borderType=cv2.BORDER_REPLICATE)


def dilate_binary(mask: np.ndarray, radius: int = MORPH_RADIUS) -> np.ndarray:
    """Binary dilation over a (2r+1)^2 square clamped to the image."""
    _check_mask(mask)
    if radius <= 0:
        return mask.astype(np.uint8, copy=True)
    return cv2.dilate(mask.astype(np.uint8), _square_kernel(radius), borderType=cv2.BORDER_REPLICATE)


def clean_mask(mask: np.ndarray, radius: int = MORPH_RADIUS) -> np.ndarray:
    """
    Stabilise the contour:
      - opening (erode -> dilate) removes thin protrusions and specks
      - closing (dilate -> erode) fills small gaps
    """
    opened = dilate_binary(erode_binary(mask, radius), radius)
    return erode_binary(dilate_binary(opened, radius), radius)


def _window_counts(n: int, radius: int) -> np.ndarray:
    idx = np.arange(n)
    return (np.minimum(idx + radius, n - 1) - np.maximum(idx - radius, 0) + 1).astype(np.float32)


def box_blur(values: np.ndarray, radius: int) -> np.ndarray:
    """
    Separable box blur (horizontal pass, then vertical pass).

    The window is truncated at the image bounds and each output is the mean over the
    in-bounds taps only, so edges are not darkened by an implicit zero border.
    """
    _check_mask(values)
    h, w = values.shape
    k = 2 * int(radius) + 1
    v = values.astype(np.float32)

    sums = cv2.boxFilter(v, -1, (k, 1), normalize=False, borderType=cv2.BORDER_CONSTANT)
    horizontal = sums / _window_counts(w, radius)[None, :]

    sums = cv2.boxFilter(horizontal, -1, (1, k), normalize=False, borderType=cv2.BORDER_CONSTANT)
    return (sums / _window_counts(h, radius)[:, None]).astype(np.float32)


def soften_binary_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """
    Binary mask -> continuous matte.

    Box blur, then a smoothstep remap so that a blurred value of ~0.16 lands near 0
    and ~0.88 lands near 1 (avoids a washed-out halo around the subject).
    """
    _check_mask(mask)
    m = mask.astype(np.float32)
    if radius <= 0:
        return m

    blurred = box_blur(m, radius)
    t = np.clip((blurred - SOFTEN_LOW) / SOFTEN_RANGE, 0.0, 1.0)
    return (t * t * (3.0 - 2.0 * t)).astype(np.float32)


def restore_matte_to_original(matte: np.ndarray, meta: WorkingMeta) -> np.ndarray:
    """
    Bring a working-resolution matte back to the original image size (bilinear).
    """
    _check_mask(matte)
    if matte.shape != (meta.work_h, meta.work_w):
        raise ValueError(f"Matte shape {matte.shape} does not match working size {(meta.work_h, meta.work_w)}")
    m = matte.astype(np.float32, copy=False)
    if not meta.downscaled:
        return m

    restored = cv2.resize(m, (meta.orig_w, meta.orig_h), interpolation=cv2.INTER_LINEAR)
    return np.clip(restored, 0.0, 1.0).astype(np.float32, copy=False)
