from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from PIL import Image

from .config import ALPHA_THRESHOLD, CROP_PADDING


@dataclass(frozen=True)
class CropBounds:
    """Tight bounding box of the foreground, inclusive pixel coordinates."""

    top: int
    bottom: int
    left: int
    right: int


@dataclass(frozen=True)
class CropMeta:
    """Crop window in slice form: rows y0:y1, columns x0:x1."""

    x0: int
    y0: int
    x1: int
    y1: int


def compute_crop_bounds(matte: np.ndarray, threshold: float = ALPHA_THRESHOLD) -> Optional[CropBounds]:
    """
    Compute the tight bounding box around matte > threshold, or None if nothing qualifies.
    """
    if matte.ndim != 2:
        raise ValueError(f"Expected 2D matte, got shape={matte.shape}")
    ys, xs = np.where(matte > float(threshold))
    if ys.size == 0:
        return None
    return CropBounds(top=int(ys.min()), bottom=int(ys.max()), left=int(xs.min()), right=int(xs.max()))


def crop_with_margin(bounds: CropBounds, height: int, width: int, padding: int = CROP_PADDING) -> CropMeta:
    """
    Expand crop bounds by `padding` on every side, clamped to the buffer.
    """
    x0 = max(0, bounds.left - int(padding))
    y0 = max(0, bounds.top - int(padding))
    x1 = min(width - 1, bounds.right + int(padding)) + 1
    y1 = min(height - 1, bounds.bottom + int(padding)) + 1
    return CropMeta(x0=x0, y0=y0, x1=x1, y1=y1)


def apply_crop(pixels: np.ndarray, crop: CropMeta) -> np.ndarray:
    return pixels[crop.y0 : crop.y1, crop.x0 : crop.x1]


def crop_pixels(pixels: np.ndarray, bounds: Optional[CropBounds], padding: int = CROP_PADDING) -> np.ndarray:
    """Crop to the padded bounds; the buffer is returned untouched when there are none."""
    if bounds is None:
        return pixels
    h, w = pixels.shape[:2]
    return apply_crop(pixels, crop_with_margin(bounds, h, w, padding=padding))


def apply_matte(
    pixels: np.ndarray,
    matte: np.ndarray,
    background_color: Optional[Sequence[int]] = None,
) -> np.ndarray:
    """
    Apply a matte to an RGBA uint8 buffer, in place.

    The effective opacity is matte * source alpha. Without a background colour it becomes
    the new alpha channel; with one, the pixel is composited onto that colour and made
    fully opaque.
    """
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValueError(f"Expected RGBA image (H,W,4), got shape={pixels.shape}")
    if matte.shape != pixels.shape[:2]:
        raise ValueError(f"Matte shape {matte.shape} does not match image {pixels.shape[:2]}")

    source_alpha = pixels[..., 3].astype(np.float64) / 255.0
    m = np.clip(matte.astype(np.float64), 0.0, 1.0) * source_alpha

    if background_color is None:
        pixels[..., 3] = np.floor(255.0 * m + 0.5).astype(np.uint8)
        return pixels

    bg = np.asarray(background_color, dtype=np.float64).reshape(1, 1, 3)
    rgb = pixels[..., :3].astype(np.float64)
    blend = m[..., None]
    out = rgb * blend + bg * (1.0 - blend)
    pixels[..., :3] = np.clip(np.floor(out + 0.5), 0, 255).astype(np.uint8)
    pixels[..., 3] = 255
    return pixels


def save_rgba_png(pixels: np.ndarray, out_path: str) -> None:
    """
    Save as lossless RGBA PNG.
    """
    img = Image.fromarray(np.ascontiguousarray(pixels))
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    img.save(out_path, format="PNG", optimize=False)
