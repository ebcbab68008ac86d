from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .colors import round_half_up
from .config import DEFAULT_MAX_PROCESSING_SIDE


@dataclass(frozen=True)
class WorkingMeta:
    """Metadata required to map working-resolution outputs back to original image space."""

    orig_h: int
    orig_w: int
    work_h: int
    work_w: int
    scale: float

    @property
    def downscaled(self) -> bool:
        return self.scale < 1.0


def load_rgba(path: str) -> np.ndarray:
    """
    Load an image as RGBA uint8 ndarray of shape (H, W, 4).
    """
    try:
        img = Image.open(path)
        img.load()
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Image not found: {path}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not decode image: {path}") from e
    return pil_to_rgba(img)


def pil_to_rgba(img: Image.Image) -> np.ndarray:
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    validate_pixels(arr)
    return arr


def validate_pixels(pixels: np.ndarray) -> None:
    """
    Reject buffers the pipeline cannot process (precondition, not a segmentation failure).
    """
    if not isinstance(pixels, np.ndarray):
        raise ValueError(f"Expected numpy RGBA buffer, got {type(pixels).__name__}")
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValueError(f"Expected RGBA image (H,W,4), got shape={pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected uint8 pixels, got dtype={pixels.dtype}")
    h, w = pixels.shape[:2]
    if h <= 0 or w <= 0:
        raise ValueError(f"Invalid image size: {(h, w)}")


def to_working_resolution(
    pixels: np.ndarray, max_side: int = DEFAULT_MAX_PROCESSING_SIDE
) -> Tuple[np.ndarray, WorkingMeta]:
    """
    Downscale so the longest side is at most `max_side`; never upscale.

    Returns:
      - working RGBA uint8 buffer (the input itself when no resize is needed)
      - meta: WorkingMeta with original/working sizes and scale
    """
    validate_pixels(pixels)
    if max_side <= 0:
        raise ValueError(f"max_side must be positive, got {max_side}")

    orig_h, orig_w = pixels.shape[:2]
    scale = min(1.0, float(max_side) / float(max(orig_h, orig_w)))
    if scale >= 1.0:
        return pixels, WorkingMeta(orig_h=orig_h, orig_w=orig_w, work_h=orig_h, work_w=orig_w, scale=1.0)

    work_w = max(1, round_half_up(orig_w * scale))
    work_h = max(1, round_half_up(orig_h * scale))
    working = cv2.resize(pixels, (work_w, work_h), interpolation=cv2.INTER_AREA)
    meta = WorkingMeta(orig_h=orig_h, orig_w=orig_w, work_h=work_h, work_w=work_w, scale=scale)
    return np.ascontiguousarray(working, dtype=np.uint8), meta


def meta_to_dict(meta: WorkingMeta) -> Dict[str, int | float]:
    """Convenience helper for JSON reports."""
    return {
        "orig_h": meta.orig_h,
        "orig_w": meta.orig_w,
        "work_h": meta.work_h,
        "work_w": meta.work_w,
        "scale": float(meta.scale),
    }
