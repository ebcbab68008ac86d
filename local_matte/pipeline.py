from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .background import BackgroundModel, collect_border_seeds, estimate_background_model
from .composite import CropBounds, apply_matte, compute_crop_bounds, crop_pixels, save_rgba_png
from .config import ALPHA_THRESHOLD
from .contracts import SegmentationOptions
from .gradient import compute_gradient_map
from .postprocess import (
    clean_mask,
    fill_mask_holes,
    keep_main_components,
    restore_matte_to_original,
    soften_binary_mask,
)
from .preprocess import WorkingMeta, load_rgba, to_working_resolution, validate_pixels
from .region import grow_background_region, invert_mask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageTimings:
    load_s: float
    segment_s: float
    composite_s: float
    total_s: float


@dataclass
class SegmentationResult:
    matte: np.ndarray
    crop_bounds: Optional[CropBounds]
    background_model: BackgroundModel
    working: WorkingMeta


def build_foreground_matte(pixels: np.ndarray, feather_amount: int) -> Tuple[np.ndarray, BackgroundModel]:
    """
    Deterministic, linear heuristic segmentation at the resolution it is given:
      1) background colour model + gradient map
      2) border seeds
      3) region growing of the background, inverted to a foreground mask
      4) keep main components, fill holes, opening + closing
      5) soften into a continuous matte

    Returns:
      - matte: float32 (H, W) in [0,1]
      - the background model used
    """
    t0 = time.perf_counter()
    model = estimate_background_model(pixels)
    gradient = compute_gradient_map(pixels)
    seeds = collect_border_seeds(pixels, model, gradient)

    background = grow_background_region(pixels, model, gradient, seeds)
    foreground = invert_mask(background)
    t1 = time.perf_counter()

    foreground = keep_main_components(foreground)
    foreground = fill_mask_holes(foreground)
    foreground = clean_mask(foreground)

    radius = max(1, int(feather_amount) + 1)
    matte = soften_binary_mask(foreground, radius)
    t2 = time.perf_counter()

    logger.debug(
        "Matte built at %dx%d: grow=%.3fs refine=%.3fs (%d seeds)",
        pixels.shape[1],
        pixels.shape[0],
        t1 - t0,
        t2 - t1,
        seeds.size,
    )
    return matte, model


def segment(pixels: np.ndarray, options: Optional[SegmentationOptions] = None) -> SegmentationResult:
    """
    Full local segmentation of an RGBA buffer. The buffer is not modified.

    Large inputs are processed at `max_processing_side` and the matte is resampled back
    to the input size. Content never makes this fail; only invalid buffers raise.
    """
    if options is None:
        options = SegmentationOptions()
    validate_pixels(pixels)

    working, meta = to_working_resolution(pixels, options.max_processing_side)
    small_matte, model = build_foreground_matte(working, options.feather_amount)
    matte = restore_matte_to_original(small_matte, meta)

    bounds = compute_crop_bounds(matte, threshold=ALPHA_THRESHOLD) if options.auto_crop else None
    return SegmentationResult(matte=matte, crop_bounds=bounds, background_model=model, working=meta)


def process_image(
    image_path: str,
    out_path: str,
    options: Optional[SegmentationOptions] = None,
) -> Tuple[StageTimings, SegmentationResult]:
    """
    Load -> segment -> apply matte (alpha or solid colour) -> crop -> save PNG.
    """
    if options is None:
        options = SegmentationOptions()
    t0 = time.perf_counter()

    pixels = load_rgba(image_path)
    t_load = time.perf_counter()

    result = segment(pixels, options)
    t_seg = time.perf_counter()

    apply_matte(pixels, result.matte, options.background_color)
    out = crop_pixels(pixels, result.crop_bounds) if options.auto_crop else pixels
    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    save_rgba_png(out, out_path)
    t1 = time.perf_counter()

    timings = StageTimings(
        load_s=t_load - t0,
        segment_s=t_seg - t_load,
        composite_s=t1 - t_seg,
        total_s=t1 - t0,
    )
    return timings, result
