from __future__ import annotations

from typing import Annotated, Dict, Optional, Tuple

from pydantic import BaseModel, Field

from .config import DEFAULT_FEATHER_AMOUNT, DEFAULT_MAX_PROCESSING_SIDE

Channel = Annotated[int, Field(ge=0, le=255)]


class SegmentationOptions(BaseModel):
    feather_amount: int = Field(default=DEFAULT_FEATHER_AMOUNT, ge=0)
    background_color: Optional[Tuple[Channel, Channel, Channel]] = None
    auto_crop: bool = True
    max_processing_side: int = Field(default=DEFAULT_MAX_PROCESSING_SIDE, gt=0)


class CropReport(BaseModel):
    top: int
    bottom: int
    left: int
    right: int


class BackgroundReport(BaseModel):
    r: float
    g: float
    b: float
    tolerance: float
    expansion_tolerance: float


class ImageReport(BaseModel):
    """Per-image JSON emitted by the batch runner next to each output."""

    source_path: str
    output_path: str
    width: int
    height: int
    working: Dict[str, float] = Field(default_factory=dict)
    background: BackgroundReport
    crop: Optional[CropReport] = None
    timings_s: Dict[str, float] = Field(default_factory=dict)
