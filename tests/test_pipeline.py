from __future__ import annotations

import numpy as np
import pytest
from PIL import Image
from pydantic import ValidationError

from local_matte.contracts import SegmentationOptions
from local_matte.pipeline import build_foreground_matte, process_image, segment


def _solid(h: int, w: int, color) -> np.ndarray:
    img = np.full((h, w, 4), 255, dtype=np.uint8)
    img[..., :3] = color
    return img


def _subject_on_white(h: int = 120, w: int = 120) -> np.ndarray:
    img = _solid(h, w, (255, 255, 255))
    img[40:80, 30:90, :3] = (200, 30, 30)
    return img


def test_uniform_background_gives_empty_matte_and_no_crop():
    img = _solid(64, 80, (200, 120, 40))
    result = segment(img)
    assert result.matte.shape == (64, 80)
    assert result.matte.dtype == np.float32
    assert float(result.matte.max()) == 0.0
    assert result.crop_bounds is None
    assert (result.background_model.r, result.background_model.g, result.background_model.b) == (200.0, 120.0, 40.0)


def test_border_band_unlike_interior_leaves_interior_foreground():
    img = _solid(100, 100, (20, 20, 20))
    img[:8, :, :3] = 255
    img[-8:, :, :3] = 255
    img[:, :8, :3] = 255
    img[:, -8:, :3] = 255

    result = segment(img)
    matte = result.matte
    np.testing.assert_allclose(matte[20:80, 20:80], 1.0)
    assert float(matte[:3].max()) == 0.0
    assert float(matte[:, :3].max()) == 0.0
    assert result.crop_bounds is not None
    assert 4 <= result.crop_bounds.top <= 8
    assert 91 <= result.crop_bounds.bottom <= 95


def test_subject_on_white_is_isolated():
    result = segment(_subject_on_white())
    matte = result.matte
    np.testing.assert_allclose(matte[45:75, 35:85], 1.0)
    assert float(matte[:20].max()) == 0.0
    assert float(matte[100:].max()) == 0.0

    bounds = result.crop_bounds
    assert bounds is not None
    assert 36 <= bounds.top <= 40
    assert 79 <= bounds.bottom <= 83
    assert 26 <= bounds.left <= 30
    assert 89 <= bounds.right <= 93


def test_hole_inside_subject_is_closed():
    img = _solid(120, 120, (255, 255, 255))
    img[30:90, 30:90, :3] = (20, 60, 160)
    img[55:65, 55:65, :3] = 255  # white window enclosed by the subject
    result = segment(img)
    np.testing.assert_allclose(result.matte[55:65, 55:65], 1.0)


def test_small_off_centre_speck_is_dropped():
    img = _subject_on_white(160, 160)
    img[5:12, 140:147, :3] = (0, 0, 0)
    matte = segment(img).matte
    assert float(matte[0:20, 130:160].max()) == 0.0


def test_segmentation_is_deterministic_and_does_not_touch_input():
    rng = np.random.default_rng(3)
    img = _subject_on_white()
    img[..., :3] = np.clip(img[..., :3].astype(int) + rng.integers(-12, 13, size=(120, 120, 3)), 0, 255)
    before = img.copy()

    a = segment(img).matte
    b = segment(img).matte
    assert np.array_equal(a, b)
    assert np.array_equal(img, before)


def test_larger_feather_never_shrinks_support():
    img = _subject_on_white()
    supports = [
        int((segment(img, SegmentationOptions(feather_amount=f)).matte > 0).sum()) for f in range(0, 5)
    ]
    assert supports == sorted(supports)


def test_large_input_is_processed_at_working_resolution():
    img = _solid(200, 300, (255, 255, 255))
    img[60:140, 100:200, :3] = (10, 120, 10)
    result = segment(img, SegmentationOptions(max_processing_side=100))

    assert result.working.downscaled
    assert (result.working.work_w, result.working.work_h) == (100, 67)
    assert result.matte.shape == (200, 300)
    assert float(result.matte[100, 150]) == pytest.approx(1.0, abs=1e-4)
    assert float(result.matte[5, 5]) == 0.0


def test_busy_border_still_yields_a_matte():
    img = _solid(60, 60, (255, 255, 255))
    img[::2, :, :3] = 0  # 1px stripes everywhere: no calm border patch
    result = segment(img)
    assert result.matte.shape == (60, 60)
    assert np.all((result.matte >= 0.0) & (result.matte <= 1.0))


def test_transparent_border_uses_fallback_model():
    img = _solid(40, 40, (30, 30, 30))
    img[..., 3] = 0
    _matte, model = build_foreground_matte(img, 2)
    assert (model.r, model.tolerance, model.expansion_tolerance) == (245.0, 30.0, 42.0)


@pytest.mark.parametrize(
    "bad",
    [
        np.zeros((0, 5, 4), dtype=np.uint8),
        np.zeros((5, 5, 3), dtype=np.uint8),
        np.zeros((5, 5, 4), dtype=np.float32),
    ],
)
def test_invalid_buffers_are_rejected(bad):
    with pytest.raises(ValueError):
        segment(bad)


def test_options_are_validated():
    with pytest.raises(ValidationError):
        SegmentationOptions(feather_amount=-1)
    with pytest.raises(ValidationError):
        SegmentationOptions(max_processing_side=0)
    with pytest.raises(ValidationError):
        SegmentationOptions(background_color=(0, 0, 300))
    assert SegmentationOptions().feather_amount == 2


def test_process_image_writes_cropped_rgba_png(tmp_path):
    src = tmp_path / "in.png"
    Image.fromarray(_subject_on_white()).save(src)
    out = tmp_path / "out" / "res.png"

    timings, result = process_image(str(src), str(out))
    assert timings.total_s >= timings.segment_s >= 0.0
    assert result.crop_bounds is not None

    with Image.open(out) as img:
        assert img.mode == "RGBA"
        arr = np.array(img)
    # 40x60 subject plus the feathered edge and 10px margin on each side
    assert arr.shape[0] < 120 and arr.shape[1] < 120
    assert arr.shape[0] >= 60 and arr.shape[1] >= 80
    assert arr[arr.shape[0] // 2, arr.shape[1] // 2, 3] == 255
    assert arr[0, 0, 3] == 0


def test_process_image_composites_without_crop(tmp_path):
    src = tmp_path / "in.png"
    Image.fromarray(_subject_on_white()).save(src)
    out = tmp_path / "res.png"

    options = SegmentationOptions(background_color=(0, 0, 255), auto_crop=False)
    _timings, result = process_image(str(src), str(out), options)
    assert result.crop_bounds is None

    with Image.open(out) as img:
        arr = np.array(img.convert("RGBA"))
    assert arr.shape == (120, 120, 4)
    assert np.all(arr[..., 3] == 255)
    assert arr[0, 0].tolist() == [0, 0, 255, 255]
    assert arr[60, 60].tolist() == [200, 30, 30, 255]


def test_process_image_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        process_image(str(tmp_path / "nope.png"), str(tmp_path / "o.png"))


def test_process_image_undecodable_file(tmp_path):
    src = tmp_path / "broken.png"
    src.write_bytes(b"definitely not a png")
    with pytest.raises(ValueError, match="broken.png"):
        process_image(str(src), str(tmp_path / "o.png"))
