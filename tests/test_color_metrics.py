from __future__ import annotations

import numpy as np
import pytest

from filmsim_approx.metrics import (
    FrameMismatchError,
    build_difference_visualization,
    compare_frames,
    delta_e_2000,
    p95,
    srgb8_to_lab,
)


# Reference pairs from Sharma, Wu & Dalal (2005).
SHARMA_PAIRS = [
    ((50.0, 2.6772, -79.7751), (50.0, 0.0, -82.7485), 2.0425),
    ((50.0, 3.1571, -77.2803), (50.0, 0.0, -82.7485), 2.8615),
    ((50.0, 2.8361, -74.0200), (50.0, 0.0, -82.7485), 3.4412),
    ((50.0, 0.0, 0.0), (50.0, -1.0, 2.0), 2.3669),
    ((50.0, -1.0, 2.0), (50.0, 0.0, 0.0), 2.3669),
    ((50.0, 2.49, -0.001), (50.0, -2.49, 0.0009), 7.1792),
    ((50.0, 2.5, 0.0), (73.0, 25.0, -18.0), 27.1492),
    ((60.2574, -34.0099, 36.2677), (60.4626, -34.1751, 39.4387), 1.2644),
    ((2.0776, 0.0795, -1.1350), (0.9033, -0.0636, -0.5514), 0.9082),
]


@pytest.mark.parametrize(("lab1", "lab2", "expected"), SHARMA_PAIRS)
def test_delta_e_2000_reference_pairs(lab1, lab2, expected) -> None:
    assert float(delta_e_2000(np.array(lab1), np.array(lab2))) == pytest.approx(expected, abs=1e-4)


def test_delta_e_2000_is_symmetric_and_zero_on_identity() -> None:
    rng = np.random.default_rng(7)
    lab1 = np.column_stack([rng.uniform(0, 100, 64), rng.uniform(-80, 80, 64), rng.uniform(-80, 80, 64)])
    lab2 = np.column_stack([rng.uniform(0, 100, 64), rng.uniform(-80, 80, 64), rng.uniform(-80, 80, 64)])

    assert np.allclose(delta_e_2000(lab1, lab2), delta_e_2000(lab2, lab1))
    assert np.allclose(delta_e_2000(lab1, lab1), 0.0)


def test_white_maps_to_reference_white() -> None:
    lab, y = srgb8_to_lab(np.array([[255, 255, 255]], dtype=np.uint8))
    assert lab[0] == pytest.approx([100.0, 0.0, 0.0], abs=0.05)
    assert y[0] == pytest.approx(1.0, abs=1e-4)


def test_identical_frames_have_zero_error() -> None:
    rng = np.random.default_rng(3)
    frame = rng.integers(0, 256, size=(12, 10, 3), dtype=np.uint8)
    metrics = compare_frames(frame, frame)

    assert metrics.sample_count == 120
    assert metrics.mean_delta_e00 == 0.0
    assert metrics.p95_delta_e00 == 0.0
    assert metrics.mean_delta_e76 == 0.0
    assert metrics.luma_rmse == 0.0
    assert metrics.mean_chroma_error == 0.0
    assert metrics.mean_hue_drift_deg == 0.0
    assert metrics.mean_abs_rgb == 0.0
    assert metrics.mean_luma_candidate == metrics.mean_luma_oracle


def test_sample_stride_starts_at_origin() -> None:
    frame = np.zeros((10, 10, 3), dtype=np.uint8)
    assert compare_frames(frame, frame, sample_stride=3).sample_count == 16


def test_hue_drift_ignores_neutral_pixels() -> None:
    gray = np.full((4, 4, 3), 128, dtype=np.uint8)
    lighter = np.full((4, 4, 3), 140, dtype=np.uint8)
    metrics = compare_frames(gray, lighter)

    assert metrics.mean_hue_drift_deg == 0.0
    assert metrics.mean_delta_e00 > 0.0
    assert metrics.mean_luma_oracle > metrics.mean_luma_candidate


def test_size_mismatch_is_rejected() -> None:
    with pytest.raises(FrameMismatchError, match="dimensions mismatch"):
        compare_frames(np.zeros((4, 4, 3), np.uint8), np.zeros((4, 5, 3), np.uint8))
    with pytest.raises(FrameMismatchError):
        build_difference_visualization(np.zeros((4, 4, 3), np.uint8), np.zeros((5, 4, 3), np.uint8))


def test_p95_uses_floor_index() -> None:
    assert p95(list(range(1, 101))) == 96.0
    assert p95([3.0]) == 3.0
    assert p95([]) == 0.0


def test_difference_visualization_intensity() -> None:
    black = np.zeros((2, 2, 3), np.uint8)
    white = np.full((2, 2, 3), 255, np.uint8)

    assert not build_difference_visualization(black, black).any()
    heat = build_difference_visualization(black, white)
    assert heat[0, 0].tolist() == [255, 115, 38]
