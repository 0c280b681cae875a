from __future__ import annotations

import math
from typing import Any

import numpy as np

from filmsim_approx.imaging import as_rgb8, resize_bilinear

from .types import RenderOptions


MIN_RESOLUTION_SCALE = 0.1
MAX_RESOLUTION_SCALE = 1.0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_render_dimensions(source_width: int, source_height: int, resolution_scale: float) -> tuple[int, int]:
    scale = min(max(float(resolution_scale), MIN_RESOLUTION_SCALE), MAX_RESOLUTION_SCALE)
    return (
        max(1, _round_half_up(source_width * scale)),
        max(1, _round_half_up(source_height * scale)),
    )


def prepare_source(source: Any, options: RenderOptions | None) -> np.ndarray:
    """Source as uint8 RGB, resampled to the destination size implied by options."""

    arr = as_rgb8(source)
    scale = (options or RenderOptions()).resolution_scale
    width, height = compute_render_dimensions(arr.shape[1], arr.shape[0], scale)
    return resize_bilinear(arr, width, height)
