from __future__ import annotations

import logging
from typing import Any

import numpy as np

from filmsim_approx.engine.uniforms import Uniforms

from .base import UnsupportedBackendError
from .dimensions import prepare_source
from .grain import parallel_grain_field
from .types import PARALLEL_MODE, RenderOptions


logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("numpy",)

DISPLAY_GAMMA = 2.2
REC709_LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float64)
REC601_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float64)
ZONE_GAIN = 0.12


def smoothstep(edge0: float, edge1: float, x: np.ndarray) -> np.ndarray:
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def _mix_gray(color: np.ndarray, amount: float) -> np.ndarray:
    gray = (color @ REC601_LUMA)[..., None]
    return gray + (color - gray) * amount


def apply_film_sim_array(color: np.ndarray, film_sim_id: int) -> np.ndarray:
    """Per-simulation saturation/channel remap on linear RGB (..., 3)."""

    if film_sim_id == 1:  # velvia
        return np.power(np.maximum(_mix_gray(color, 1.35), 0.0), 0.95)
    if film_sim_id == 2:  # astia
        out = _mix_gray(color, 1.08)
        out[..., 0] *= 1.03
        out[..., 2] *= 0.98
        return out
    if film_sim_id == 3:  # classic_chrome
        out = _mix_gray(color, 0.88)
        out[..., 2] *= 0.94
        out[..., 0] *= 0.98
        return out
    if film_sim_id == 4:  # classic_neg
        out = _mix_gray(color, 0.92)
        out[..., 0] *= 1.04
        out[..., 1] *= 0.96
        return out
    if film_sim_id == 5:  # eterna
        return np.power(np.maximum(_mix_gray(color, 0.8), 0.0), 1.04)
    if film_sim_id in (6, 7):  # acros / mono
        return np.repeat((color @ REC601_LUMA)[..., None], 3, axis=-1)
    return color


def apply_color_chrome_array(color: np.ndarray, chrome_strength: float, chrome_blue_strength: float) -> np.ndarray:
    chroma = color.max(axis=-1) - color.min(axis=-1)
    luma = color @ REC709_LUMA

    saturation_mask = smoothstep(0.18, 0.72, chroma)
    tone_mask = smoothstep(0.2, 0.95, luma)
    chrome_amount = (chrome_strength * saturation_mask * tone_mask)[..., None]

    out = color * (1.0 - chrome_amount * 0.16)
    gray = (out @ REC601_LUMA)[..., None]
    out = gray + (out - gray) * (1.0 + chrome_amount * 0.24)

    blue_dominance = np.clip(out[..., 2] - np.maximum(out[..., 0], out[..., 1]), 0.0, 1.0)
    blue_amount = chrome_blue_strength * smoothstep(0.05, 0.35, blue_dominance) * saturation_mask
    out[..., 2] *= 1.0 + blue_amount * 0.25
    out[..., 0] *= 1.0 - blue_amount * 0.07
    out[..., 1] *= 1.0 - blue_amount * 0.04
    return out * (1.0 - blue_amount * 0.08)[..., None]


def decode_display(frame: np.ndarray) -> np.ndarray:
    return np.power(frame.astype(np.float64) / 255.0, DISPLAY_GAMMA)


def encode_display(color: np.ndarray) -> np.ndarray:
    encoded = np.power(np.clip(color, 0.0, 1.0), 1.0 / DISPLAY_GAMMA)
    return np.floor(encoded * 255.0 + 0.5).astype(np.uint8)


def five_tap_blur(linear: np.ndarray) -> np.ndarray:
    """Mean of centre and its four edge neighbours, clamped at the frame border."""

    padded = np.pad(linear, ((1, 1), (1, 1), (0, 0)), mode="edge")
    return (
        linear
        + padded[:-2, 1:-1]
        + padded[2:, 1:-1]
        + padded[1:-1, :-2]
        + padded[1:-1, 2:]
    ) / 5.0


class ShaderRenderer:
    """Whole-frame array program; every pixel is shaded in the same vectorized pass."""

    mode = PARALLEL_MODE

    def __init__(self, backend: str = "numpy") -> None:
        if backend not in SUPPORTED_BACKENDS:
            raise UnsupportedBackendError(
                f"parallel backend {backend!r} is not available (supported: {', '.join(SUPPORTED_BACKENDS)})"
            )
        self.backend = backend

    def render(self, source: Any, uniforms: Uniforms, options: RenderOptions | None = None) -> np.ndarray:
        frame = prepare_source(source, options)
        height, width = frame.shape[:2]
        u = uniforms

        center = decode_display(frame)
        blur = five_tap_blur(center)

        color = center + (blur - center) * u.noise_reduction
        detail = color - blur
        color = color + detail * u.clarity + detail * u.sharpness * 0.75

        color = np.clip(color * np.asarray(u.wb_multipliers, dtype=np.float64), 0.0, 1.0)

        luma = (color @ REC709_LUMA)[..., None]
        shadow_zone = 1.0 - smoothstep(0.0, 0.5, luma)
        highlight_zone = smoothstep(0.5, 1.0, luma)
        color = color - shadow_zone * u.shadow * ZONE_GAIN - highlight_zone * u.highlight * ZONE_GAIN

        color = color / (1.0 + u.dynamic_range_compression * color)
        color = _mix_gray(color, u.saturation)

        color = apply_film_sim_array(color, u.film_sim_id)
        color = apply_color_chrome_array(color, u.chrome_strength, u.chrome_blue_strength)

        if u.grain_amount > 0:
            luma_after = color @ REC709_LUMA
            grain = parallel_grain_field(width, height, u.grain_size, (u.shadow, u.highlight)) - 0.5
            weight = u.grain_amount * (0.35 + 0.65 * (1.0 - luma_after))
            color = color + (grain * weight)[..., None]

        return encode_display(color)
