from __future__ import annotations

import math
from typing import Any

import numpy as np

from filmsim_approx.engine.uniforms import Uniforms

from .dimensions import prepare_source
from .grain import scalar_grain_frequency, scalar_grain_seed
from .types import CPU_FALLBACK_MODE, RenderOptions


DISPLAY_GAMMA = 2.2
ZONE_GAIN = 0.12


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def _smoothstep(edge0: float, edge1: float, value: float) -> float:
    if edge0 == edge1:
        return 0.0 if value < edge0 else 1.0
    t = _clamp((value - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def _luma709(r: float, g: float, b: float) -> float:
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def _luma601(r: float, g: float, b: float) -> float:
    return 0.299 * r + 0.587 * g + 0.114 * b


def _around_gray(r: float, g: float, b: float, amount: float) -> tuple[float, float, float]:
    gray = _luma601(r, g, b)
    return gray + (r - gray) * amount, gray + (g - gray) * amount, gray + (b - gray) * amount


def _tone_and_color(r: float, g: float, b: float, u: Uniforms) -> tuple[float, float, float]:
    wr, wg, wb = u.wb_multipliers
    r = _clamp(r * wr, 0.0, 1.0)
    g = _clamp(g * wg, 0.0, 1.0)
    b = _clamp(b * wb, 0.0, 1.0)

    luma = _luma709(r, g, b)
    lift = (1.0 - _smoothstep(0.0, 0.5, luma)) * u.shadow * ZONE_GAIN
    lift += _smoothstep(0.5, 1.0, luma) * u.highlight * ZONE_GAIN
    r, g, b = r - lift, g - lift, b - lift

    k = u.dynamic_range_compression
    r, g, b = r / (1 + k * r), g / (1 + k * g), b / (1 + k * b)

    r, g, b = _around_gray(r, g, b, u.saturation)

    # no neighbourhood here: clarity/sharpness/nr act on chroma instead
    detail_scale = _clamp(1 + u.clarity * 0.3 + u.sharpness * 0.25, 0.5, 1.5)
    nr_penalty = _clamp(1 - u.noise_reduction * 0.35, 0.5, 1.0)
    return _around_gray(r, g, b, detail_scale * nr_penalty)


def _film_sim(r: float, g: float, b: float, film_sim_id: int) -> tuple[float, float, float]:
    if film_sim_id == 1:
        r, g, b = _around_gray(r, g, b, 1.35)
        return max(r, 0.0) ** 0.95, max(g, 0.0) ** 0.95, max(b, 0.0) ** 0.95
    if film_sim_id == 2:
        r, g, b = _around_gray(r, g, b, 1.08)
        return r * 1.03, g, b * 0.98
    if film_sim_id == 3:
        r, g, b = _around_gray(r, g, b, 0.88)
        return r * 0.98, g, b * 0.94
    if film_sim_id == 4:
        r, g, b = _around_gray(r, g, b, 0.92)
        return r * 1.04, g * 0.96, b
    if film_sim_id == 5:
        r, g, b = _around_gray(r, g, b, 0.8)
        return max(r, 0.0) ** 1.04, max(g, 0.0) ** 1.04, max(b, 0.0) ** 1.04
    if film_sim_id in (6, 7):
        luma = _luma601(r, g, b)
        return luma, luma, luma
    return r, g, b


def _color_chrome(r: float, g: float, b: float, u: Uniforms) -> tuple[float, float, float]:
    chroma = max(r, g, b) - min(r, g, b)
    saturation_mask = _smoothstep(0.18, 0.72, chroma)
    tone_mask = _smoothstep(0.2, 0.95, _luma709(r, g, b))
    amount = u.chrome_strength * saturation_mask * tone_mask

    darken = 1 - amount * 0.16
    r, g, b = _around_gray(r * darken, g * darken, b * darken, 1 + amount * 0.24)

    blue_dominance = _clamp(b - max(r, g), 0.0, 1.0)
    blue = u.chrome_blue_strength * _smoothstep(0.05, 0.35, blue_dominance) * saturation_mask
    fade = 1 - blue * 0.08
    return (
        r * (1 - blue * 0.07) * fade,
        g * (1 - blue * 0.04) * fade,
        b * (1 + blue * 0.25) * fade,
    )


def shade_pixel(r: float, g: float, b: float, uniforms: Uniforms, grain_seed: float) -> tuple[float, float, float]:
    """Shade one display-encoded pixel (channels in 0..1); returns display-encoded 0..1 values."""

    r, g, b = r**DISPLAY_GAMMA, g**DISPLAY_GAMMA, b**DISPLAY_GAMMA
    r, g, b = _tone_and_color(r, g, b, uniforms)
    r, g, b = _film_sim(r, g, b, uniforms.film_sim_id)
    r, g, b = _color_chrome(r, g, b, uniforms)

    grain = (grain_seed - 0.5) * uniforms.grain_amount * (0.35 + 0.65 * (1 - _luma709(r, g, b)))
    inv = 1.0 / DISPLAY_GAMMA
    return (
        _clamp(r + grain, 0.0, 1.0) ** inv,
        _clamp(g + grain, 0.0, 1.0) ** inv,
        _clamp(b + grain, 0.0, 1.0) ** inv,
    )


def _to_byte(value: float) -> int:
    return int(math.floor(value * 255.0 + 0.5))


class ScalarRenderer:
    """Pixel-at-a-time fallback path; no spatial sampling."""

    mode = CPU_FALLBACK_MODE

    def render(self, source: Any, uniforms: Uniforms, options: RenderOptions | None = None) -> np.ndarray:
        frame = prepare_source(source, options)
        frequency = scalar_grain_frequency(uniforms.grain_size)
        out = np.empty_like(frame)

        for y, row in enumerate(frame.tolist()):
            for x, (r8, g8, b8) in enumerate(row):
                seed = scalar_grain_seed(x, y, frequency)
                r, g, b = shade_pixel(r8 / 255.0, g8 / 255.0, b8 / 255.0, uniforms, seed)
                out[y, x] = (_to_byte(r), _to_byte(g), _to_byte(b))
        return out
