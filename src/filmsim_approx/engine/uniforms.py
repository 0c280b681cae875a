from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .params import RecipeParams, StrengthScalars


WB_PRESET_TO_KELVIN: dict[str, int] = {
    "auto": 5600,
    "daylight": 5600,
    "shade": 7000,
    "tungsten": 3200,
    "fluorescent": 4300,
    "kelvin": 5600,
}

FILM_SIM_TO_ID: dict[str, int] = {
    "provia": 0,
    "velvia": 1,
    "astia": 2,
    "classic_chrome": 3,
    "classic_neg": 4,
    "eterna": 5,
    "acros": 6,
    "mono": 7,
}

DYNAMIC_RANGE_COMPRESSION: dict[str, float] = {
    "dr100": 0.0,
    "dr200": 0.15,
    "dr400": 0.28,
}

GRAIN_AMOUNT_BY_SETTING: dict[str, float] = {
    "off": 0.0,
    "weak": 0.022,
    "strong": 0.042,
}

GRAIN_SIZE_TO_VALUE: dict[str, int] = {
    "small": 0,
    "large": 1,
}

CHROME_STRENGTH_BY_SETTING: dict[str, float] = {
    "off": 0.0,
    "weak": 0.5,
    "strong": 1.0,
}


@dataclass(frozen=True)
class Uniforms:
    wb_multipliers: tuple[float, float, float]
    saturation: float
    shadow: float
    highlight: float
    dynamic_range_compression: float
    film_sim_id: int
    clarity: float
    sharpness: float
    noise_reduction: float
    chrome_strength: float
    chrome_blue_strength: float
    grain_amount: float
    grain_size: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["wb_multipliers"] = list(self.wb_multipliers)
        return data


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def resolve_kelvin(params: RecipeParams) -> int:
    if params.wb == "kelvin":
        return int(params.wb_kelvin)
    return WB_PRESET_TO_KELVIN.get(params.wb, 5600)


def compute_wb_multipliers(params: RecipeParams) -> tuple[float, float, float]:
    kelvin = resolve_kelvin(params)
    kelvin_norm = _clamp((kelvin - 5600) / 4400, -1.0, 1.0)
    amber_blue = _clamp(params.wb_shift.a_b / 9, -1.0, 1.0)
    red_blue = _clamp(params.wb_shift.r_b / 9, -1.0, 1.0)

    r = _clamp(1 + kelvin_norm * 0.2 + amber_blue * 0.12 + red_blue * 0.08, 0.7, 1.3)
    g = _clamp(1 - amber_blue * 0.04, 0.75, 1.25)
    b = _clamp(1 - kelvin_norm * 0.2 - amber_blue * 0.12 - red_blue * 0.08, 0.7, 1.3)
    return (r, g, b)


def resolve_film_sim_id(film_sim: str) -> int:
    return FILM_SIM_TO_ID.get(film_sim, FILM_SIM_TO_ID["provia"])


def derive_uniforms(params: RecipeParams, scalars: StrengthScalars | None = None) -> Uniforms:
    """Map a recipe plus profile strength scalars onto bounded render uniforms.

    Never raises: unknown enum strings fall back to the neutral entry of their
    table (provia, dr100, grain off, chrome off, small grain).
    """

    s = (scalars or StrengthScalars()).resolve()

    noise_reduction = _clamp((0.28 + params.noise_reduction * 0.09) * s.nr, 0.0, 1.0)
    clarity = _clamp((params.clarity / 8) * s.clarity, -0.75, 0.75)
    sharpness_base = _clamp(0.35 + params.sharpness * 0.1, 0.0, 1.0)
    clarity_penalty = abs(clarity) * 0.35 if clarity < 0 else 0.0
    sharpness = _clamp(
        sharpness_base * (1 - noise_reduction * 0.4) * (1 - clarity_penalty),
        0.0,
        1.0,
    )

    grain_base = GRAIN_AMOUNT_BY_SETTING.get(params.grain, GRAIN_AMOUNT_BY_SETTING["off"])
    grain_amount = _clamp(grain_base * (1 - noise_reduction * 0.45) * s.grain, 0.0, 0.08)
    grain_size = 0 if grain_amount == 0 else GRAIN_SIZE_TO_VALUE.get(params.grain_size, 0)

    chrome_strength = _clamp(CHROME_STRENGTH_BY_SETTING.get(params.chrome, 0.0) * s.chrome, 0.0, 1.0)
    chrome_blue_strength = _clamp(
        CHROME_STRENGTH_BY_SETTING.get(params.chrome_blue, 0.0) * s.chrome,
        0.0,
        1.0,
    )

    tone_curve = s.tone_curve
    base_dr = DYNAMIC_RANGE_COMPRESSION.get(params.dynamic_range, DYNAMIC_RANGE_COMPRESSION["dr100"])

    return Uniforms(
        wb_multipliers=compute_wb_multipliers(params),
        saturation=_clamp(1 + params.color * 0.12, 0.2, 2.0),
        shadow=_clamp((params.shadow / 4) * tone_curve, -1.0, 1.0),
        highlight=_clamp((params.highlight / 4) * tone_curve, -1.0, 1.0),
        dynamic_range_compression=_clamp(base_dr * tone_curve, 0.0, 0.6),
        film_sim_id=resolve_film_sim_id(params.film_sim),
        clarity=clarity,
        sharpness=sharpness,
        noise_reduction=noise_reduction,
        chrome_strength=chrome_strength,
        chrome_blue_strength=chrome_blue_strength,
        grain_amount=grain_amount,
        grain_size=grain_size,
    )
