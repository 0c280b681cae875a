from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


DYNAMIC_RANGE_SETTINGS = ("dr100", "dr200", "dr400")
CHROME_SETTINGS = ("off", "weak", "strong")
GRAIN_SETTINGS = ("off", "weak", "strong")
GRAIN_SIZE_SETTINGS = ("small", "large")
WB_MODES = ("auto", "daylight", "shade", "tungsten", "fluorescent", "kelvin")

STRENGTH_SCALAR_MIN = 0.5
STRENGTH_SCALAR_MAX = 1.5


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def _as_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any, default: str) -> str:
    if value in (None, ""):
        return default
    return str(value)


@dataclass(frozen=True)
class WbShift:
    a_b: int = 0
    r_b: int = 0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "WbShift":
        raw = raw or {}
        return cls(a_b=_as_int(raw.get("a_b")), r_b=_as_int(raw.get("r_b")))

    def to_dict(self) -> dict[str, int]:
        return {"a_b": self.a_b, "r_b": self.r_b}


@dataclass(frozen=True)
class RecipeParams:
    """One render request's recipe, in the manifest's snake_case shape.

    Enum-like fields are kept as plain strings; unknown values are tolerated
    here and resolved to neutral defaults by uniform derivation.
    """

    film_sim: str = "provia"
    dynamic_range: str = "dr100"
    highlight: int = 0
    shadow: int = 0
    color: int = 0
    chrome: str = "off"
    chrome_blue: str = "off"
    clarity: int = 0
    sharpness: int = 0
    noise_reduction: int = 0
    grain: str = "off"
    grain_size: str = "small"
    wb: str = "auto"
    wb_kelvin: int = 5600
    wb_shift: WbShift = field(default_factory=WbShift)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "RecipeParams":
        raw = raw or {}
        shift = raw.get("wb_shift")
        return cls(
            film_sim=_as_str(raw.get("film_sim"), "provia"),
            dynamic_range=_as_str(raw.get("dynamic_range"), "dr100"),
            highlight=_as_int(raw.get("highlight")),
            shadow=_as_int(raw.get("shadow")),
            color=_as_int(raw.get("color")),
            chrome=_as_str(raw.get("chrome"), "off"),
            chrome_blue=_as_str(raw.get("chrome_blue"), "off"),
            clarity=_as_int(raw.get("clarity")),
            sharpness=_as_int(raw.get("sharpness")),
            noise_reduction=_as_int(raw.get("noise_reduction")),
            grain=_as_str(raw.get("grain"), "off"),
            grain_size=_as_str(raw.get("grain_size"), "small"),
            wb=_as_str(raw.get("wb"), "auto"),
            wb_kelvin=_as_int(raw.get("wb_kelvin"), 5600),
            wb_shift=shift if isinstance(shift, WbShift) else WbShift.from_dict(shift),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "film_sim": self.film_sim,
            "dynamic_range": self.dynamic_range,
            "highlight": self.highlight,
            "shadow": self.shadow,
            "color": self.color,
            "chrome": self.chrome,
            "chrome_blue": self.chrome_blue,
            "clarity": self.clarity,
            "sharpness": self.sharpness,
            "noise_reduction": self.noise_reduction,
            "grain": self.grain,
            "grain_size": self.grain_size,
            "wb": self.wb,
            "wb_kelvin": self.wb_kelvin,
            "wb_shift": self.wb_shift.to_dict(),
        }


@dataclass(frozen=True)
class StrengthScalars:
    """Per-profile calibration multipliers; all-1.0 is neutral."""

    tone_curve: float = 1.0
    chrome: float = 1.0
    clarity: float = 1.0
    nr: float = 1.0
    grain: float = 1.0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "StrengthScalars":
        if not raw:
            return cls()
        return cls(
            tone_curve=float(raw.get("tone_curve", 1.0)),
            chrome=float(raw.get("chrome", 1.0)),
            clarity=float(raw.get("clarity", 1.0)),
            nr=float(raw.get("nr", 1.0)),
            grain=float(raw.get("grain", 1.0)),
        )

    def resolve(self) -> "StrengthScalars":
        lo, hi = STRENGTH_SCALAR_MIN, STRENGTH_SCALAR_MAX
        return StrengthScalars(
            tone_curve=_clamp(float(self.tone_curve), lo, hi),
            chrome=_clamp(float(self.chrome), lo, hi),
            clarity=_clamp(float(self.clarity), lo, hi),
            nr=_clamp(float(self.nr), lo, hi),
            grain=_clamp(float(self.grain), lo, hi),
        )


def merge_params(base: Mapping[str, Any], overrides: Mapping[str, Any] | None) -> dict[str, Any]:
    """Shallow merge of case overrides over base params; wb_shift merges one level deeper."""

    overrides = overrides or {}
    merged = {**dict(base), **dict(overrides)}
    merged["wb_shift"] = {
        **dict(base.get("wb_shift") or {}),
        **dict(overrides.get("wb_shift") or {}),
    }
    return merged
