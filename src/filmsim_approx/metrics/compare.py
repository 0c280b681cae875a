from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Sequence

import numpy as np

from filmsim_approx.imaging import as_rgb8

from .color import angular_difference, chroma, delta_e_2000, delta_e_76, hue_degrees, srgb8_to_lab


HUE_CHROMA_FLOOR = 2.0


class FrameMismatchError(ValueError):
    pass


@dataclass
class FrameMetrics:
    sample_count: int
    mean_delta_e00: float
    p95_delta_e00: float
    mean_delta_e76: float
    p95_delta_e76: float
    luma_rmse: float
    mean_chroma_error: float
    mean_hue_drift_deg: float
    mean_abs_rgb: float
    mean_luma_candidate: float
    mean_luma_oracle: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "FrameMetrics":
        return cls(**{name: raw[name] for name in cls.__dataclass_fields__})


def p95(values: Sequence[float] | np.ndarray) -> float:
    arr = np.sort(np.asarray(values, dtype=np.float64).ravel())
    if arr.size == 0:
        return 0.0
    return float(arr[min(arr.size - 1, int(np.floor(arr.size * 0.95)))])


def _mean(values: np.ndarray) -> float:
    return float(values.mean()) if values.size else 0.0


def _check_same_size(candidate: np.ndarray, oracle: np.ndarray, what: str) -> None:
    if candidate.shape[:2] != oracle.shape[:2]:
        raise FrameMismatchError(
            f"{what} dimensions mismatch: candidate={candidate.shape[1]}x{candidate.shape[0]}, "
            f"oracle={oracle.shape[1]}x{oracle.shape[0]}"
        )


def compare_frames(candidate: Any, oracle: Any, sample_stride: int = 1) -> FrameMetrics:
    """Perceptual and channel-level differences between two equally sized 8-bit frames.

    Every ``sample_stride``-th pixel in each direction is sampled, starting at (0, 0).
    """

    cand = as_rgb8(candidate)
    orc = as_rgb8(oracle)
    _check_same_size(cand, orc, "frame")

    stride = max(1, int(sample_stride))
    cand = cand[::stride, ::stride].reshape(-1, 3)
    orc = orc[::stride, ::stride].reshape(-1, 3)

    lab_c, y_c = srgb8_to_lab(cand)
    lab_o, y_o = srgb8_to_lab(orc)

    de00 = delta_e_2000(lab_c, lab_o)
    de76 = delta_e_76(lab_c, lab_o)

    chroma_c = chroma(lab_c)
    chroma_o = chroma(lab_o)
    hue_mask = (chroma_c > HUE_CHROMA_FLOOR) | (chroma_o > HUE_CHROMA_FLOOR)
    hue_drift = angular_difference(hue_degrees(lab_c[hue_mask]), hue_degrees(lab_o[hue_mask]))

    abs_rgb = np.abs(cand.astype(np.float64) - orc.astype(np.float64)).mean(axis=-1) / 255.0

    return FrameMetrics(
        sample_count=int(cand.shape[0]),
        mean_delta_e00=_mean(de00),
        p95_delta_e00=p95(de00),
        mean_delta_e76=_mean(de76),
        p95_delta_e76=p95(de76),
        luma_rmse=float(np.sqrt(_mean((y_c - y_o) ** 2))),
        mean_chroma_error=_mean(np.abs(chroma_c - chroma_o)),
        mean_hue_drift_deg=_mean(hue_drift),
        mean_abs_rgb=_mean(abs_rgb),
        mean_luma_candidate=_mean(y_c),
        mean_luma_oracle=_mean(y_o),
    )


def build_difference_visualization(candidate: Any, oracle: Any) -> np.ndarray:
    """False-colour heat map of the mean absolute RGB difference per pixel."""

    cand = as_rgb8(candidate)
    orc = as_rgb8(oracle)
    _check_same_size(cand, orc, "diff visualization")

    delta = np.abs(cand.astype(np.float64) - orc.astype(np.float64)).mean(axis=-1) / 255.0
    intensity = np.floor(np.clip(np.power(delta, 0.62) * 1.35, 0.0, 1.0) * 255.0 + 0.5)
    out = np.stack(
        [intensity, np.floor(intensity * 0.45 + 0.5), np.floor(intensity * 0.15 + 0.5)],
        axis=-1,
    )
    return out.astype(np.uint8)
