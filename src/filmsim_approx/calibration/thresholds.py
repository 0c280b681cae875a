from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from filmsim_approx.metrics.compare import FrameMetrics

from .manifest import ConfigError, read_json


CRITICAL = "critical"
SECONDARY = "secondary"


@dataclass
class FrameThresholds:
    max_mean_delta_e00: float | None = None
    max_p95_delta_e00: float | None = None
    max_luma_rmse: float | None = None
    max_mean_chroma_error: float | None = None
    max_mean_hue_drift_deg: float | None = None


@dataclass
class DirectionalThresholds:
    critical_min_score: float = 1.0
    secondary_min_score: float = 0.95
    axis_classification: dict[str, str] = field(default_factory=dict)

    def classify(self, axis: str) -> str:
        return self.axis_classification.get(axis, SECONDARY)

    def threshold_for(self, classification: str) -> float:
        return self.critical_min_score if classification == CRITICAL else self.secondary_min_score


@dataclass
class RegressionThresholds:
    max_aggregate_delta: dict[str, float] = field(default_factory=dict)
    max_directional_score_drop: float | None = None


@dataclass
class CalibrationThresholds:
    frame: FrameThresholds
    directional: DirectionalThresholds
    regression: RegressionThresholds | None = None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def parse_thresholds(raw: Any) -> CalibrationThresholds:
    if not isinstance(raw, dict):
        raise ConfigError("calibration thresholds must be an object")
    frame_raw = raw.get("frame")
    directional_raw = raw.get("directional")
    if not isinstance(frame_raw, dict):
        raise ConfigError("calibration thresholds must include frame limits")
    if not isinstance(directional_raw, dict):
        raise ConfigError("calibration thresholds must include directional limits")

    # e76 keys are the legacy spelling of the same limits
    mean_delta = _number(frame_raw.get("max_mean_delta_e00"))
    if mean_delta is None:
        mean_delta = _number(frame_raw.get("max_mean_delta_e76"))
    if mean_delta is None:
        raise ConfigError("calibration thresholds must include max_mean_delta_e00 (or legacy max_mean_delta_e76)")
    p95_delta = _number(frame_raw.get("max_p95_delta_e00"))
    if p95_delta is None:
        p95_delta = _number(frame_raw.get("max_p95_delta_e76"))

    frame = FrameThresholds(
        max_mean_delta_e00=mean_delta,
        max_p95_delta_e00=p95_delta,
        max_luma_rmse=_number(frame_raw.get("max_luma_rmse")),
        max_mean_chroma_error=_number(frame_raw.get("max_mean_chroma_error")),
        max_mean_hue_drift_deg=_number(frame_raw.get("max_mean_hue_drift_deg")),
    )

    classification = directional_raw.get("axis_classification") or {}
    if not isinstance(classification, dict):
        raise ConfigError("directional.axis_classification must be an object")
    directional = DirectionalThresholds(
        critical_min_score=float(directional_raw.get("critical_min_score", 1.0)),
        secondary_min_score=float(directional_raw.get("secondary_min_score", 0.95)),
        axis_classification={str(k): str(v) for k, v in classification.items()},
    )

    regression = None
    regression_raw = raw.get("regression")
    if isinstance(regression_raw, dict):
        aggregate_raw = regression_raw.get("max_aggregate_delta") or {}
        regression = RegressionThresholds(
            max_aggregate_delta={
                str(k): float(v) for k, v in aggregate_raw.items() if _number(v) is not None
            },
            max_directional_score_drop=_number(regression_raw.get("max_directional_score_drop")),
        )

    return CalibrationThresholds(frame=frame, directional=directional, regression=regression)


def load_thresholds(path: str | Path) -> CalibrationThresholds:
    thresholds_path = Path(path).expanduser().resolve()
    try:
        raw = read_json(thresholds_path)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"cannot load calibration thresholds {thresholds_path}: {exc}") from exc
    return parse_thresholds(raw)


def _fmt_limit(value: float) -> str:
    return f"{value:g}"


def frame_threshold_failures(metrics: FrameMetrics, limits: FrameThresholds) -> list[str]:
    failures: list[str] = []
    checks = (
        ("mean_delta_e00", metrics.mean_delta_e00, limits.max_mean_delta_e00, 4),
        ("p95_delta_e00", metrics.p95_delta_e00, limits.max_p95_delta_e00, 4),
        ("luma_rmse", metrics.luma_rmse, limits.max_luma_rmse, 6),
        ("mean_chroma_error", metrics.mean_chroma_error, limits.max_mean_chroma_error, 4),
        ("mean_hue_drift_deg", metrics.mean_hue_drift_deg, limits.max_mean_hue_drift_deg, 4),
    )
    for name, value, limit, digits in checks:
        if limit is not None and value > limit:
            failures.append(f"{name} {value:.{digits}f} > {_fmt_limit(limit)}")
    return failures
