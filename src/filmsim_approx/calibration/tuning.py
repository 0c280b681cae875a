from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any

from filmsim_approx.utils.formatting import utc_now_iso

from .directional import directional_sign_mismatch
from .thresholds import CRITICAL, SECONDARY, CalibrationThresholds


AXIS_TARGETS: dict[str, str] = {
    "highlight": "tone_curve highlight response",
    "shadow": "tone_curve shadow response",
    "dynamic_range": "tone_curve dynamic-range compression",
    "chrome": "color_chrome saturation response",
    "chrome_blue": "color_chrome blue-channel response",
    "film_sim": "film_sim transfer/channel mix",
    "grain": "grain amplitude/blend",
}
LUMA_AXES = frozenset({"highlight", "shadow", "dynamic_range"})
DEFAULT_TARGET = "mapping constants"

NEAR_ZERO = 1e-8
NEAR_ZERO_LUMA = 1e-10
MIN_REFERENCE_SHIFT = 1e-4
SIGN_EPSILON = 1e-5
RATIO_LOW = 0.85
RATIO_HIGH = 1.15
ELEVATED_DELTA_E00 = 1.5

_BOOTSTRAP_RE = re.compile("bootstrap", re.IGNORECASE)


@dataclass
class SignalQuality:
    low_signal: bool
    reasons: list[str]
    aggregate_near_zero: bool
    directional_near_zero: bool
    bootstrap_only: bool


@dataclass
class AxisAction:
    status: str
    recommendation: str


@dataclass
class AxisDiagnostic:
    axis: str
    target: str
    classification: str
    threshold: float
    directional_score: float
    samples: int
    mean_reference_delta: float
    mean_candidate_delta: float
    mean_shift_error: float
    sign_mismatch_count: int
    mean_frame_delta_e00: float
    mean_frame_luma_rmse: float
    mean_frame_chroma_error: float
    action: AxisAction | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in self.__dict__.items() if k != "action"}
        data["action"] = self.action.__dict__ if self.action else None
        return data


@dataclass
class TuningReport:
    timestamp: str
    metrics_path: str
    oracle_source_policy: str | None
    signal: SignalQuality
    axes: list[AxisDiagnostic] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "metrics_path": self.metrics_path,
            "oracle_source_policy": self.oracle_source_policy,
            "signal": self.signal.__dict__,
            "axes": [a.to_dict() for a in self.axes],
        }


def _num(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def detect_signal_quality(metrics: dict[str, Any]) -> SignalQuality:
    aggregate = metrics.get("aggregate") or {}
    frames = metrics.get("frame_metrics") or []
    records = metrics.get("directional_records") or []

    aggregate_near_zero = (
        abs(_num(aggregate.get("mean_delta_e00"))) <= NEAR_ZERO
        and abs(_num(aggregate.get("p95_delta_e00"))) <= NEAR_ZERO
        and abs(_num(aggregate.get("luma_rmse"))) <= NEAR_ZERO_LUMA
        and abs(_num(aggregate.get("mean_chroma_error"))) <= NEAR_ZERO
        and abs(_num(aggregate.get("mean_hue_drift_deg"))) <= NEAR_ZERO
    )
    directional_near_zero = bool(records) and all(
        abs(_num(r.get("reference_delta"))) <= NEAR_ZERO and abs(_num(r.get("candidate_delta"))) <= NEAR_ZERO
        for r in records
    )
    bootstrap_only = bool(frames) and all(
        isinstance(f.get("oracle_source"), str) and _BOOTSTRAP_RE.search(f["oracle_source"]) is not None
        for f in frames
    )

    reasons: list[str] = []
    if aggregate_near_zero:
        reasons.append("Aggregate frame metrics are effectively zero; the run carries no calibration drift signal.")
    if directional_near_zero:
        reasons.append(
            "Directional records are near zero for both oracle and candidate shifts; axis response cannot be tuned."
        )
    if bootstrap_only:
        reasons.append(
            "Oracle sources are bootstrap-tagged; tune against camera-engine exports before changing mapping constants."
        )
    return SignalQuality(
        low_signal=bool(reasons),
        reasons=reasons,
        aggregate_near_zero=aggregate_near_zero,
        directional_near_zero=directional_near_zero,
        bootstrap_only=bootstrap_only,
    )


def build_axis_diagnostics(metrics: dict[str, Any], thresholds: CalibrationThresholds | None) -> list[AxisDiagnostic]:
    records = metrics.get("directional_records") or []
    frames = metrics.get("frame_metrics") or []
    score_by_axis = {row.get("axis"): row for row in metrics.get("directional_scores") or []}

    grouped: dict[str, list[dict[str, Any]]] = {}
    for record in records:
        axis = record.get("axis")
        if isinstance(axis, str) and axis:
            grouped.setdefault(axis, []).append(record)

    diagnostics: list[AxisDiagnostic] = []
    for axis in sorted(grouped):
        axis_records = grouped[axis]
        refs = [_num(r.get("reference_delta")) for r in axis_records]
        cands = [_num(r.get("candidate_delta")) for r in axis_records]
        axis_frames = [f.get("metrics") or {} for f in frames if f.get("axis") == axis]

        score_row = score_by_axis.get(axis)
        if score_row and score_row.get("classification"):
            classification = str(score_row["classification"])
        elif thresholds is not None:
            classification = thresholds.directional.classify(axis)
        else:
            classification = SECONDARY

        if score_row and isinstance(score_row.get("threshold"), (int, float)):
            threshold = float(score_row["threshold"])
        elif thresholds is not None:
            threshold = thresholds.directional.threshold_for(classification)
        else:
            threshold = 1.0 if classification == CRITICAL else 0.95

        if score_row and isinstance(score_row.get("score"), (int, float)):
            score = float(score_row["score"])
        else:
            score = sum(1 for r in axis_records if r.get("correct")) / len(axis_records)

        diagnostics.append(
            AxisDiagnostic(
                axis=axis,
                target=AXIS_TARGETS.get(axis, DEFAULT_TARGET),
                classification=classification,
                threshold=threshold,
                directional_score=score,
                samples=len(axis_records),
                mean_reference_delta=_mean(refs),
                mean_candidate_delta=_mean(cands),
                mean_shift_error=_mean([abs(r - c) for r, c in zip(refs, cands)]),
                sign_mismatch_count=sum(1 for r, c in zip(refs, cands) if directional_sign_mismatch(r, c)),
                mean_frame_delta_e00=_mean([_num(m.get("mean_delta_e00")) for m in axis_frames]),
                mean_frame_luma_rmse=_mean([_num(m.get("luma_rmse")) for m in axis_frames]),
                mean_frame_chroma_error=_mean([_num(m.get("mean_chroma_error")) for m in axis_frames]),
            )
        )
    return diagnostics


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


def build_axis_action(diag: AxisDiagnostic, low_signal: bool) -> AxisAction:
    if low_signal:
        return AxisAction(
            "blocked",
            "Blocked by low-signal oracle data. Import non-bootstrap camera-engine exports before tuning constants.",
        )

    if diag.axis in LUMA_AXES:
        reference = diag.mean_reference_delta
        candidate = diag.mean_candidate_delta
        if abs(reference) <= MIN_REFERENCE_SHIFT:
            return AxisAction(
                "review",
                "Oracle shift is too small to tune confidently for this axis. Increase sweep intensity/cases first.",
            )
        if directional_sign_mismatch(reference, candidate, SIGN_EPSILON):
            return AxisAction("reverse", f"Reverse {diag.target} direction to match oracle delta sign.")
        ratio = candidate / reference
        if ratio < RATIO_LOW:
            scale = _clamp(1 / ratio if ratio else 0.0, 1.1, 3.0)
            return AxisAction("increase", f"Increase {diag.target} strength (suggested scale ~{scale:.2f}x).")
        if ratio > RATIO_HIGH:
            scale = _clamp(1 / ratio, 0.33, 0.9)
            return AxisAction("decrease", f"Decrease {diag.target} strength (suggested scale ~{scale:.2f}x).")
        return AxisAction(
            "aligned",
            "Luma-direction response is aligned. Prioritize reducing residual frame-level perceptual error.",
        )

    if diag.directional_score + 1e-6 < diag.threshold:
        return AxisAction(
            "review",
            "Directional score is below threshold; fix sign/coupling behavior for this axis before amplitude tuning.",
        )
    if diag.mean_frame_delta_e00 >= ELEVATED_DELTA_E00:
        return AxisAction(
            "review",
            f"Perceptual error remains elevated; tune {diag.target} constants and re-run camera calibration.",
        )
    return AxisAction(
        "aligned",
        "Axis is directionally aligned and within the current perceptual envelope; keep constants.",
    )


def build_tuning_report(
    metrics: dict[str, Any],
    thresholds: CalibrationThresholds | None = None,
    metrics_path: str = "",
) -> TuningReport:
    signal = detect_signal_quality(metrics)
    axes = build_axis_diagnostics(metrics, thresholds)
    for diag in axes:
        diag.action = build_axis_action(diag, signal.low_signal)
    return TuningReport(
        timestamp=utc_now_iso(),
        metrics_path=metrics_path,
        oracle_source_policy=metrics.get("oracle_source_policy"),
        signal=signal,
        axes=axes,
    )


def render_tuning_markdown(report: TuningReport) -> str:
    rows = [
        f"| {a.axis} | {a.target} | {a.classification} | {a.directional_score:.3f} | {a.threshold:.3f} | "
        f"{a.mean_reference_delta:.5f} | {a.mean_candidate_delta:.5f} | {a.mean_shift_error:.5f} | "
        f"{a.mean_frame_delta_e00:.3f} | {a.action.status if a.action else 'n/a'} | "
        f"{a.action.recommendation if a.action else ''} |"
        for a in report.axes
    ] or ["| n/a | n/a | n/a | 0.000 | 0.000 | 0.00000 | 0.00000 | 0.00000 | 0.000 | n/a | No directional records present. |"]

    if report.signal.low_signal:
        next_steps = [
            "1. Import camera-engine exports (`filmsim-approx import-oracle`).",
            "2. Re-run evaluate with `--require-oracle-source camera_engine`.",
            "3. Re-run this report with `--fail-on-low-signal`.",
        ]
    else:
        next_steps = [
            "1. Apply constant updates only for axes marked `increase`, `decrease`, `reverse`, or `review`.",
            "2. Re-run evaluate against the current baseline.",
            "3. If accepted, re-lock the baseline and keep directional scores at/above thresholds.",
        ]

    lines = [
        "# Calibration Tuning Report",
        "",
        f"Date: {report.timestamp}",
        f"Run: {report.metrics_path}",
        f"Oracle policy: {report.oracle_source_policy or 'unknown'}",
        f"Signal quality: {'LOW (not tunable)' if report.signal.low_signal else 'USABLE'}",
        "",
        "## Signal Diagnostics",
        "",
        "\n".join(f"- {r}" for r in report.signal.reasons) or "- none",
        "",
        "## Axis Diagnostics",
        "",
        "| Axis | Target | Class | Score | Threshold | Ref Shift | Cand Shift | Shift Err | Mean dE00 | Action | Recommendation |",
        "|---|---|---|---:|---:|---:|---:|---:|---:|---|---|",
        *rows,
        "",
        "## Next Steps",
        "",
        *next_steps,
    ]
    return "\n".join(lines) + "\n"
