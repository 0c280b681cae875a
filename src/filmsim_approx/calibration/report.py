from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from filmsim_approx.utils.formatting import fmt_float

if TYPE_CHECKING:
    from .harness import HarnessRun


SUMMARY_FRAME_ROWS = 15


def _status(passed: bool) -> str:
    return "pass" if passed else "fail"


def _bullets(lines: list[str], empty: str = "- none") -> str:
    return "\n".join(f"- {line}" for line in lines) if lines else empty


def render_summary_markdown(run: "HarnessRun") -> str:
    agg = run.aggregate

    directional_rows = [
        f"| {s.axis} | {s.classification} | {s.correct}/{s.samples} | {s.score:.3f} | {s.threshold:.3f} | {_status(s.passed)} |"
        for s in run.directional_scores
    ] or ["| n/a | n/a | 0/0 | 0.000 | 0.000 | n/a |"]

    frame_rows = [
        f"| {f.scene_id} | {f.case_id} | {f.metrics.mean_delta_e00:.3f} | {f.metrics.p95_delta_e00:.3f} | "
        f"{f.metrics.luma_rmse:.4f} | {f.metrics.mean_chroma_error:.3f} | {f.metrics.mean_hue_drift_deg:.3f} | "
        f"{f.render_mode} | {_status(f.passed)} |"
        for f in run.frame_metrics[:SUMMARY_FRAME_ROWS]
    ] or ["| n/a | n/a | 0 | 0 | 0 | 0 | 0 | n/a | n/a |"]
    omitted = len(run.frame_metrics) - SUMMARY_FRAME_ROWS
    if omitted > 0:
        frame_rows += ["", f"({omitted} more in metrics.json)"]

    if run.oracle_index_validation is not None:
        v = run.oracle_index_validation
        index_line = f"{'PASS' if v.passed else 'FAIL'} ({len(v.failures)} issues)"
    else:
        index_line = "index not available"

    if run.baseline_comparison is not None:
        b = run.baseline_comparison
        baseline_header = f"path: {b.baseline_metrics_path}\nstatus: {'PASS' if b.passed else 'FAIL'}"
        baseline_lines = _bullets(b.failures)
    else:
        baseline_header = "baseline comparison disabled"
        baseline_lines = "- not requested"

    lines = [
        "# Calibration Harness Summary",
        "",
        f"Date: {run.timestamp}",
        f"Mode: {run.mode}",
        f"Commit: {run.commit_sha}",
        f"Result: {'PASS' if run.passed else 'FAIL'}",
        "",
        "## Aggregate",
        "",
        f"- frames: {len(run.frame_metrics)}",
        f"- directional axes: {len(run.directional_scores)}",
        f"- oracle index: {run.oracle_index_path}",
        f"- oracle source policy: {run.oracle_source_policy}",
        f"- oracle index validation: {index_line}",
        f"- mean DeltaE00: {fmt_float(agg.get('mean_delta_e00'), 4)}",
        f"- p95 DeltaE00: {fmt_float(agg.get('p95_delta_e00'), 4)}",
        f"- mean DeltaE76 (legacy diagnostic): {fmt_float(agg.get('mean_delta_e76'), 4)}",
        f"- p95 DeltaE76 (legacy diagnostic): {fmt_float(agg.get('p95_delta_e76'), 4)}",
        f"- luma RMSE: {fmt_float(agg.get('luma_rmse'), 6)}",
        f"- mean chroma error: {fmt_float(agg.get('mean_chroma_error'), 4)}",
        f"- mean hue drift: {fmt_float(agg.get('mean_hue_drift_deg'), 4)}",
        "",
        "## Directional Scores",
        "",
        "| Axis | Class | Correct | Score | Threshold | Status |",
        "|---|---|---:|---:|---:|---|",
        *directional_rows,
        "",
        f"## Frame Metrics (first {SUMMARY_FRAME_ROWS})",
        "",
        "| Scene | Case | Mean dE00 | p95 dE00 | Luma RMSE | Chroma Err | Hue Drift | Path | Status |",
        "|---|---|---:|---:|---:|---:|---:|---|---|",
        *frame_rows,
        "",
        "## Baseline Comparison",
        "",
        baseline_header,
        "",
        baseline_lines,
        "",
        "## Failures",
        "",
        _bullets([f.replace("|", "/") for f in run.failures]),
    ]
    return "\n".join(lines) + "\n"


def write_reports(run: "HarnessRun", out_dir: Path | None = None) -> tuple[Path, Path]:
    out_dir = Path(out_dir) if out_dir is not None else run.output_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    json_path = out_dir / "metrics.json"
    json_path.write_text(json.dumps(run.to_dict(), indent=2) + "\n", encoding="utf-8")

    md_path = out_dir / "summary.md"
    md_path.write_text(render_summary_markdown(run), encoding="utf-8")

    run.metrics_path = json_path
    run.summary_path = md_path
    return json_path, md_path
