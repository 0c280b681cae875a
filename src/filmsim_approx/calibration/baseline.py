from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import shutil
from typing import Any

from filmsim_approx.utils.formatting import utc_now_iso

from .manifest import ConfigError, read_json, write_json
from .oracle_index import require_oracle_source_policy
from .thresholds import RegressionThresholds


logger = logging.getLogger(__name__)

AGGREGATE_REGRESSION_METRICS = (
    "mean_delta_e00",
    "p95_delta_e00",
    "luma_rmse",
    "mean_chroma_error",
    "mean_hue_drift_deg",
)
METADATA_VERSION = 1


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class BaselineComparison:
    baseline_metrics_path: str
    passed: bool
    failures: list[str]
    baseline_timestamp: str | None = None
    aggregate_deltas: list[dict[str, Any]] = field(default_factory=list)
    directional_comparisons: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "baseline_metrics_path": self.baseline_metrics_path,
            "baseline_timestamp": self.baseline_timestamp,
            "pass": self.passed,
            "failures": list(self.failures),
            "aggregate": {"deltas": list(self.aggregate_deltas)},
            "directional": {"comparisons": list(self.directional_comparisons)},
        }


def _compare_aggregate(
    current: dict[str, Any],
    baseline: dict[str, Any],
    regression: RegressionThresholds | None,
) -> tuple[list[str], list[dict[str, Any]]]:
    failures: list[str] = []
    deltas: list[dict[str, Any]] = []
    allowed_by_metric = regression.max_aggregate_delta if regression else {}

    for metric in AGGREGATE_REGRESSION_METRICS:
        allowed = allowed_by_metric.get(metric)
        current_value = current.get(metric)
        baseline_value = baseline.get(metric) if isinstance(baseline, dict) else None
        if not (_is_number(allowed) and _is_number(current_value) and _is_number(baseline_value)):
            continue
        delta = float(current_value) - float(baseline_value)
        ok = delta <= allowed
        deltas.append(
            {
                "metric": metric,
                "baseline": baseline_value,
                "current": current_value,
                "delta": delta,
                "allowed_delta": allowed,
                "pass": ok,
            }
        )
        if not ok:
            failures.append(f"[aggregate_regression] {metric} delta={delta:.6f} > allowed={allowed:.6f}")
    return failures, deltas


def _compare_directional(
    current_scores: list[dict[str, Any]],
    baseline_scores: list[dict[str, Any]],
    regression: RegressionThresholds | None,
) -> tuple[list[str], list[dict[str, Any]]]:
    failures: list[str] = []
    comparisons: list[dict[str, Any]] = []
    max_drop = regression.max_directional_score_drop if regression else None

    current_by_axis = {row.get("axis"): row for row in current_scores}
    for baseline_row in baseline_scores:
        axis = baseline_row.get("axis")
        current_row = current_by_axis.get(axis)
        if current_row is None:
            failures.append(f"[directional_regression] axis={axis} missing in current run")
            continue
        if max_drop is None:
            continue
        drop = float(baseline_row.get("score", 0.0)) - float(current_row.get("score", 0.0))
        ok = drop <= max_drop
        comparisons.append(
            {
                "axis": axis,
                "baseline": baseline_row.get("score"),
                "current": current_row.get("score"),
                "score_drop": drop,
                "allowed_drop": max_drop,
                "pass": ok,
            }
        )
        if not ok:
            failures.append(f"[directional_regression] axis={axis} drop={drop:.6f} > allowed={max_drop:.6f}")
    return failures, comparisons


def compare_to_baseline(
    current_aggregate: dict[str, Any],
    current_directional_scores: list[dict[str, Any]],
    baseline_run: Any,
    regression: RegressionThresholds | None,
    baseline_metrics_path: str,
) -> BaselineComparison:
    """Compare a run's aggregate and directional scores against a locked baseline run."""

    if not isinstance(baseline_run, dict):
        return BaselineComparison(
            baseline_metrics_path=baseline_metrics_path,
            passed=False,
            failures=["[baseline] baseline metrics payload is invalid"],
        )

    aggregate_failures, deltas = _compare_aggregate(
        current_aggregate, baseline_run.get("aggregate") or {}, regression
    )
    directional_failures, comparisons = _compare_directional(
        current_directional_scores, list(baseline_run.get("directional_scores") or []), regression
    )
    failures = aggregate_failures + directional_failures
    return BaselineComparison(
        baseline_metrics_path=baseline_metrics_path,
        baseline_timestamp=baseline_run.get("timestamp"),
        passed=not failures,
        failures=failures,
        aggregate_deltas=deltas,
        directional_comparisons=comparisons,
    )


def assert_metrics_shape(metrics: Any, require_records: bool = False) -> dict[str, Any]:
    if not isinstance(metrics, dict):
        raise ConfigError("metrics payload must be a JSON object")
    if not isinstance(metrics.get("frame_metrics"), list):
        raise ConfigError("metrics payload missing frame_metrics array")
    if not isinstance(metrics.get("directional_scores"), list):
        raise ConfigError("metrics payload missing directional_scores array")
    if require_records and not isinstance(metrics.get("directional_records"), list):
        raise ConfigError("metrics payload missing directional_records array")
    if not isinstance(metrics.get("aggregate"), dict):
        raise ConfigError("metrics payload missing aggregate object")
    return metrics


def find_latest_run_metrics(runs_root: Path, policy: str | None = None) -> Path:
    """Newest ``<run>/metrics.json`` under runs_root, optionally restricted to one oracle policy."""

    runs_root = Path(runs_root)
    candidates: list[tuple[float, Path]] = []
    if runs_root.is_dir():
        for run_dir in runs_root.iterdir():
            metrics_path = run_dir / "metrics.json"
            if not run_dir.is_dir() or not metrics_path.is_file():
                continue
            if policy and policy != "any":
                try:
                    payload = read_json(metrics_path)
                except (OSError, ValueError) as exc:
                    logger.warning("skipping unreadable run metrics %s: %s", metrics_path, exc)
                    continue
                if not isinstance(payload, dict) or payload.get("oracle_source_policy") != policy:
                    continue
            candidates.append((metrics_path.stat().st_mtime, metrics_path))

    if not candidates:
        suffix = f" with oracle_source_policy={policy}" if policy and policy != "any" else ""
        raise ConfigError(f"no calibration run metrics found under {runs_root}{suffix}")
    candidates.sort(key=lambda item: item[0], reverse=True)
    return candidates[0][1]


def lock_baseline(
    source_metrics: Path,
    target: Path,
    metadata_path: Path,
    require_oracle_source: str | None = None,
    commit: str = "unknown",
) -> dict[str, Any]:
    """Copy a run's metrics.json to the baseline location and write its lock metadata."""

    if require_oracle_source is not None:
        require_oracle_source_policy(require_oracle_source)
    source_metrics = Path(source_metrics).resolve()
    target = Path(target).resolve()
    metadata_path = Path(metadata_path).resolve()

    try:
        metrics = read_json(source_metrics)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"cannot read baseline source {source_metrics}: {exc}") from exc
    assert_metrics_shape(metrics)

    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source_metrics, target)

    metadata = {
        "version": METADATA_VERSION,
        "locked_at": utc_now_iso(),
        "locked_by_commit": commit,
        "source_metrics_path": str(source_metrics),
        "baseline_metrics_path": str(target),
        "source_run_timestamp": metrics.get("timestamp"),
        "source_oracle_policy": metrics.get("oracle_source_policy"),
        "lock_require_oracle_source": require_oracle_source,
        "frame_count": len(metrics["frame_metrics"]),
        "directional_axis_count": len(metrics["directional_scores"]),
    }
    write_json(metadata_path, metadata)
    logger.info("locked baseline %s from %s", target, source_metrics)
    return metadata
