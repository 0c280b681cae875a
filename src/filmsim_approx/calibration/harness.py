from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from pathlib import Path
import platform
import shutil
import subprocess
import sys
from typing import Any
import uuid

import numpy as np

from filmsim_approx import __version__
from filmsim_approx.engine.params import RecipeParams, StrengthScalars
from filmsim_approx.engine.uniforms import derive_uniforms
from filmsim_approx.imaging import (
    ImageDecodeError,
    encode_jpeg,
    jpeg_round_trip,
    read_image,
    resize_nearest,
    write_bytes,
)
from filmsim_approx.metrics.compare import (
    FrameMetrics,
    FrameMismatchError,
    build_difference_visualization,
    compare_frames,
)
from filmsim_approx.render.dual import create_renderer
from filmsim_approx.utils.formatting import utc_now_iso, utc_token

from .baseline import BaselineComparison, compare_to_baseline
from .directional import (
    HARNESS_DIRECTION_EPSILON,
    DirectionalRecord,
    DirectionalScore,
    aggregate_directional_scores,
    directional_correctness,
)
from .manifest import CalibrationCase, CalibrationManifest, CalibrationScene, ConfigError, load_manifest, read_json
from .oracle_index import (
    BOOTSTRAP_SOURCE_TYPE,
    OracleIndexValidation,
    OracleRepository,
    display_path,
    oracle_frame_name,
    require_oracle_source_policy,
)
from .report import write_reports
from .thresholds import CalibrationThresholds, frame_threshold_failures, load_thresholds


logger = logging.getLogger(__name__)

HARNESS_VERSION = "1.2.0"
HARNESS_MODES = ("record", "evaluate")
DIFF_JPEG_QUALITY = 90
DEFAULT_RUNS_DIR = Path("artifacts") / "calibration" / "runs"
AGGREGATE_METRICS = (
    "mean_delta_e00",
    "p95_delta_e00",
    "mean_delta_e76",
    "p95_delta_e76",
    "luma_rmse",
    "mean_chroma_error",
    "mean_hue_drift_deg",
)


@dataclass
class HarnessRequest:
    mode: str
    manifest_path: Path
    thresholds_path: Path
    oracle_dir: Path
    oracle_index_path: Path | None = None
    output_dir: Path | None = None
    runs_root: Path | None = None
    baseline_metrics_path: Path | None = None
    require_oracle_source: str = "any"
    renderer: str = "dual"
    backend: str = "numpy"
    max_workers: int = 1
    root_dir: Path | None = None
    scalars: StrengthScalars = field(default_factory=StrengthScalars)


@dataclass
class FrameResult:
    scene_id: str
    case_id: str
    axis: str | None
    baseline_case_id: str | None
    rendered_path: str
    oracle_path: str
    oracle_source: str
    diff_path: str
    render_mode: str
    passed: bool
    threshold_failures: list[str]
    metrics: FrameMetrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "case_id": self.case_id,
            "axis": self.axis,
            "baseline_case_id": self.baseline_case_id,
            "rendered_path": self.rendered_path,
            "oracle_path": self.oracle_path,
            "oracle_source": self.oracle_source,
            "diff_path": self.diff_path,
            "render_mode": self.render_mode,
            "pass": self.passed,
            "threshold_failures": list(self.threshold_failures),
            "metrics": self.metrics.to_dict(),
        }


@dataclass
class HarnessRun:
    mode: str
    timestamp: str
    commit_sha: str
    manifest_path: str
    thresholds_path: str
    oracle_dir: str
    oracle_index_path: str
    oracle_source_policy: str
    output_dir: Path
    frame_metrics: list[FrameResult]
    directional_records: list[DirectionalRecord]
    directional_scores: list[DirectionalScore]
    aggregate: dict[str, float]
    failures: list[str]
    oracle_index_validation: OracleIndexValidation | None = None
    baseline_comparison: BaselineComparison | None = None
    metrics_path: Path | None = None
    summary_path: Path | None = None

    @property
    def passed(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": 1,
            "harness_version": HARNESS_VERSION,
            "mode": self.mode,
            "timestamp": self.timestamp,
            "commit_sha": self.commit_sha,
            "runtime": {
                "python": platform.python_version(),
                "platform": sys.platform,
                "arch": platform.machine(),
                "package_version": __version__,
            },
            "manifest_path": self.manifest_path,
            "thresholds_path": self.thresholds_path,
            "oracle_dir": self.oracle_dir,
            "oracle_index_path": self.oracle_index_path,
            "oracle_source_policy": self.oracle_source_policy,
            "oracle_index_validation": (
                self.oracle_index_validation.summary() if self.oracle_index_validation else None
            ),
            "output_dir": str(self.output_dir),
            "frame_metrics": [f.to_dict() for f in self.frame_metrics],
            "directional_records": [r.to_dict() for r in self.directional_records],
            "directional_scores": [s.to_dict() for s in self.directional_scores],
            "baseline_comparison": self.baseline_comparison.to_dict() if self.baseline_comparison else None,
            "aggregate": dict(self.aggregate),
            "failures": list(self.failures),
            "pass": self.passed,
        }

    def console_summary(self) -> dict[str, Any]:
        return {
            "pass": self.passed,
            "mode": self.mode,
            "frame_count": len(self.frame_metrics),
            "directional_axis_count": len(self.directional_scores),
            "oracle_source_policy": self.oracle_source_policy,
            "oracle_index_validated": self.oracle_index_validation is not None,
            "oracle_index_pass": self.oracle_index_validation.passed if self.oracle_index_validation else None,
            "baseline_compared": self.baseline_comparison is not None,
            "baseline_pass": self.baseline_comparison.passed if self.baseline_comparison else None,
            "failures": len(self.failures),
            "output_dir": str(self.output_dir),
            "metrics_path": str(self.metrics_path) if self.metrics_path else None,
            "summary_path": str(self.summary_path) if self.summary_path else None,
        }


@dataclass
class _FrameOutcome:
    scene_id: str
    case_id: str
    result: FrameResult | None = None
    failures: list[str] = field(default_factory=list)
    oracle_entry: dict[str, Any] | None = None


def resolve_commit_sha(root_dir: Path) -> str:
    git = shutil.which("git")
    if git is None:
        return "unknown"
    try:
        proc = subprocess.run(
            [git, "rev-parse", "--short", "HEAD"],
            cwd=str(root_dir),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return "unknown"
    if proc.returncode != 0:
        return "unknown"
    return proc.stdout.strip() or "unknown"


def build_run_token(mode: str) -> str:
    return f"{utc_token()}-{mode}-{uuid.uuid4().hex[:8]}"


def _mean(values: list[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def aggregate_frame_metrics(frames: list[FrameResult]) -> dict[str, float]:
    return {name: _mean([getattr(f.metrics, name) for f in frames]) for name in AGGREGATE_METRICS}


class CalibrationHarness:
    """Render every scene x case, compare against oracle frames, and score the run."""

    def __init__(self, request: HarnessRequest) -> None:
        if request.mode not in HARNESS_MODES:
            raise ConfigError(f'unsupported mode "{request.mode}"; use "record" or "evaluate"')
        self.request = request
        self.policy = require_oracle_source_policy(request.require_oracle_source)
        self.root_dir = Path(request.root_dir or Path.cwd()).expanduser().resolve()
        self.manifest: CalibrationManifest = load_manifest(request.manifest_path)
        self.thresholds: CalibrationThresholds = load_thresholds(request.thresholds_path)
        self.repository = OracleRepository(request.oracle_dir, request.oracle_index_path, root_dir=self.root_dir)
        self.renderer = create_renderer(request.renderer, request.backend)

        if request.output_dir is not None:
            self.output_dir = Path(request.output_dir).expanduser().resolve()
        else:
            runs_root = Path(request.runs_root) if request.runs_root else self.root_dir / DEFAULT_RUNS_DIR
            self.output_dir = (runs_root / build_run_token(request.mode)).resolve()
        self.rendered_dir = self.output_dir / "rendered"
        self.diff_dir = self.output_dir / "diff"

        self._oracle_entries: dict[tuple[str, str], dict[str, Any]] = {}

    def _rel(self, path: Path) -> str:
        return display_path(path, self.root_dir)

    def run(self) -> HarnessRun:
        req = self.request
        recording = req.mode == "record"
        logger.info(
            "calibration %s: %d scenes x %d cases, policy=%s",
            req.mode,
            len(self.manifest.scenes),
            len(self.manifest.cases),
            self.policy,
        )

        self.rendered_dir.mkdir(parents=True, exist_ok=True)
        self.diff_dir.mkdir(parents=True, exist_ok=True)
        if recording:
            self.repository.oracle_dir.mkdir(parents=True, exist_ok=True)

        failures: list[str] = []
        validation: OracleIndexValidation | None = None
        if not recording:
            if self.repository.index_exists():
                validation = self.repository.validate(self.manifest, policy=self.policy, verify_hashes=True)
                self._oracle_entries = validation.entries_by_key
                failures.extend(validation.failures)
            elif self.policy == "camera_engine":
                failures.append(
                    f"[oracle_source_policy] require-oracle-source=camera_engine requires oracle index at "
                    f"{self._rel(self.repository.index_path)}"
                )

        outcomes = self._process_all(recording)

        frames: list[FrameResult] = []
        oracle_entries: list[dict[str, Any]] = []
        for outcome in outcomes:
            failures.extend(outcome.failures)
            if outcome.result is not None:
                frames.append(outcome.result)
            if outcome.oracle_entry is not None:
                oracle_entries.append(outcome.oracle_entry)

        records, directional_failures = self._directional_records(frames)
        failures.extend(directional_failures)

        scores = aggregate_directional_scores(records, self.thresholds.directional)
        for score in scores:
            if not score.passed:
                failures.append(
                    f"[directional] axis={score.axis} score={score.score:.4f} threshold={score.threshold:.4f}"
                )

        aggregate = aggregate_frame_metrics(frames)

        baseline: BaselineComparison | None = None
        if not recording and req.baseline_metrics_path is not None:
            baseline_path = Path(req.baseline_metrics_path).expanduser().resolve()
            try:
                baseline_run = read_json(baseline_path)
            except (OSError, ValueError) as exc:
                failures.append(f"[baseline_load] {exc}")
            else:
                baseline = compare_to_baseline(
                    aggregate,
                    [s.to_dict() for s in scores],
                    baseline_run,
                    self.thresholds.regression,
                    self._rel(baseline_path),
                )
                failures.extend(baseline.failures)

        run = HarnessRun(
            mode=req.mode,
            timestamp=utc_now_iso(),
            commit_sha=resolve_commit_sha(self.root_dir),
            manifest_path=self._rel(self.manifest.path) if self.manifest.path else str(req.manifest_path),
            thresholds_path=self._rel(Path(req.thresholds_path).resolve()),
            oracle_dir=self._rel(self.repository.oracle_dir),
            oracle_index_path=self._rel(self.repository.index_path),
            oracle_source_policy=self.policy,
            output_dir=self.output_dir,
            frame_metrics=frames,
            directional_records=records,
            directional_scores=scores,
            aggregate=aggregate,
            failures=failures,
            oracle_index_validation=validation,
            baseline_comparison=baseline,
        )

        if recording:
            self.repository.write_index(
                oracle_entries,
                source_type=BOOTSTRAP_SOURCE_TYPE,
                generator="filmsim-approx run --mode record",
            )

        if run.passed:
            logger.info("calibration %s passed (%d frames)", req.mode, len(frames))
        else:
            logger.warning("calibration %s failed with %d failures", req.mode, len(failures))
        return run

    def _process_all(self, recording: bool) -> list[_FrameOutcome]:
        jobs: list[tuple[CalibrationScene, CalibrationCase, np.ndarray]] = []
        for scene in self.manifest.scenes:
            try:
                source = read_image(scene.source_path)
            except ImageDecodeError as exc:
                raise ConfigError(f"scene {scene.id}: {exc}") from exc
            normalized = resize_nearest(source, self.manifest.max_dimension)
            for case in self.manifest.cases:
                jobs.append((scene, case, normalized))

        workers = max(1, int(self.request.max_workers))
        if workers == 1:
            outcomes = [self._process_frame(scene, case, src, recording) for scene, case, src in jobs]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self._process_frame, scene, case, src, recording) for scene, case, src in jobs]
                outcomes = [f.result() for f in futures]
        return sorted(outcomes, key=lambda o: (o.scene_id, o.case_id))

    def _oracle_path_for(self, scene_id: str, case_id: str) -> Path:
        entry = self._oracle_entries.get((scene_id, case_id))
        file_path = entry.get("file_path") if entry else None
        if isinstance(file_path, str) and file_path.strip():
            return self.repository.resolve_entry_path(file_path)
        return self.repository.frame_path(scene_id, case_id)

    def _process_frame(
        self,
        scene: CalibrationScene,
        case: CalibrationCase,
        source: np.ndarray,
        recording: bool,
    ) -> _FrameOutcome:
        outcome = _FrameOutcome(scene_id=scene.id, case_id=case.id)
        params = RecipeParams.from_dict(self.manifest.case_params(case))
        uniforms = derive_uniforms(params, self.request.scalars)
        rendered = self.renderer.render(source, uniforms)
        encoded, candidate = jpeg_round_trip(rendered.frame, self.manifest.jpeg_quality)

        frame_name = oracle_frame_name(scene.id, case.id)
        rendered_path = self.rendered_dir / frame_name
        write_bytes(rendered_path, encoded)

        if recording:
            oracle_path = self.repository.frame_path(scene.id, case.id)
            outcome.oracle_entry = self.repository.write_frame(scene.id, case.id, encoded, BOOTSTRAP_SOURCE_TYPE)
            oracle = candidate
            oracle_source = BOOTSTRAP_SOURCE_TYPE
        else:
            oracle_path = self._oracle_path_for(scene.id, case.id)
            try:
                oracle = read_image(oracle_path)
            except ImageDecodeError as exc:
                outcome.failures.append(f"[missing_oracle] {scene.id}/{case.id}: {exc}")
                return outcome
            entry = self._oracle_entries.get((scene.id, case.id)) or {}
            oracle_source = str(entry.get("source_type") or "unspecified")

        try:
            metrics = compare_frames(candidate, oracle, self.manifest.metric_sample_stride)
        except FrameMismatchError as exc:
            outcome.failures.append(f"[oracle_dimension_mismatch] {scene.id}/{case.id}: {exc}")
            return outcome
        diff_path = self.diff_dir / frame_name
        write_bytes(diff_path, encode_jpeg(build_difference_visualization(candidate, oracle), DIFF_JPEG_QUALITY))

        threshold_failures = frame_threshold_failures(metrics, self.thresholds.frame)
        outcome.failures.extend(f"[frame] {scene.id}/{case.id}: {failure}" for failure in threshold_failures)
        outcome.result = FrameResult(
            scene_id=scene.id,
            case_id=case.id,
            axis=case.axis,
            baseline_case_id=case.baseline_case_id,
            rendered_path=self._rel(rendered_path),
            oracle_path=self._rel(oracle_path),
            oracle_source=oracle_source,
            diff_path=self._rel(diff_path),
            render_mode=rendered.mode,
            passed=not threshold_failures,
            threshold_failures=threshold_failures,
            metrics=metrics,
        )
        return outcome

    def _directional_records(self, frames: list[FrameResult]) -> tuple[list[DirectionalRecord], list[str]]:
        by_key = {(f.scene_id, f.case_id): f for f in frames}
        records: list[DirectionalRecord] = []
        failures: list[str] = []
        for frame in frames:
            if not frame.axis or not frame.baseline_case_id:
                continue
            baseline = by_key.get((frame.scene_id, frame.baseline_case_id))
            if baseline is None:
                failures.append(
                    f"[directional_missing_baseline] {frame.scene_id}/{frame.case_id} baseline={frame.baseline_case_id}"
                )
                continue
            reference = frame.metrics.mean_luma_oracle - baseline.metrics.mean_luma_oracle
            candidate = frame.metrics.mean_luma_candidate - baseline.metrics.mean_luma_candidate
            records.append(
                DirectionalRecord(
                    scene_id=frame.scene_id,
                    axis=frame.axis,
                    case_id=frame.case_id,
                    baseline_case_id=frame.baseline_case_id,
                    reference_delta=reference,
                    candidate_delta=candidate,
                    correct=directional_correctness(reference, candidate, HARNESS_DIRECTION_EPSILON),
                )
            )
        return records, failures


def run_harness(request: HarnessRequest) -> HarnessRun:
    """Run the harness and write metrics.json and summary.md into the run's output directory."""

    run = CalibrationHarness(request).run()
    write_reports(run)
    return run
