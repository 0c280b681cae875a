from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any

from filmsim_approx.calibration.baseline import assert_metrics_shape, find_latest_run_metrics, lock_baseline
from filmsim_approx.calibration.gate import validate_camera_gate
from filmsim_approx.calibration.harness import HarnessRequest, resolve_commit_sha, run_harness
from filmsim_approx.calibration.manifest import ConfigError, load_manifest, read_json
from filmsim_approx.calibration.oracle_index import (
    DEFAULT_CAMERA_SOURCE_TYPE,
    ORACLE_SOURCE_POLICIES,
    OracleRepository,
    import_camera_oracle,
)
from filmsim_approx.calibration.thresholds import load_thresholds
from filmsim_approx.calibration.tuning import build_tuning_report, render_tuning_markdown
from filmsim_approx.config import HarnessConfig, default_config, ensure_dirs, load_config
from filmsim_approx.render.dual import RENDERER_KINDS
from filmsim_approx.utils.logging_utils import configure_logging


logger = logging.getLogger(__name__)

CAMERA_ORACLE_DIR = "artifacts/calibration/oracle-camera-engine-v1"
CAMERA_EXPORTS_DIR = "artifacts/calibration/camera-engine-exports"
CAMERA_BASELINE_METRICS = "calibration/baseline/metrics.camera_engine.v1.json"
CAMERA_BASELINE_METADATA = "calibration/baseline/metadata.camera_engine.v1.json"


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", default=None, help="Optional YAML harness config")
    p.add_argument("--root", default=None, help="Repository root for default paths (default: cwd)")
    p.add_argument("--log-level", default=None, help="Override config log level")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filmsim-approx")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the calibration harness (record or evaluate)")
    _add_common(run)
    run.add_argument("--mode", choices=("record", "evaluate"), default="evaluate")
    run.add_argument("--manifest", default=None, help="Calibration manifest JSON")
    run.add_argument("--thresholds", default=None, help="Calibration thresholds JSON")
    run.add_argument("--oracle-dir", default=None, help="Oracle frame directory")
    run.add_argument("--oracle-index", default=None, help="Oracle index JSON (default: <oracle-dir>/index.v1.json)")
    run.add_argument("--output-dir", default=None, help="Run output directory (default: new dir under runs root)")
    run.add_argument("--baseline-metrics", default=None, help="Locked baseline metrics.json to compare against")
    run.add_argument(
        "--compare-baseline",
        action="store_true",
        help="Compare against the config's baseline metrics path",
    )
    run.add_argument("--require-oracle-source", choices=ORACLE_SOURCE_POLICIES, default=None)
    run.add_argument("--renderer", choices=RENDERER_KINDS, default=None)
    run.add_argument("--backend", default=None, help="Parallel path backend")
    run.add_argument("--max-workers", type=int, default=None, help="Frame worker threads")

    validate = sub.add_parser("validate-index", help="Validate an oracle index against a manifest")
    _add_common(validate)
    validate.add_argument("--manifest", default=None)
    validate.add_argument("--oracle-dir", default=None)
    validate.add_argument("--oracle-index", default=None)
    validate.add_argument("--require-oracle-source", choices=ORACLE_SOURCE_POLICIES, default=None)
    validate.add_argument("--skip-hashes", action="store_true", help="Skip file containment and hash checks")

    lock = sub.add_parser("lock-baseline", help="Lock a run's metrics.json as the regression baseline")
    _add_common(lock)
    lock.add_argument("--source", default=None, help="Run metrics.json (default: latest run)")
    lock.add_argument("--target", default=None, help="Baseline metrics destination")
    lock.add_argument("--metadata", default=None, help="Baseline metadata destination")
    lock.add_argument("--require-oracle-source", choices=ORACLE_SOURCE_POLICIES, default=None)

    imp = sub.add_parser("import-oracle", help="Import camera-engine exports as oracle frames")
    _add_common(imp)
    imp.add_argument("--manifest", default=None)
    imp.add_argument("--source-dir", default=None, help=f"Export directory (default: {CAMERA_EXPORTS_DIR})")
    imp.add_argument("--oracle-dir", default=None, help=f"Destination (default: {CAMERA_ORACLE_DIR})")
    imp.add_argument("--oracle-index", default=None)
    imp.add_argument("--source-type", default=DEFAULT_CAMERA_SOURCE_TYPE)
    imp.add_argument("--dry-run", action="store_true")

    tune = sub.add_parser("tune-report", help="Build a tuning report from a run's metrics.json")
    _add_common(tune)
    tune.add_argument("--metrics", default=None, help="Run metrics.json (default: latest run)")
    tune.add_argument("--thresholds", default=None)
    tune.add_argument("--output", default=None, help="Markdown output (default: next to metrics.json)")
    tune.add_argument("--require-oracle-source", choices=ORACLE_SOURCE_POLICIES, default=None)
    tune.add_argument("--fail-on-low-signal", action="store_true")

    gate = sub.add_parser("gate", help="Strict camera-oracle gate: preconditions, index check, evaluate")
    _add_common(gate)
    gate.add_argument("--oracle-index", default=None, help=f"Default: {CAMERA_ORACLE_DIR}/index.v1.json")
    gate.add_argument("--baseline-metrics", default=None, help=f"Default: {CAMERA_BASELINE_METRICS}")
    gate.add_argument("--baseline-metadata", default=None, help=f"Default: {CAMERA_BASELINE_METADATA}")
    gate.add_argument("--manifest", default=None)
    gate.add_argument("--thresholds", default=None)
    gate.add_argument("--require-oracle-source", choices=ORACLE_SOURCE_POLICIES, default="camera_engine")
    gate.add_argument("--require-baseline-policy", choices=ORACLE_SOURCE_POLICIES, default="camera_engine")
    gate.add_argument("--validate-only", action="store_true", help="Check preconditions only")
    gate.add_argument("--disallow-bootstrap-source", action="store_true")

    return parser


def _load(args: argparse.Namespace) -> HarnessConfig:
    if args.config:
        config = load_config(args.config)
    else:
        config = default_config(Path(args.root) if args.root else None)
    configure_logging(args.log_level or config.log_level, config.log_file)
    return config


def _path(value: str | None, default: Path | None = None) -> Path | None:
    if not value:
        return default
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path.resolve()


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load(args)
    ensure_dirs(config)
    paths = config.paths

    baseline = _path(args.baseline_metrics)
    if baseline is None and args.compare_baseline:
        baseline = paths.baseline_metrics_path

    request = HarnessRequest(
        mode=args.mode,
        manifest_path=_path(args.manifest, paths.manifest_path),
        thresholds_path=_path(args.thresholds, paths.thresholds_path),
        oracle_dir=_path(args.oracle_dir, paths.oracle_dir),
        oracle_index_path=_path(args.oracle_index, paths.oracle_index_path),
        output_dir=_path(args.output_dir),
        runs_root=paths.runs_root,
        baseline_metrics_path=baseline,
        require_oracle_source=args.require_oracle_source or config.require_oracle_source,
        renderer=args.renderer or config.render.renderer,
        backend=args.backend or config.render.backend,
        max_workers=args.max_workers or config.render.max_workers,
        root_dir=paths.root_dir,
        scalars=config.render.strength_scalars,
    )
    run = run_harness(request)
    _emit(run.console_summary())
    if args.mode == "evaluate" and not run.passed:
        return 1
    return 0


def _cmd_validate_index(args: argparse.Namespace) -> int:
    config = _load(args)
    paths = config.paths
    manifest = load_manifest(_path(args.manifest, paths.manifest_path))
    repository = OracleRepository(
        _path(args.oracle_dir, paths.oracle_dir),
        _path(args.oracle_index, paths.oracle_index_path),
        root_dir=paths.root_dir,
    )
    validation = repository.validate(
        manifest,
        policy=args.require_oracle_source or config.require_oracle_source,
        verify_hashes=not args.skip_hashes,
    )
    _emit(
        {
            **validation.summary(),
            "oracle_index_path": validation.oracle_index_path,
            "source_policy": validation.source_policy,
            "failures": validation.failures,
        }
    )
    return 0 if validation.passed else 1


def _cmd_lock_baseline(args: argparse.Namespace) -> int:
    config = _load(args)
    paths = config.paths
    source = _path(args.source) or find_latest_run_metrics(paths.runs_root, args.require_oracle_source)
    target = _path(args.target, paths.baseline_metrics_path)
    metadata_path = _path(args.metadata, paths.baseline_metadata_path)
    if target is None or metadata_path is None:
        raise ConfigError("baseline target and metadata paths are required")

    metadata = lock_baseline(
        source,
        target,
        metadata_path,
        require_oracle_source=args.require_oracle_source,
        commit=resolve_commit_sha(paths.root_dir),
    )
    _emit(
        {
            "pass": True,
            "source_metrics_path": metadata["source_metrics_path"],
            "baseline_metrics_path": metadata["baseline_metrics_path"],
            "baseline_metadata_path": str(metadata_path),
        }
    )
    return 0


def _cmd_import_oracle(args: argparse.Namespace) -> int:
    config = _load(args)
    paths = config.paths
    manifest = load_manifest(_path(args.manifest, paths.manifest_path))
    repository = OracleRepository(
        _path(args.oracle_dir, paths.root_dir / CAMERA_ORACLE_DIR),
        _path(args.oracle_index),
        root_dir=paths.root_dir,
    )
    result = import_camera_oracle(
        manifest,
        _path(args.source_dir, paths.root_dir / CAMERA_EXPORTS_DIR),
        repository,
        source_type=args.source_type,
        dry_run=args.dry_run,
    )
    _emit({**result.to_dict(), "oracle_index_path": str(repository.index_path)})
    return 0 if result.passed else 1


def _cmd_tune_report(args: argparse.Namespace) -> int:
    config = _load(args)
    paths = config.paths
    metrics_path = _path(args.metrics) or find_latest_run_metrics(paths.runs_root, args.require_oracle_source)
    metrics = assert_metrics_shape(read_json(metrics_path), require_records=True)

    thresholds_path = _path(args.thresholds, paths.thresholds_path)
    try:
        thresholds = load_thresholds(thresholds_path)
    except ConfigError as exc:
        logger.warning("tuning report without thresholds: %s", exc)
        thresholds = None

    report = build_tuning_report(metrics, thresholds, metrics_path=str(metrics_path))
    output = _path(args.output, metrics_path.parent / "tuning-report.md")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_tuning_markdown(report), encoding="utf-8")

    passed = not (args.fail_on_low_signal and report.signal.low_signal)
    _emit(
        {
            "pass": passed,
            "metrics_path": str(metrics_path),
            "output_path": str(output),
            "low_signal": report.signal.low_signal,
            "reasons": report.signal.reasons,
            "axes": [
                {"axis": a.axis, "status": a.action.status if a.action else None} for a in report.axes
            ],
        }
    )
    return 0 if passed else 1


def _cmd_gate(args: argparse.Namespace) -> int:
    config = _load(args)
    paths = config.paths
    root = paths.root_dir
    index_path = _path(args.oracle_index, root / CAMERA_ORACLE_DIR / "index.v1.json")
    baseline_path = _path(args.baseline_metrics, root / CAMERA_BASELINE_METRICS)

    result = validate_camera_gate(
        index_path,
        baseline_path,
        _path(args.baseline_metadata, root / CAMERA_BASELINE_METADATA),
        require_baseline_policy=args.require_baseline_policy,
        disallow_bootstrap_source=args.disallow_bootstrap_source,
        root_dir=root,
    )
    payload = {**result.to_dict(), "validate_only": args.validate_only}
    if args.validate_only:
        _emit(payload)
        return 0

    manifest_path = _path(args.manifest, paths.manifest_path)
    repository = OracleRepository(index_path.parent, index_path, root_dir=root)
    validation = repository.validate(load_manifest(manifest_path), policy=args.require_oracle_source)
    if not validation.passed:
        _emit({**payload, "pass": False, "oracle_index_failures": validation.failures})
        return 1

    run = run_harness(
        HarnessRequest(
            mode="evaluate",
            manifest_path=manifest_path,
            thresholds_path=_path(args.thresholds, paths.thresholds_path),
            oracle_dir=index_path.parent,
            oracle_index_path=index_path,
            runs_root=paths.runs_root,
            baseline_metrics_path=baseline_path,
            require_oracle_source=args.require_oracle_source,
            renderer=config.render.renderer,
            backend=config.render.backend,
            max_workers=config.render.max_workers,
            root_dir=root,
            scalars=config.render.strength_scalars,
        )
    )
    _emit({**payload, "pass": run.passed, "evaluate": run.console_summary()})
    return 0 if run.passed else 1


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "run":
            return _cmd_run(args)
        if args.command == "validate-index":
            return _cmd_validate_index(args)
        if args.command == "lock-baseline":
            return _cmd_lock_baseline(args)
        if args.command == "import-oracle":
            return _cmd_import_oracle(args)
        if args.command == "tune-report":
            return _cmd_tune_report(args)
        if args.command == "gate":
            return _cmd_gate(args)

        parser.error(f"unknown command: {args.command}")
        return 2
    except Exception as exc:
        logger.exception("fatal error")
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
