from __future__ import annotations

import json
from pathlib import Path

import pytest

from filmsim_approx.cli import main


def _common(root: Path) -> list[str]:
    return ["--root", str(root), "--log-level", "WARNING"]


def _run(root: Path, mode: str, out: str, *extra: str) -> list[str]:
    return [
        "run",
        *_common(root),
        "--mode",
        mode,
        "--oracle-dir",
        str(root / "oracle"),
        "--output-dir",
        str(root / "runs" / out),
        *extra,
    ]


def _last_json(capsys: pytest.CaptureFixture[str]) -> dict:
    return json.loads(capsys.readouterr().out)


def test_run_record_and_evaluate(calibration_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(_run(calibration_root, "record", "record")) == 0
    recorded = _last_json(capsys)
    assert recorded["pass"] is True
    assert recorded["frame_count"] == 2

    assert main(_run(calibration_root, "evaluate", "evaluate")) == 0
    evaluated = _last_json(capsys)
    assert evaluated["oracle_index_pass"] is True
    assert evaluated["baseline_compared"] is False
    assert Path(evaluated["metrics_path"]).is_file()


def test_evaluate_failure_exit_code(calibration_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(_run(calibration_root, "evaluate", "evaluate", "--require-oracle-source", "camera_engine")) == 1
    assert _last_json(capsys)["pass"] is False


def test_validate_index(calibration_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    args = ["validate-index", *_common(calibration_root), "--oracle-dir", str(calibration_root / "oracle")]
    assert main(args) == 1
    assert _last_json(capsys)["failures"][0].startswith("[oracle_index_load]")

    main(_run(calibration_root, "record", "record"))
    capsys.readouterr()
    assert main(args) == 0
    assert _last_json(capsys)["validated_entries"] == 2


def test_lock_baseline_and_tune_report(calibration_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(_run(calibration_root, "record", "record"))
    capsys.readouterr()
    metrics = calibration_root / "runs" / "record" / "metrics.json"

    assert main(["lock-baseline", *_common(calibration_root), "--source", str(metrics)]) == 0
    locked = _last_json(capsys)
    assert Path(locked["baseline_metrics_path"]) == calibration_root.resolve() / "calibration" / "baseline" / "metrics.v1.json"

    assert main(["tune-report", *_common(calibration_root), "--metrics", str(metrics)]) == 0
    report = _last_json(capsys)
    assert report["low_signal"] is True
    assert (calibration_root / "runs" / "record" / "tuning-report.md").is_file()

    assert main(["tune-report", *_common(calibration_root), "--metrics", str(metrics), "--fail-on-low-signal"]) == 1


def test_gate_without_camera_artifacts(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["gate", *_common(tmp_path), "--validate-only"]) == 1
    assert "missing required camera calibration artifact" in capsys.readouterr().err


def test_import_oracle_dry_run(calibration_root: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exports = calibration_root / "exports"
    exports.mkdir()
    scene = (calibration_root / "calibration" / "scenes" / "s1.jpg").read_bytes()
    for case_id in ("base", "highlight_plus2"):
        (exports / f"s1__{case_id}.jpg").write_bytes(scene)

    assert main(["import-oracle", *_common(calibration_root), "--source-dir", str(exports), "--dry-run"]) == 0
    payload = _last_json(capsys)
    assert payload["dry_run"] is True
    assert payload["imported_entries"] == 2
