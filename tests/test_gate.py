from __future__ import annotations

import json
from pathlib import Path

import pytest

from filmsim_approx.calibration.baseline import lock_baseline
from filmsim_approx.calibration.gate import GateError, validate_camera_gate


def _write(path: Path, payload: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _camera_project(tmp_path: Path, policy: str = "camera_engine", source_type: str = "camera_engine_xrawstudio"):
    index = _write(
        tmp_path / "oracle" / "index.v1.json",
        {
            "source_type": source_type,
            "entries": [{"scene_id": "s1", "case_id": "base", "source_type": source_type}],
        },
    )
    run_metrics = _write(
        tmp_path / "runs" / "r1" / "metrics.json",
        {
            "timestamp": "2026-03-01T00:00:00Z",
            "oracle_source_policy": policy,
            "frame_metrics": [],
            "directional_scores": [],
            "aggregate": {},
        },
    )
    baseline = tmp_path / "baseline" / "metrics.json"
    metadata = tmp_path / "baseline" / "metadata.json"
    lock_baseline(run_metrics, baseline, metadata)
    return index, baseline, metadata


def test_gate_passes_for_camera_baseline(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path)

    result = validate_camera_gate(index, baseline, metadata, disallow_bootstrap_source=True)

    assert result.effective_policy == "camera_engine"
    assert result.source_run_timestamp == "2026-03-01T00:00:00Z"
    assert result.index_source_type == "camera_engine_xrawstudio"
    assert result.to_dict()["pass"] is True


def test_gate_requires_artifacts(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path)
    metadata.unlink()

    with pytest.raises(GateError, match="missing required camera calibration artifact"):
        validate_camera_gate(index, baseline, metadata)


def test_gate_rejects_bootstrap_baseline_policy(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path, policy="any")

    with pytest.raises(GateError, match='policy "any" violates required policy "camera_engine"'):
        validate_camera_gate(index, baseline, metadata)
    assert validate_camera_gate(index, baseline, metadata, require_baseline_policy="any").effective_policy == "any"


def test_gate_rejects_mismatched_baseline_path(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path)
    other = _write(tmp_path / "other.json", json.loads(baseline.read_text(encoding="utf-8")))

    with pytest.raises(GateError, match="does not match expected baseline metrics path"):
        validate_camera_gate(index, other, metadata)


def test_gate_relative_baseline_path_uses_root(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path)
    payload = json.loads(metadata.read_text(encoding="utf-8"))
    payload["baseline_metrics_path"] = "baseline/metrics.json"
    metadata.write_text(json.dumps(payload), encoding="utf-8")

    validate_camera_gate(index, baseline, metadata, root_dir=tmp_path)
    with pytest.raises(GateError):
        validate_camera_gate(index, baseline, metadata)


def test_gate_disallows_bootstrap_sources(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path, source_type="bootstrap_cpu_record")

    assert validate_camera_gate(index, baseline, metadata).index_source_type == "bootstrap_cpu_record"
    with pytest.raises(GateError, match="bootstrap-tagged"):
        validate_camera_gate(index, baseline, metadata, disallow_bootstrap_source=True)


def test_gate_reports_bootstrap_entries(tmp_path: Path) -> None:
    index, baseline, metadata = _camera_project(tmp_path)
    payload = json.loads(index.read_text(encoding="utf-8"))
    payload["entries"].append({"scene_id": "s2", "case_id": "base", "source_type": "Bootstrap_cpu"})
    index.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(GateError, match=r"1 bootstrap-tagged entries \(examples: s2/base:Bootstrap_cpu\)"):
        validate_camera_gate(index, baseline, metadata, disallow_bootstrap_source=True)
