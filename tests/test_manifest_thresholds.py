from __future__ import annotations

import json
from pathlib import Path

import pytest

from filmsim_approx.calibration.manifest import ConfigError, load_manifest, parse_manifest
from filmsim_approx.calibration.thresholds import FrameThresholds, frame_threshold_failures, parse_thresholds
from filmsim_approx.metrics import FrameMetrics


def _metrics(**overrides) -> FrameMetrics:
    values = dict(
        sample_count=10,
        mean_delta_e00=1.0,
        p95_delta_e00=2.0,
        mean_delta_e76=1.5,
        p95_delta_e76=3.0,
        luma_rmse=0.02,
        mean_chroma_error=0.5,
        mean_hue_drift_deg=1.0,
        mean_abs_rgb=0.01,
        mean_luma_candidate=0.2,
        mean_luma_oracle=0.21,
    )
    values.update(overrides)
    return FrameMetrics(**values)


def test_load_manifest_resolves_scene_paths(calibration_root: Path) -> None:
    manifest = load_manifest(calibration_root / "calibration" / "manifest.v1.json")

    assert manifest.scenes[0].source_path == (calibration_root / "calibration" / "scenes" / "s1.jpg").resolve()
    assert manifest.expected_pairs() == [("s1", "base"), ("s1", "highlight_plus2")]
    assert manifest.jpeg_quality == 95
    assert manifest.metric_sample_stride == 1
    directional = manifest.cases[1]
    assert directional.is_directional
    assert not manifest.cases[0].is_directional
    assert manifest.case_params(directional)["highlight"] == 2
    assert manifest.case_params(directional)["film_sim"] == "provia"


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ([], "must be an object"),
        ({"scenes": [], "cases": [{"id": "c"}], "base_params": {}, "max_dimension": 8}, "at least one scene"),
        ({"scenes": [{"id": "s", "source_path": "a.jpg"}], "cases": [], "base_params": {}, "max_dimension": 8}, "at least one case"),
        ({"scenes": [{"id": "s", "source_path": "a.jpg"}], "cases": [{"id": "c"}], "max_dimension": 8}, "base_params"),
        ({"scenes": [{"id": ""}], "cases": [{"id": "c"}], "base_params": {}, "max_dimension": 8}, "scene.id"),
        ({"scenes": [{"id": "s"}], "cases": [{"id": "c"}], "base_params": {}, "max_dimension": 8}, "missing source_path"),
        ({"scenes": [{"id": "s", "source_path": "a.jpg"}], "cases": [{"id": "c"}], "base_params": {}}, "max_dimension"),
        ({"scenes": [{"id": "s", "source_path": "a.jpg"}], "cases": [{"id": "c"}], "base_params": {}, "max_dimension": 0}, ">= 1"),
    ],
)
def test_manifest_rejects_malformed_documents(tmp_path: Path, raw, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        parse_manifest(raw, tmp_path)


def test_manifest_load_errors_are_config_errors(tmp_path: Path) -> None:
    bad = tmp_path / "manifest.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="cannot load calibration manifest"):
        load_manifest(bad)


def test_thresholds_accept_legacy_e76_keys() -> None:
    thresholds = parse_thresholds(
        {"frame": {"max_mean_delta_e76": 2.0, "max_p95_delta_e76": 4.0}, "directional": {}}
    )
    assert thresholds.frame.max_mean_delta_e00 == 2.0
    assert thresholds.frame.max_p95_delta_e00 == 4.0
    assert thresholds.regression is None
    assert thresholds.directional.classify("chrome") == "secondary"
    assert thresholds.directional.threshold_for("critical") == 1.0


def test_thresholds_require_mean_limit() -> None:
    with pytest.raises(ConfigError, match="max_mean_delta_e00"):
        parse_thresholds({"frame": {"max_luma_rmse": 0.1}, "directional": {}})
    with pytest.raises(ConfigError, match="directional"):
        parse_thresholds({"frame": {"max_mean_delta_e00": 1.0}})


def test_regression_limits_parse(calibration_root: Path) -> None:
    raw = json.loads((calibration_root / "calibration" / "thresholds.v1.json").read_text(encoding="utf-8"))
    regression = parse_thresholds(raw).regression

    assert regression is not None
    assert regression.max_aggregate_delta == {"mean_delta_e00": 0.3, "p95_delta_e00": 0.5}
    assert regression.max_directional_score_drop == 0.05


def test_frame_threshold_failures() -> None:
    limits = FrameThresholds(max_mean_delta_e00=0.5, max_p95_delta_e00=5.0, max_luma_rmse=0.01)

    assert frame_threshold_failures(_metrics(), limits) == [
        "mean_delta_e00 1.0000 > 0.5",
        "luma_rmse 0.020000 > 0.01",
    ]
    assert frame_threshold_failures(_metrics(mean_delta_e00=0.5, luma_rmse=0.01), limits) == []
