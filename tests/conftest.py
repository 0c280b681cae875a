from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np
import pytest
from PIL import Image


def write_scene_image(path: Path, width: int = 48, height: int = 32) -> Path:
    xs = np.linspace(30, 225, width)
    ys = np.linspace(50, 205, height)
    frame = np.empty((height, width, 3), dtype=np.uint8)
    frame[..., 0] = np.rint(xs)[None, :]
    frame[..., 1] = np.rint(ys)[:, None]
    frame[..., 2] = np.rint((xs[None, :] + ys[:, None]) / 2)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(frame).save(path, format="JPEG", quality=95)
    return path


def manifest_payload() -> dict[str, Any]:
    return {
        "scenes": [{"id": "s1", "source_path": "scenes/s1.jpg"}],
        "cases": [
            {"id": "base", "overrides": {}},
            {
                "id": "highlight_plus2",
                "overrides": {"highlight": 2},
                "axis": "highlight",
                "baseline_case_id": "base",
            },
        ],
        "base_params": {"film_sim": "provia", "dynamic_range": "dr100"},
        "max_dimension": 32,
        "jpeg_quality": 95,
    }


def thresholds_payload() -> dict[str, Any]:
    return {
        "frame": {
            "max_mean_delta_e00": 0.5,
            "max_p95_delta_e00": 1.0,
            "max_luma_rmse": 0.01,
            "max_mean_chroma_error": 0.5,
            "max_mean_hue_drift_deg": 1.0,
        },
        "directional": {
            "critical_min_score": 1.0,
            "secondary_min_score": 0.95,
            "axis_classification": {"highlight": "critical"},
        },
        "regression": {
            "max_aggregate_delta": {"mean_delta_e00": 0.3, "p95_delta_e00": 0.5},
            "max_directional_score_drop": 0.05,
        },
    }


@pytest.fixture
def calibration_root(tmp_path: Path) -> Path:
    """Project root with one scene image, a two-case manifest and thresholds under calibration/."""

    write_scene_image(tmp_path / "calibration" / "scenes" / "s1.jpg")
    (tmp_path / "calibration" / "manifest.v1.json").write_text(json.dumps(manifest_payload()), encoding="utf-8")
    (tmp_path / "calibration" / "thresholds.v1.json").write_text(json.dumps(thresholds_payload()), encoding="utf-8")
    return tmp_path
