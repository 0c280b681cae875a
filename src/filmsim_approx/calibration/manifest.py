from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from typing import Any

from filmsim_approx.engine.params import merge_params


DEFAULT_JPEG_QUALITY = 98
DEFAULT_SAMPLE_STRIDE = 1


class ConfigError(ValueError):
    """Malformed manifest, thresholds, policy or harness configuration."""


@dataclass(frozen=True)
class CalibrationScene:
    id: str
    source_path: Path


@dataclass(frozen=True)
class CalibrationCase:
    id: str
    overrides: dict[str, Any] = field(default_factory=dict)
    axis: str | None = None
    baseline_case_id: str | None = None

    @property
    def is_directional(self) -> bool:
        return bool(self.axis) and bool(self.baseline_case_id)


@dataclass
class CalibrationManifest:
    scenes: list[CalibrationScene]
    cases: list[CalibrationCase]
    base_params: dict[str, Any]
    max_dimension: int
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    metric_sample_stride: int = DEFAULT_SAMPLE_STRIDE
    path: Path | None = None

    def case_params(self, case: CalibrationCase) -> dict[str, Any]:
        return merge_params(self.base_params, case.overrides)

    def expected_pairs(self) -> list[tuple[str, str]]:
        return [(scene.id, case.id) for scene in self.scenes for case in self.cases]


def read_json(path: Path) -> Any:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _require_id(raw: Any, what: str) -> str:
    value = raw.get("id") if isinstance(raw, dict) else None
    if not isinstance(value, str) or not value:
        raise ConfigError(f"calibration manifest {what}.id must be a non-empty string")
    return value


def _resolve(value: str, base: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def parse_manifest(raw: Any, base_dir: Path) -> CalibrationManifest:
    """Validate the manifest document; scene source paths resolve against base_dir."""

    if not isinstance(raw, dict):
        raise ConfigError("calibration manifest must be an object")
    scenes_raw = raw.get("scenes")
    cases_raw = raw.get("cases")
    if not isinstance(scenes_raw, list) or not scenes_raw:
        raise ConfigError("calibration manifest must include at least one scene")
    if not isinstance(cases_raw, list) or not cases_raw:
        raise ConfigError("calibration manifest must include at least one case")
    base_params = raw.get("base_params")
    if not isinstance(base_params, dict):
        raise ConfigError("calibration manifest must include base_params")

    scenes: list[CalibrationScene] = []
    for scene_raw in scenes_raw:
        scene_id = _require_id(scene_raw, "scene")
        source = scene_raw.get("source_path")
        if not isinstance(source, str) or not source:
            raise ConfigError(f"calibration manifest scene {scene_id} is missing source_path")
        scenes.append(CalibrationScene(id=scene_id, source_path=_resolve(source, base_dir)))

    cases: list[CalibrationCase] = []
    for case_raw in cases_raw:
        case_id = _require_id(case_raw, "case")
        overrides = case_raw.get("overrides") or {}
        if not isinstance(overrides, dict):
            raise ConfigError(f"calibration manifest case {case_id} overrides must be an object")
        cases.append(
            CalibrationCase(
                id=case_id,
                overrides=dict(overrides),
                axis=case_raw.get("axis") or None,
                baseline_case_id=case_raw.get("baseline_case_id") or None,
            )
        )

    try:
        max_dimension = int(raw.get("max_dimension"))
    except (TypeError, ValueError) as exc:
        raise ConfigError("calibration manifest max_dimension must be an integer") from exc
    if max_dimension < 1:
        raise ConfigError("calibration manifest max_dimension must be >= 1")

    return CalibrationManifest(
        scenes=scenes,
        cases=cases,
        base_params=dict(base_params),
        max_dimension=max_dimension,
        jpeg_quality=int(raw.get("jpeg_quality", DEFAULT_JPEG_QUALITY)),
        metric_sample_stride=max(1, int(raw.get("metric_sample_stride", DEFAULT_SAMPLE_STRIDE))),
    )


def load_manifest(path: str | Path) -> CalibrationManifest:
    manifest_path = Path(path).expanduser().resolve()
    try:
        raw = read_json(manifest_path)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"cannot load calibration manifest {manifest_path}: {exc}") from exc
    manifest = parse_manifest(raw, manifest_path.parent)
    manifest.path = manifest_path
    return manifest
