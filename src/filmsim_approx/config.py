from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from filmsim_approx.calibration.manifest import ConfigError
from filmsim_approx.calibration.oracle_index import require_oracle_source_policy
from filmsim_approx.engine.params import StrengthScalars
from filmsim_approx.render.dual import RENDERER_KINDS


DEFAULT_MANIFEST = "calibration/manifest.v1.json"
DEFAULT_THRESHOLDS = "calibration/thresholds.v1.json"
DEFAULT_ORACLE_DIR = "artifacts/calibration/oracle-v1"
DEFAULT_RUNS_ROOT = "artifacts/calibration/runs"
DEFAULT_BASELINE_METRICS = "calibration/baseline/metrics.v1.json"
DEFAULT_BASELINE_METADATA = "calibration/baseline/metadata.v1.json"


@dataclass
class PathsConfig:
    root_dir: Path
    manifest_path: Path
    thresholds_path: Path
    oracle_dir: Path
    runs_root: Path
    oracle_index_path: Path | None = None
    baseline_metrics_path: Path | None = None
    baseline_metadata_path: Path | None = None


@dataclass
class RenderConfig:
    renderer: str = "dual"
    backend: str = "numpy"
    max_workers: int = 1
    strength_scalars: StrengthScalars = field(default_factory=StrengthScalars)


@dataclass
class HarnessConfig:
    paths: PathsConfig
    render: RenderConfig = field(default_factory=RenderConfig)
    require_oracle_source: str = "any"
    log_level: str = "INFO"
    log_file: Path | None = None


def _expand_path(value: str | None, base: Path) -> Path | None:
    if value in (None, ""):
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def load_config(path: str | Path) -> HarnessConfig:
    """Load a YAML harness config; relative paths resolve against ``paths.root_dir``
    (itself relative to the config file's directory)."""

    try:
        import yaml  # type: ignore
    except Exception as exc:
        raise RuntimeError("PyYAML is required for config loading. Install with: pip install PyYAML") from exc

    cfg_path = Path(path).expanduser().resolve()
    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"config {cfg_path} must be a mapping")

    paths_raw = raw.get("paths", {}) or {}
    render_raw = raw.get("render", {}) or {}

    root = _expand_path(paths_raw.get("root_dir"), cfg_path.parent) or cfg_path.parent
    paths = PathsConfig(
        root_dir=root,
        manifest_path=_expand_path(paths_raw.get("manifest", DEFAULT_MANIFEST), root) or root,
        thresholds_path=_expand_path(paths_raw.get("thresholds", DEFAULT_THRESHOLDS), root) or root,
        oracle_dir=_expand_path(paths_raw.get("oracle_dir", DEFAULT_ORACLE_DIR), root) or root,
        runs_root=_expand_path(paths_raw.get("runs_root", DEFAULT_RUNS_ROOT), root) or root,
        oracle_index_path=_expand_path(paths_raw.get("oracle_index"), root),
        baseline_metrics_path=_expand_path(paths_raw.get("baseline_metrics", DEFAULT_BASELINE_METRICS), root),
        baseline_metadata_path=_expand_path(paths_raw.get("baseline_metadata", DEFAULT_BASELINE_METADATA), root),
    )

    renderer = str(render_raw.get("renderer", "dual"))
    if renderer not in RENDERER_KINDS:
        raise ConfigError(f"render.renderer must be one of {', '.join(RENDERER_KINDS)}, got {renderer}")
    render = RenderConfig(
        renderer=renderer,
        backend=str(render_raw.get("backend", "numpy")),
        max_workers=max(1, int(render_raw.get("max_workers", 1))),
        strength_scalars=StrengthScalars.from_dict(render_raw.get("strength_scalars")),
    )

    return HarnessConfig(
        paths=paths,
        render=render,
        require_oracle_source=require_oracle_source_policy(str(raw.get("require_oracle_source", "any"))),
        log_level=str(raw.get("log_level", "INFO")),
        log_file=_expand_path(raw.get("log_file"), root),
    )


def ensure_dirs(config: HarnessConfig) -> None:
    config.paths.runs_root.mkdir(parents=True, exist_ok=True)
    config.paths.oracle_dir.mkdir(parents=True, exist_ok=True)
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)


def default_config(root_dir: Path | None = None) -> HarnessConfig:
    """Conventional repository layout rooted at root_dir (the working directory by default)."""

    root = Path(root_dir or Path.cwd()).expanduser().resolve()
    return HarnessConfig(
        paths=PathsConfig(
            root_dir=root,
            manifest_path=root / DEFAULT_MANIFEST,
            thresholds_path=root / DEFAULT_THRESHOLDS,
            oracle_dir=root / DEFAULT_ORACLE_DIR,
            runs_root=root / DEFAULT_RUNS_ROOT,
            baseline_metrics_path=root / DEFAULT_BASELINE_METRICS,
            baseline_metadata_path=root / DEFAULT_BASELINE_METADATA,
        )
    )
