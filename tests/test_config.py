from __future__ import annotations

from pathlib import Path

import pytest

from filmsim_approx.calibration.manifest import ConfigError
from filmsim_approx.config import default_config, ensure_dirs, load_config


def _write_config(tmp_path: Path, body: str) -> Path:
    cfg = tmp_path / "config" / "harness.yaml"
    cfg.parent.mkdir(parents=True, exist_ok=True)
    cfg.write_text(body, encoding="utf-8")
    return cfg


def test_load_config_resolves_relative_paths(tmp_path: Path) -> None:
    cfg = _write_config(
        tmp_path,
        """
paths:
  root_dir: ..
  manifest: cal/manifest.json
  oracle_dir: oracle
  oracle_index: oracle/custom-index.json
render:
  renderer: scalar
  max_workers: 3
  strength_scalars:
    tone_curve: 1.2
    grain: 0.8
require_oracle_source: camera_engine
log_level: DEBUG
log_file: logs/harness.log
""",
    )

    config = load_config(cfg)
    root = tmp_path.resolve()

    assert config.paths.root_dir == root
    assert config.paths.manifest_path == root / "cal" / "manifest.json"
    assert config.paths.oracle_dir == root / "oracle"
    assert config.paths.oracle_index_path == root / "oracle" / "custom-index.json"
    assert config.paths.thresholds_path == root / "calibration" / "thresholds.v1.json"
    assert config.paths.runs_root == root / "artifacts" / "calibration" / "runs"
    assert config.render.renderer == "scalar"
    assert config.render.backend == "numpy"
    assert config.render.max_workers == 3
    assert config.render.strength_scalars.tone_curve == 1.2
    assert config.render.strength_scalars.grain == 0.8
    assert config.require_oracle_source == "camera_engine"
    assert config.log_level == "DEBUG"
    assert config.log_file == root / "logs" / "harness.log"

    ensure_dirs(config)
    assert config.paths.oracle_dir.is_dir()
    assert config.log_file.parent.is_dir()


def test_empty_config_uses_defaults(tmp_path: Path) -> None:
    config = load_config(_write_config(tmp_path, ""))
    root = (tmp_path / "config").resolve()

    assert config.paths.root_dir == root
    assert config.paths.manifest_path == root / "calibration" / "manifest.v1.json"
    assert config.paths.oracle_index_path is None
    assert config.render.renderer == "dual"
    assert config.require_oracle_source == "any"
    assert config.log_file is None


def test_invalid_config_values(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="render.renderer"):
        load_config(_write_config(tmp_path, "render:\n  renderer: gpu\n"))
    with pytest.raises(ConfigError, match="unsupported oracle source policy"):
        load_config(_write_config(tmp_path, "require_oracle_source: strict\n"))
    with pytest.raises(ConfigError, match="must be a mapping"):
        load_config(_write_config(tmp_path, "- a\n- b\n"))


def test_default_config_layout(tmp_path: Path) -> None:
    config = default_config(tmp_path)

    assert config.paths.oracle_dir == tmp_path.resolve() / "artifacts" / "calibration" / "oracle-v1"
    assert config.paths.baseline_metrics_path == tmp_path.resolve() / "calibration" / "baseline" / "metrics.v1.json"
