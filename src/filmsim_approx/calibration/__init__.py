from .baseline import BaselineComparison, compare_to_baseline, find_latest_run_metrics, lock_baseline
from .directional import DirectionalRecord, DirectionalScore, aggregate_directional_scores, directional_correctness
from .gate import GateError, validate_camera_gate
from .harness import CalibrationHarness, HarnessRequest, HarnessRun, run_harness
from .manifest import CalibrationCase, CalibrationManifest, CalibrationScene, ConfigError, load_manifest
from .oracle_index import (
    ORACLE_SOURCE_POLICIES,
    OracleIndexValidation,
    OracleRepository,
    import_camera_oracle,
    is_oracle_source_type_allowed,
)
from .thresholds import CalibrationThresholds, frame_threshold_failures, load_thresholds
from .tuning import build_tuning_report, render_tuning_markdown

__all__ = [
    "BaselineComparison",
    "compare_to_baseline",
    "find_latest_run_metrics",
    "lock_baseline",
    "DirectionalRecord",
    "DirectionalScore",
    "aggregate_directional_scores",
    "directional_correctness",
    "GateError",
    "validate_camera_gate",
    "CalibrationHarness",
    "HarnessRequest",
    "HarnessRun",
    "run_harness",
    "CalibrationCase",
    "CalibrationManifest",
    "CalibrationScene",
    "ConfigError",
    "load_manifest",
    "ORACLE_SOURCE_POLICIES",
    "OracleIndexValidation",
    "OracleRepository",
    "import_camera_oracle",
    "is_oracle_source_type_allowed",
    "CalibrationThresholds",
    "frame_threshold_failures",
    "load_thresholds",
    "build_tuning_report",
    "render_tuning_markdown",
]
