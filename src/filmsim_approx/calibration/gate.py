from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .manifest import read_json
from .oracle_index import is_bootstrap_source_type, require_oracle_source_policy


BOOTSTRAP_PREVIEW = 5


class GateError(RuntimeError):
    """Camera gate precondition not met."""


@dataclass
class GateResult:
    oracle_index_path: Path
    baseline_metrics_path: Path
    baseline_metadata_path: Path
    require_baseline_policy: str
    disallow_bootstrap_source: bool
    effective_policy: str | None
    source_run_timestamp: str | None = None
    index_source_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": True,
            "camera_oracle_index": str(self.oracle_index_path),
            "camera_baseline_metrics": str(self.baseline_metrics_path),
            "camera_baseline_metadata": str(self.baseline_metadata_path),
            "require_baseline_policy": self.require_baseline_policy,
            "disallow_bootstrap_source": self.disallow_bootstrap_source,
            "baseline_metadata": {
                "effective_policy": self.effective_policy,
                "source_run_timestamp": self.source_run_timestamp,
            },
            "oracle_source_summary": {"index_source_type": self.index_source_type},
        }


def _require_file(path: Path, label: str) -> Path:
    path = Path(path).expanduser().resolve()
    if not path.is_file():
        raise GateError(
            f"missing required camera calibration artifact: {path} ({label}). "
            "Import the camera oracle and lock a camera baseline first."
        )
    return path


def _read(path: Path, label: str) -> Any:
    try:
        return read_json(path)
    except (OSError, ValueError) as exc:
        raise GateError(f"cannot read {label} {path}: {exc}") from exc


def check_baseline_metadata(
    metadata: Any,
    expected_baseline_path: Path,
    required_policy: str,
    base_dir: Path,
) -> tuple[str | None, str | None]:
    if not isinstance(metadata, dict):
        raise GateError("camera baseline metadata must be a JSON object")

    lock_policy = metadata.get("lock_require_oracle_source")
    source_policy = metadata.get("source_oracle_policy")
    effective = lock_policy if isinstance(lock_policy, str) else source_policy if isinstance(source_policy, str) else None
    if required_policy != "any" and effective != required_policy:
        raise GateError(
            f'camera baseline metadata policy "{effective or "missing"}" violates required policy "{required_policy}"'
        )

    recorded = metadata.get("baseline_metrics_path")
    if not isinstance(recorded, str) or not recorded:
        raise GateError("camera baseline metadata is missing baseline_metrics_path; re-lock the baseline")
    recorded_path = Path(recorded)
    if not recorded_path.is_absolute():
        recorded_path = base_dir / recorded_path
    if recorded_path.resolve() != expected_baseline_path.resolve():
        raise GateError(
            f"camera baseline metadata baseline_metrics_path ({recorded}) does not match "
            f"expected baseline metrics path ({expected_baseline_path})"
        )
    timestamp = metadata.get("source_run_timestamp")
    return effective, timestamp if isinstance(timestamp, str) else None


def check_bootstrap_sources(index: Any) -> str | None:
    index_source = index.get("source_type") if isinstance(index, dict) else None
    index_source = index_source if isinstance(index_source, str) else None
    if is_bootstrap_source_type(index_source):
        raise GateError(f'camera oracle index source_type "{index_source}" is bootstrap-tagged and disallowed')

    entries = index.get("entries") if isinstance(index, dict) else None
    blocked: list[str] = []
    for entry in entries if isinstance(entries, list) else []:
        source_type = entry.get("source_type") if isinstance(entry, dict) else None
        if not is_bootstrap_source_type(source_type):
            continue
        scene_id = entry.get("scene_id") or "unknown_scene"
        case_id = entry.get("case_id") or "unknown_case"
        blocked.append(f"{scene_id}/{case_id}:{source_type}")
    if blocked:
        raise GateError(
            f"camera oracle index contains {len(blocked)} bootstrap-tagged entries "
            f"(examples: {', '.join(blocked[:BOOTSTRAP_PREVIEW])})"
        )
    return index_source


def validate_camera_gate(
    oracle_index_path: Path,
    baseline_metrics_path: Path,
    baseline_metadata_path: Path,
    require_baseline_policy: str = "camera_engine",
    disallow_bootstrap_source: bool = False,
    root_dir: Path | None = None,
) -> GateResult:
    """Preconditions for a strict camera-oracle evaluate run; raises GateError on the first violation.

    Relative ``baseline_metrics_path`` values in the metadata resolve against root_dir
    (the metadata file's directory when not given).
    """

    require_oracle_source_policy(require_baseline_policy)
    index_path = _require_file(oracle_index_path, "camera_oracle_index")
    baseline_path = _require_file(baseline_metrics_path, "camera_baseline_metrics")
    metadata_path = _require_file(baseline_metadata_path, "camera_baseline_metadata")

    metadata = _read(metadata_path, "baseline metadata")
    index = _read(index_path, "oracle index")

    base_dir = Path(root_dir).resolve() if root_dir is not None else metadata_path.parent
    effective, timestamp = check_baseline_metadata(metadata, baseline_path, require_baseline_policy, base_dir)

    if disallow_bootstrap_source:
        index_source = check_bootstrap_sources(index)
    else:
        index_source = index.get("source_type") if isinstance(index, dict) else None

    return GateResult(
        oracle_index_path=index_path,
        baseline_metrics_path=baseline_path,
        baseline_metadata_path=metadata_path,
        require_baseline_policy=require_baseline_policy,
        disallow_bootstrap_source=disallow_bootstrap_source,
        effective_policy=effective,
        source_run_timestamp=timestamp,
        index_source_type=index_source if isinstance(index_source, str) else None,
    )
