from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any

from filmsim_approx.imaging import ImageDecodeError, decode_image_bytes, write_bytes
from filmsim_approx.utils.formatting import utc_now_iso
from filmsim_approx.utils.hash import sha256_bytes, sha256_file

from .manifest import CalibrationManifest, ConfigError, read_json, write_json


logger = logging.getLogger(__name__)

ORACLE_SOURCE_POLICIES = ("any", "camera_engine")
INDEX_FILE_NAME = "index.v1.json"
INDEX_VERSION = 1
BOOTSTRAP_SOURCE_TYPE = "bootstrap_cpu_record"
DEFAULT_CAMERA_SOURCE_TYPE = "camera_engine_xrawstudio"
IMPORT_EXTENSIONS = (".jpg", ".jpeg", ".JPG", ".JPEG")


def is_oracle_source_policy_supported(policy: str | None) -> bool:
    return policy in ORACLE_SOURCE_POLICIES


def require_oracle_source_policy(policy: str | None) -> str:
    if not is_oracle_source_policy_supported(policy):
        raise ConfigError(
            f'unsupported oracle source policy "{policy}"; use one of: {", ".join(ORACLE_SOURCE_POLICIES)}'
        )
    return str(policy)


def is_oracle_source_type_allowed(source_type: Any, policy: str) -> bool:
    if policy == "any":
        return True
    if policy == "camera_engine":
        return isinstance(source_type, str) and source_type.startswith("camera_engine")
    return False


def is_bootstrap_source_type(source_type: Any) -> bool:
    return isinstance(source_type, str) and "bootstrap" in source_type.lower()


def oracle_frame_name(scene_id: str, case_id: str) -> str:
    return f"{scene_id}__{case_id}.jpg"


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def display_path(path: Path, root: Path) -> str:
    return os.path.relpath(path, root)


@dataclass
class OracleIndexValidation:
    passed: bool
    failures: list[str]
    index: dict[str, Any] | None
    entries_by_key: dict[tuple[str, str], dict[str, Any]]
    source_policy: str
    oracle_index_path: str
    expected_entry_count: int
    indexed_entry_count: int = 0
    validated_entry_count: int = 0

    def summary(self) -> dict[str, Any]:
        return {
            "pass": self.passed,
            "failures": len(self.failures),
            "expected_entries": self.expected_entry_count,
            "indexed_entries": self.indexed_entry_count,
            "validated_entries": self.validated_entry_count,
        }


class OracleRepository:
    """Oracle frames plus their integrity index.

    Entry ``file_path`` values are stored relative to ``root_dir`` (the oracle
    directory unless given) and must resolve inside ``oracle_dir``.
    """

    def __init__(self, oracle_dir: Path, index_path: Path | None = None, root_dir: Path | None = None) -> None:
        self.oracle_dir = Path(oracle_dir).expanduser().resolve()
        self.index_path = (
            Path(index_path).expanduser().resolve() if index_path is not None else self.oracle_dir / INDEX_FILE_NAME
        )
        self.root_dir = Path(root_dir).expanduser().resolve() if root_dir is not None else self.oracle_dir

    def frame_path(self, scene_id: str, case_id: str) -> Path:
        return self.oracle_dir / oracle_frame_name(scene_id, case_id)

    def resolve_entry_path(self, file_path: str) -> Path:
        path = Path(file_path)
        if not path.is_absolute():
            path = self.root_dir / path
        return path.resolve()

    def relative(self, path: Path) -> str:
        return display_path(path, self.root_dir)

    def index_exists(self) -> bool:
        return self.index_path.exists()

    def write_frame(self, scene_id: str, case_id: str, data: bytes, source_type: str) -> dict[str, Any]:
        path = self.frame_path(scene_id, case_id)
        write_bytes(path, data)
        return self.build_entry(scene_id, case_id, data, source_type)

    def build_entry(self, scene_id: str, case_id: str, data: bytes, source_type: str) -> dict[str, Any]:
        return {
            "scene_id": scene_id,
            "case_id": case_id,
            "file_path": self.relative(self.frame_path(scene_id, case_id)),
            "sha256": sha256_bytes(data),
            "source_type": source_type,
        }

    def load_index(self) -> dict[str, Any]:
        return read_json(self.index_path)

    def write_index(
        self,
        entries: list[dict[str, Any]],
        source_type: str,
        generator: str,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": INDEX_VERSION,
            "generated_at": utc_now_iso(),
            "generator": generator,
            "source_type": source_type,
            "oracle_dir": self.relative(self.oracle_dir),
        }
        payload.update(extra or {})
        payload["entries"] = entries
        write_json(self.index_path, payload)
        logger.info("wrote oracle index %s (%d entries)", self.index_path, len(entries))
        return payload

    def validate(
        self,
        manifest: CalibrationManifest,
        policy: str = "any",
        verify_hashes: bool = True,
    ) -> OracleIndexValidation:
        """Check coverage, uniqueness, containment and content hashes of the index.

        Problems are reported as tagged failure strings; only an unsupported
        policy raises.
        """

        require_oracle_source_policy(policy)
        index_label = self.relative(self.index_path)
        expected = set(manifest.expected_pairs())
        failures: list[str] = []
        entries_by_key: dict[tuple[str, str], dict[str, Any]] = {}

        try:
            payload = self.load_index()
        except (OSError, ValueError) as exc:
            failures.append(f"[oracle_index_load] {index_label}: {exc}")
            return OracleIndexValidation(
                passed=False,
                failures=failures,
                index=None,
                entries_by_key=entries_by_key,
                source_policy=policy,
                oracle_index_path=index_label,
                expected_entry_count=len(expected),
            )

        if not isinstance(payload, dict):
            failures.append(f"[oracle_index_shape] {index_label} must be a JSON object.")
            payload_dict: dict[str, Any] = {}
        else:
            payload_dict = payload
        raw_entries = payload_dict.get("entries")
        if not isinstance(raw_entries, list):
            failures.append(f"[oracle_index_shape] {index_label} must include entries array.")
            raw_entries = []

        if policy != "any" and not is_oracle_source_type_allowed(payload_dict.get("source_type"), policy):
            failures.append(
                f'[oracle_source_policy] index source_type "{payload_dict.get("source_type") or "missing"}" '
                f"violates policy {policy}"
            )

        for position, entry in enumerate(raw_entries):
            if not isinstance(entry, dict):
                failures.append(f"[oracle_index_entry_invalid] entry[{position}] must be an object.")
                continue
            scene_id = entry.get("scene_id") if isinstance(entry.get("scene_id"), str) else None
            case_id = entry.get("case_id") if isinstance(entry.get("case_id"), str) else None
            if not scene_id or not case_id:
                failures.append(f"[oracle_index_entry_invalid] entry[{position}] missing scene_id/case_id.")
                continue

            key = (scene_id, case_id)
            if key in entries_by_key:
                failures.append(f"[oracle_index_duplicate_entry] {scene_id}/{case_id} duplicated.")
                continue
            entries_by_key[key] = entry

            if not _non_empty_str(entry.get("file_path")):
                failures.append(f"[oracle_index_entry_invalid] {scene_id}/{case_id} missing file_path.")
            if not _non_empty_str(entry.get("sha256")):
                failures.append(f"[oracle_index_entry_invalid] {scene_id}/{case_id} missing sha256.")
            source_type = _non_empty_str(entry.get("source_type"))
            if source_type is None:
                failures.append(f"[oracle_index_entry_invalid] {scene_id}/{case_id} missing source_type.")
            elif not is_oracle_source_type_allowed(source_type, policy):
                failures.append(
                    f'[oracle_source_policy] {scene_id}/{case_id} source_type "{source_type}" violates policy {policy}'
                )
            if key not in expected:
                failures.append(f"[oracle_index_unexpected_entry] {scene_id}/{case_id} not in manifest.")

        for scene_id, case_id in manifest.expected_pairs():
            if (scene_id, case_id) not in entries_by_key:
                failures.append(f"[oracle_index_missing_entry] {scene_id}/{case_id} missing from {index_label}")

        validated = 0
        if verify_hashes:
            for (scene_id, case_id), entry in entries_by_key.items():
                file_path = _non_empty_str(entry.get("file_path"))
                if file_path is None:
                    continue
                resolved = self.resolve_entry_path(file_path)
                if not resolved.is_relative_to(self.oracle_dir):
                    failures.append(
                        f"[oracle_index_file_outside_oracle_dir] {scene_id}/{case_id} -> {self.relative(resolved)}"
                    )
                    continue
                try:
                    actual = sha256_file(resolved)
                except OSError as exc:
                    failures.append(f"[oracle_index_missing_file] {scene_id}/{case_id}: {exc}")
                    continue
                expected_sha = _non_empty_str(entry.get("sha256"))
                if expected_sha and actual != expected_sha:
                    failures.append(
                        f"[oracle_index_hash_mismatch] {scene_id}/{case_id} expected={expected_sha} actual={actual}"
                    )
                    continue
                validated += 1

        return OracleIndexValidation(
            passed=not failures,
            failures=failures,
            index=payload if isinstance(payload, dict) else None,
            entries_by_key=entries_by_key,
            source_policy=policy,
            oracle_index_path=index_label,
            expected_entry_count=len(expected),
            indexed_entry_count=len(raw_entries),
            validated_entry_count=validated,
        )


@dataclass
class OracleImportResult:
    passed: bool
    dry_run: bool
    source_type: str
    expected_entries: int
    imported_entries: list[dict[str, Any]] = field(default_factory=list)
    validation: OracleIndexValidation | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass": self.passed,
            "dry_run": self.dry_run,
            "source_type": self.source_type,
            "expected_entries": self.expected_entries,
            "imported_entries": len(self.imported_entries),
            "validated_entries": (
                self.validation.validated_entry_count if self.validation else len(self.imported_entries)
            ),
            "validation_failures": list(self.validation.failures) if self.validation else [],
        }


def _find_export(source_dir: Path, scene_id: str, case_id: str) -> Path | None:
    stem = f"{scene_id}__{case_id}"
    for ext in IMPORT_EXTENSIONS:
        candidate = source_dir / f"{stem}{ext}"
        if candidate.is_file():
            return candidate
    return None


def import_camera_oracle(
    manifest: CalibrationManifest,
    source_dir: Path,
    repository: OracleRepository,
    source_type: str = DEFAULT_CAMERA_SOURCE_TYPE,
    dry_run: bool = False,
) -> OracleImportResult:
    """Copy camera-engine exports into the repository and index them under the camera policy."""

    if not is_oracle_source_type_allowed(source_type, "camera_engine"):
        raise ConfigError(f'source type must start with "camera_engine", got "{source_type}"')

    source_dir = Path(source_dir).expanduser().resolve()
    pairs = manifest.expected_pairs()
    missing: list[str] = []
    found: list[tuple[str, str, Path, bytes]] = []

    for scene_id, case_id in pairs:
        source_path = _find_export(source_dir, scene_id, case_id)
        if source_path is None:
            missing.append(f"{scene_id}/{case_id}")
            continue
        data = source_path.read_bytes()
        try:
            decode_image_bytes(data, label=str(source_path))
        except ImageDecodeError as exc:
            raise ConfigError(f"invalid camera export {source_path}: {exc}") from exc
        found.append((scene_id, case_id, source_path, data))

    if missing:
        raise ConfigError(
            f"missing camera oracle source files for {len(missing)} scene/case pairs: {', '.join(missing)}"
        )

    entries: list[dict[str, Any]] = []
    for scene_id, case_id, source_path, data in found:
        if dry_run:
            entry = repository.build_entry(scene_id, case_id, data, source_type)
        else:
            entry = repository.write_frame(scene_id, case_id, data, source_type)
        entry["imported_from"] = str(source_path)
        entries.append(entry)

    if dry_run:
        logger.info("dry run: %d/%d camera exports found in %s", len(entries), len(pairs), source_dir)
        return OracleImportResult(
            passed=len(entries) == len(pairs),
            dry_run=True,
            source_type=source_type,
            expected_entries=len(pairs),
            imported_entries=entries,
        )

    extra: dict[str, Any] = {"import_source_dir": str(source_dir)}
    if manifest.path is not None:
        extra["manifest_path"] = str(manifest.path)
    repository.write_index(entries, source_type=source_type, generator="filmsim-approx import-oracle", extra=extra)
    validation = repository.validate(manifest, policy="camera_engine", verify_hashes=True)
    return OracleImportResult(
        passed=validation.passed,
        dry_run=False,
        source_type=source_type,
        expected_entries=len(pairs),
        imported_entries=entries,
        validation=validation,
    )
