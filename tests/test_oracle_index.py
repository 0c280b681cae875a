from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from filmsim_approx.calibration.manifest import ConfigError, parse_manifest
from filmsim_approx.calibration.oracle_index import (
    BOOTSTRAP_SOURCE_TYPE,
    OracleRepository,
    import_camera_oracle,
    is_bootstrap_source_type,
    is_oracle_source_type_allowed,
)
from filmsim_approx.imaging import encode_jpeg


def _manifest(tmp_path: Path):
    return parse_manifest(
        {
            "scenes": [{"id": "s1", "source_path": "s1.jpg"}],
            "cases": [{"id": "c1"}, {"id": "c2", "overrides": {"color": 2}}],
            "base_params": {},
            "max_dimension": 16,
        },
        tmp_path,
    )


def _repository_with_frames(tmp_path: Path, source_type: str = BOOTSTRAP_SOURCE_TYPE) -> OracleRepository:
    repo = OracleRepository(tmp_path / "oracle", root_dir=tmp_path)
    entries = [
        repo.write_frame("s1", "c1", b"frame-one", source_type),
        repo.write_frame("s1", "c2", b"frame-two", source_type),
    ]
    repo.write_index(entries, source_type=source_type, generator="test")
    return repo


def _rewrite_entries(repo: OracleRepository, mutate) -> None:
    payload = json.loads(repo.index_path.read_text(encoding="utf-8"))
    payload["entries"] = mutate(payload["entries"])
    repo.index_path.write_text(json.dumps(payload), encoding="utf-8")


def test_valid_index_passes(tmp_path: Path) -> None:
    repo = _repository_with_frames(tmp_path)
    result = repo.validate(_manifest(tmp_path))

    assert result.passed, result.failures
    assert result.validated_entry_count == 2
    assert set(result.entries_by_key) == {("s1", "c1"), ("s1", "c2")}
    assert result.entries_by_key[("s1", "c1")]["file_path"] == "oracle/s1__c1.jpg"
    assert result.summary()["pass"] is True


def test_missing_index_is_reported(tmp_path: Path) -> None:
    repo = OracleRepository(tmp_path / "oracle")
    result = repo.validate(_manifest(tmp_path))

    assert not result.passed
    assert result.failures[0].startswith("[oracle_index_load]")


def test_missing_and_duplicate_entries(tmp_path: Path) -> None:
    repo = _repository_with_frames(tmp_path)
    _rewrite_entries(repo, lambda entries: [entries[0], dict(entries[0])])

    failures = repo.validate(_manifest(tmp_path)).failures

    assert "[oracle_index_duplicate_entry] s1/c1 duplicated." in failures
    assert any(f.startswith("[oracle_index_missing_entry] s1/c2") for f in failures)


def test_hash_mismatch_and_missing_file(tmp_path: Path) -> None:
    repo = _repository_with_frames(tmp_path)
    repo.frame_path("s1", "c1").write_bytes(b"tampered")
    repo.frame_path("s1", "c2").unlink()

    failures = repo.validate(_manifest(tmp_path)).failures

    assert any(f.startswith("[oracle_index_hash_mismatch] s1/c1 expected=") for f in failures)
    assert any(f.startswith("[oracle_index_missing_file] s1/c2") for f in failures)


def test_entry_outside_oracle_dir(tmp_path: Path) -> None:
    repo = _repository_with_frames(tmp_path)
    (tmp_path / "elsewhere.jpg").write_bytes(b"frame-one")

    def point_outside(entries):
        entries[0]["file_path"] = "elsewhere.jpg"
        return entries

    _rewrite_entries(repo, point_outside)
    failures = repo.validate(_manifest(tmp_path)).failures

    assert any(f.startswith("[oracle_index_file_outside_oracle_dir] s1/c1") for f in failures)


def test_unexpected_and_invalid_entries(tmp_path: Path) -> None:
    repo = _repository_with_frames(tmp_path)
    _rewrite_entries(repo, lambda entries: entries + [{"scene_id": "s9", "case_id": "c1"}, {"scene_id": "s1"}, 3])

    failures = repo.validate(_manifest(tmp_path), verify_hashes=False).failures

    assert "[oracle_index_unexpected_entry] s9/c1 not in manifest." in failures
    assert "[oracle_index_entry_invalid] s9/c1 missing file_path." in failures
    assert "[oracle_index_entry_invalid] entry[3] missing scene_id/case_id." in failures
    assert "[oracle_index_entry_invalid] entry[4] must be an object." in failures


def test_camera_policy_rejects_bootstrap_frames(tmp_path: Path) -> None:
    repo = _repository_with_frames(tmp_path)
    manifest = _manifest(tmp_path)

    assert repo.validate(manifest, policy="any").passed
    failures = repo.validate(manifest, policy="camera_engine").failures
    assert failures[0].startswith('[oracle_source_policy] index source_type "bootstrap_cpu_record"')
    assert sum(1 for f in failures if f.startswith("[oracle_source_policy]")) == 3

    with pytest.raises(ConfigError, match="unsupported oracle source policy"):
        repo.validate(manifest, policy="strict")


def test_source_type_helpers() -> None:
    assert is_oracle_source_type_allowed("camera_engine_xrawstudio", "camera_engine")
    assert not is_oracle_source_type_allowed("bootstrap_cpu_record", "camera_engine")
    assert not is_oracle_source_type_allowed(None, "camera_engine")
    assert is_oracle_source_type_allowed(None, "any")
    assert is_bootstrap_source_type("Bootstrap_CPU")
    assert not is_bootstrap_source_type("camera_engine_xrawstudio")


def _write_exports(source_dir: Path) -> None:
    source_dir.mkdir(parents=True)
    frame = np.full((8, 8, 3), 90, dtype=np.uint8)
    (source_dir / "s1__c1.jpg").write_bytes(encode_jpeg(frame, 90))
    (source_dir / "s1__c2.JPEG").write_bytes(encode_jpeg(frame, 80))


def test_import_camera_oracle(tmp_path: Path) -> None:
    _write_exports(tmp_path / "exports")
    repo = OracleRepository(tmp_path / "oracle", root_dir=tmp_path)

    result = import_camera_oracle(_manifest(tmp_path), tmp_path / "exports", repo)

    assert result.passed, result.validation.failures
    assert result.to_dict()["imported_entries"] == 2
    assert repo.frame_path("s1", "c2").is_file()
    index = json.loads(repo.index_path.read_text(encoding="utf-8"))
    assert index["source_type"] == "camera_engine_xrawstudio"
    assert {e["source_type"] for e in index["entries"]} == {"camera_engine_xrawstudio"}


def test_import_dry_run_writes_nothing(tmp_path: Path) -> None:
    _write_exports(tmp_path / "exports")
    repo = OracleRepository(tmp_path / "oracle", root_dir=tmp_path)

    result = import_camera_oracle(_manifest(tmp_path), tmp_path / "exports", repo, dry_run=True)

    assert result.passed
    assert result.dry_run
    assert not repo.index_exists()
    assert not repo.frame_path("s1", "c1").exists()


def test_import_rejects_missing_or_invalid_exports(tmp_path: Path) -> None:
    source_dir = tmp_path / "exports"
    source_dir.mkdir()
    (source_dir / "s1__c1.jpg").write_bytes(b"not a jpeg")
    repo = OracleRepository(tmp_path / "oracle")

    with pytest.raises(ConfigError, match="invalid camera export"):
        import_camera_oracle(_manifest(tmp_path), source_dir, repo)

    (source_dir / "s1__c1.jpg").unlink()
    with pytest.raises(ConfigError, match="missing camera oracle source files for 2"):
        import_camera_oracle(_manifest(tmp_path), source_dir, repo)

    with pytest.raises(ConfigError, match="camera_engine"):
        import_camera_oracle(_manifest(tmp_path), source_dir, repo, source_type="bootstrap_cpu_record")
