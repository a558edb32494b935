#!/usr/bin/env python3
"""
Manifest validator tests
"""

import hashlib
from pathlib import Path

import pytest

from profile_relocator.exceptions import StagingLayoutInvalid
from profile_relocator.manifest import Manifest, ManifestRecord
from profile_relocator.managers.manifest_validator import (
    ManifestValidator,
    ValidationStatus,
)


def stage_file(staged_root: Path, symbolic_path: str, content: bytes) -> Path:
    path = staged_root / "files" / symbolic_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def record_for(symbolic_path: str, content: bytes, with_hash: bool = True) -> ManifestRecord:
    return ManifestRecord(
        symbolic_path=symbolic_path,
        user="Ann",
        size=len(content),
        content_hash=hashlib.sha256(content).hexdigest() if with_hash else "",
    )


@pytest.fixture
def staged_root(tmp_path: Path) -> Path:
    root = tmp_path / "staged"
    (root / "files").mkdir(parents=True)
    return root


class TestManifestValidator:
    def test_all_ok(self, staged_root: Path):
        stage_file(staged_root, "{{Documents}}/report.pdf", b"report")
        manifest = Manifest([record_for("{{Documents}}/report.pdf", b"report")])

        report = ManifestValidator().validate(manifest, staged_root)

        assert report.valid
        assert report.counts["ok"] == 1
        assert report.problems == []

    def test_missing(self, staged_root: Path):
        manifest = Manifest([record_for("{{Documents}}/gone.pdf", b"x")])
        report = ManifestValidator().validate(manifest, staged_root)

        assert not report.valid
        assert report.entries[0].status is ValidationStatus.MISSING

    def test_size_mismatch_without_hash(self, staged_root: Path):
        """Size is checked even when the record has no content hash"""
        stage_file(staged_root, "{{Desktop}}/a.txt", b"longer content")
        manifest = Manifest([record_for("{{Desktop}}/a.txt", b"short", with_hash=False)])

        report = ManifestValidator().validate(manifest, staged_root)

        entry = report.entries[0]
        assert entry.status is ValidationStatus.SIZE_MISMATCH
        assert entry.expected == "5"
        assert entry.actual == "14"

    def test_size_mismatch_takes_precedence(self, staged_root: Path):
        stage_file(staged_root, "{{Desktop}}/a.txt", b"different!")
        manifest = Manifest([record_for("{{Desktop}}/a.txt", b"short")])

        report = ManifestValidator().validate(manifest, staged_root)
        assert report.entries[0].status is ValidationStatus.SIZE_MISMATCH

    def test_hash_mismatch(self, staged_root: Path):
        stage_file(staged_root, "{{Desktop}}/a.txt", b"abcde")
        manifest = Manifest([record_for("{{Desktop}}/a.txt", b"vwxyz")])

        report = ManifestValidator().validate(manifest, staged_root)

        entry = report.entries[0]
        assert entry.status is ValidationStatus.HASH_MISMATCH
        assert entry.actual == hashlib.sha256(b"abcde").hexdigest()

    def test_empty_hash_skips_digest(self, staged_root: Path):
        stage_file(staged_root, "{{Desktop}}/a.txt", b"abcde")
        manifest = Manifest([record_for("{{Desktop}}/a.txt", b"vwxyz", with_hash=False)])

        assert ManifestValidator().validate(manifest, staged_root).valid

    def test_mixed_counts(self, staged_root: Path):
        stage_file(staged_root, "{{Music}}/ok.mp3", b"ok")
        stage_file(staged_root, "{{Music}}/bad.mp3", b"bad!")
        manifest = Manifest(
            [
                record_for("{{Music}}/ok.mp3", b"ok"),
                record_for("{{Music}}/bad.mp3", b"bad"),
                record_for("{{Music}}/missing.mp3", b"m"),
            ]
        )

        report = ManifestValidator().validate(manifest, staged_root)

        assert report.counts == {
            "ok": 1,
            "missing": 1,
            "size_mismatch": 1,
            "hash_mismatch": 0,
        }
        assert len(report.problems) == 2

    def test_unexpected_files_are_informational(self, staged_root: Path):
        stage_file(staged_root, "{{Music}}/ok.mp3", b"ok")
        stage_file(staged_root, "{{Music}}/extra.mp3", b"extra")
        manifest = Manifest([record_for("{{Music}}/ok.mp3", b"ok")])

        report = ManifestValidator().validate(manifest, staged_root)

        assert report.valid
        assert report.unexpected_files == ["{{Music}}/extra.mp3"]

    def test_empty_manifest_is_valid(self, staged_root: Path):
        assert ManifestValidator().validate(Manifest(), staged_root).valid

    def test_requires_files_directory(self, tmp_path: Path):
        with pytest.raises(StagingLayoutInvalid):
            ManifestValidator().validate(Manifest(), tmp_path)

    def test_validation_is_read_only(self, staged_root: Path):
        staged = stage_file(staged_root, "{{Desktop}}/a.txt", b"abcde")
        before = staged.stat().st_mtime_ns
        ManifestValidator().validate(Manifest([record_for("{{Desktop}}/a.txt", b"zz")]), staged_root)
        assert staged.read_bytes() == b"abcde"
        assert staged.stat().st_mtime_ns == before
