#!/usr/bin/env python3
"""
Manifest validator: staged files vs. manifest records (size and hash).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..exceptions import StagingLayoutInvalid
from ..manifest import Manifest, ManifestRecord
from .digest_manager import DigestManager
from .staging_manager import FILES_DIR, StagingManager, staged_file_path

logger = logging.getLogger(__name__)


class ValidationStatus(Enum):
    """Per-record validation status."""

    OK = "ok"
    MISSING = "missing"
    SIZE_MISMATCH = "size_mismatch"
    HASH_MISMATCH = "hash_mismatch"


@dataclass
class RecordValidation:
    """Validation result for one record."""

    record: ManifestRecord
    status: ValidationStatus
    staged_path: Optional[Path] = None
    expected: Optional[str] = None
    actual: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ValidationStatus.OK


@dataclass
class ValidationReport:
    """Aggregated validation result."""

    staged_root: Path
    entries: List[RecordValidation] = field(default_factory=list)
    # files/配下にあるがマニフェストにないファイル（情報のみ、妥当性には影響しない）
    unexpected_files: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return all(entry.ok for entry in self.entries)

    @property
    def problems(self) -> List[RecordValidation]:
        return [entry for entry in self.entries if not entry.ok]

    @property
    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ValidationStatus}
        for entry in self.entries:
            counts[entry.status.value] += 1
        return counts


class ManifestValidator:
    """Recomputes size and digest of staged files and compares with records."""

    def __init__(self, digest: Optional[DigestManager] = None):
        self.digest = digest or DigestManager()

    def validate(
        self, manifest: Manifest, staged_root: Union[str, Path]
    ) -> ValidationReport:
        """
        Validate every record against ``staged_root/files/<symbolic_path>``.

        Read-only. Size is always compared; the digest only when the record
        carries a content hash.

        Raises:
            StagingLayoutInvalid: ``staged_root/files`` does not exist.
        """
        staged_root = Path(staged_root)
        files_root = staged_root / FILES_DIR
        if not files_root.is_dir():
            raise StagingLayoutInvalid(f"Expected directory not found: {files_root}")

        logger.info("Validating manifest (size/hash) in: %s", files_root)
        report = ValidationReport(staged_root=staged_root)
        for record in manifest:
            entry = self.validate_record(record, staged_root)
            report.entries.append(entry)
            if not entry.ok:
                self._log_problem(entry)

        referenced = set()
        for entry in report.entries:
            if entry.staged_path is not None:
                referenced.add(entry.staged_path.relative_to(files_root).as_posix())
        report.unexpected_files = [
            path
            for path in StagingManager().list_staged_files(staged_root)
            if path not in referenced
        ]
        if report.unexpected_files:
            logger.info(
                "%d staged file(s) are not listed in the manifest",
                len(report.unexpected_files),
            )

        if report.valid:
            logger.info("Manifest validated successfully (%d records)", len(manifest))
        else:
            logger.error(
                "Manifest validation found %d problem(s)", len(report.problems)
            )
        return report

    def validate_record(
        self, record: ManifestRecord, staged_root: Union[str, Path]
    ) -> RecordValidation:
        try:
            staged_path = staged_file_path(staged_root, record.symbolic_path)
        except StagingLayoutInvalid:
            return RecordValidation(record=record, status=ValidationStatus.MISSING)

        if not staged_path.is_file():
            return RecordValidation(
                record=record, status=ValidationStatus.MISSING, staged_path=staged_path
            )

        try:
            actual_size = staged_path.stat().st_size
        except OSError:
            return RecordValidation(
                record=record, status=ValidationStatus.MISSING, staged_path=staged_path
            )

        if actual_size != record.size:
            return RecordValidation(
                record=record,
                status=ValidationStatus.SIZE_MISMATCH,
                staged_path=staged_path,
                expected=str(record.size),
                actual=str(actual_size),
            )

        if record.content_hash:
            actual_hash = self.digest.try_digest(staged_path) or ""
            if actual_hash != record.content_hash:
                return RecordValidation(
                    record=record,
                    status=ValidationStatus.HASH_MISMATCH,
                    staged_path=staged_path,
                    expected=record.content_hash,
                    actual=actual_hash,
                )

        return RecordValidation(
            record=record, status=ValidationStatus.OK, staged_path=staged_path
        )

    def _log_problem(self, entry: RecordValidation) -> None:
        if entry.status is ValidationStatus.MISSING:
            logger.warning("[MISSING] %s", entry.staged_path or entry.record.symbolic_path)
        elif entry.status is ValidationStatus.SIZE_MISMATCH:
            logger.warning(
                "[SIZE-MISMATCH] %s expected: %s actual: %s",
                entry.record.symbolic_path,
                entry.expected,
                entry.actual,
            )
        else:
            logger.warning(
                "[HASH-MISMATCH] %s expected: %s actual: %s",
                entry.record.symbolic_path,
                entry.expected,
                entry.actual or "(unreadable)",
            )
