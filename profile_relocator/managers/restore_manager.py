#!/usr/bin/env python3
"""
Restore reconciler: applies a staged manifest onto a target volume.

The reconciler maps each record to the destination user, re-encodes its
symbolic path against the target volume and copies the staged file there,
honouring the overwrite / directory-creation policy. Per-record problems
are reported as RestoreStatus values; only structural errors stop a run.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..exceptions import (
    InsufficientSpace,
    IntegrityMismatch,
    RelocatorError,
    StagingLayoutInvalid,
    UnresolvableFolder,
)
from ..known_folders import FolderCatalog
from ..manifest import MANIFEST_FILENAME, Manifest, ManifestRecord
from ..path_codec import encode, is_portable
from ..utils import canonical_path, format_bytes
from .digest_manager import DigestManager
from .manifest_validator import ManifestValidator, ValidationReport
from .staging_manager import StagingManager, staged_file_path

logger = logging.getLogger(__name__)


class RestoreStatus(Enum):
    """Per-record restore status."""

    COPIED = "copied"
    SKIPPED_EXISTING = "skipped-existing"
    SKIPPED_MISSING_SOURCE = "skipped-missing-source"
    SKIPPED_NO_CONFIRMATION = "skipped-no-confirmation"
    FAILED = "failed"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped-")


class DirectoryPolicy(Enum):
    """What to do when a destination parent directory does not exist."""

    ALWAYS_CREATE = "always-create"
    NEVER_CREATE = "never-create"
    CONFIRM = "confirm"


class RestoreState(Enum):
    START = "start"
    EXTRACTED = "extracted"
    VALIDATED = "validated"
    SPACE_CHECKED = "space-checked"
    APPLYING = "applying"
    DONE = "done"
    VERIFY_ONLY_DONE = "verify-only-done"
    ABORTED = "aborted"


@dataclass
class RestoreFilters:
    """Exact-match record filters (None = no filtering)."""

    only_user: Optional[str] = None
    only_folder: Optional[str] = None

    def matches(self, record: ManifestRecord) -> bool:
        if self.only_user and record.user != self.only_user:
            return False
        if self.only_folder and record.known_folder != self.only_folder:
            return False
        return True


@dataclass
class RestorePolicy:
    """
    Restore behaviour.

    Attributes:
        overwrite: Replace existing destination files (implies directory creation).
        directories: Handling of missing destination directories.
        confirm: Callback used with DirectoryPolicy.CONFIRM; receives the
            directory and returns True to create it. None declines.
        dry_run: Report what would happen without touching the target.
        force: Proceed past insufficient space and failed validation.
    """

    overwrite: bool = False
    directories: DirectoryPolicy = DirectoryPolicy.ALWAYS_CREATE
    confirm: Optional[Callable[[str], bool]] = None
    dry_run: bool = False
    force: bool = False


@dataclass
class RecordOutcome:
    record: ManifestRecord
    status: RestoreStatus
    source_path: Optional[str] = None
    destination_path: Optional[str] = None
    message: str = ""


@dataclass
class RestoreOutcome:
    """Aggregated per-record results of one apply() call."""

    records: List[RecordOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def totals(self) -> Dict[str, int]:
        totals = {status.value: 0 for status in RestoreStatus}
        for outcome in self.records:
            totals[outcome.status.value] += 1
        return totals

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def copied(self) -> int:
        return self.totals[RestoreStatus.COPIED.value]

    @property
    def skipped(self) -> int:
        return sum(1 for outcome in self.records if outcome.status.is_skip)

    @property
    def failed(self) -> int:
        return self.totals[RestoreStatus.FAILED.value]

    def with_status(self, status: RestoreStatus) -> List[RecordOutcome]:
        return [outcome for outcome in self.records if outcome.status is status]


@dataclass
class RestoreRun:
    """Terminal state of a run() call."""

    state: RestoreState
    outcome: Optional[RestoreOutcome] = None
    report: Optional[ValidationReport] = None
    error: Optional[RelocatorError] = None
    staged_root: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.state in (RestoreState.DONE, RestoreState.VERIFY_ONLY_DONE)


def parse_user_map(pairs: Iterable[str]) -> Dict[str, str]:
    """
    Parse ``origin:destination`` pairs into a user map.

    Raises:
        ValueError: A pair has no ``:`` or an empty side.
    """
    user_map: Dict[str, str] = {}
    for pair in pairs:
        origin, sep, destination = pair.partition(":")
        origin, destination = origin.strip(), destination.strip()
        if not sep or not origin or not destination:
            raise ValueError(f"Invalid user mapping (expected A:B): {pair!r}")
        user_map[origin] = destination
    return user_map


def disk_free_bytes(path: Union[str, os.PathLike]) -> int:
    """Free bytes on the filesystem holding path (nearest existing ancestor)."""
    current = Path(path).expanduser().absolute()
    while not current.exists() and current != current.parent:
        current = current.parent
    return shutil.disk_usage(current).free


class RestoreManager:
    """Reconciles a staged manifest onto a target volume."""

    def __init__(
        self,
        catalog: Optional[FolderCatalog] = None,
        digest: Optional[DigestManager] = None,
        free_space: Callable[[str], int] = disk_free_bytes,
    ):
        self.catalog = catalog
        self.digest = digest or DigestManager()
        self.free_space = free_space
        self.staging = StagingManager(catalog)
        self.validator = ManifestValidator(self.digest)

    def filter_records(
        self, manifest: Manifest, filters: Optional[RestoreFilters] = None
    ) -> List[ManifestRecord]:
        filters = filters or RestoreFilters()
        return [record for record in manifest if filters.matches(record)]

    def check_space(
        self,
        records: Iterable[ManifestRecord],
        volume_root: Union[str, os.PathLike],
        force: bool = False,
    ) -> int:
        """
        Compare the total size of records with free space on the target.

        Returns:
            Required bytes.

        Raises:
            InsufficientSpace: Not enough space and not forced.
        """
        required = sum(record.size for record in records)
        volume_root = canonical_path(volume_root)
        available = self.free_space(volume_root)
        logger.info(
            "Space check on %s: required %s, available %s",
            volume_root,
            format_bytes(required),
            format_bytes(available),
        )
        if required > available:
            error = InsufficientSpace(required, available, volume_root)
            if not force:
                raise error
            logger.warning("%s (continuing, forced)", error)
        return required

    def apply(
        self,
        manifest: Manifest,
        staged_root: Union[str, Path],
        volume_root: Union[str, os.PathLike],
        user_map: Optional[Dict[str, str]] = None,
        filters: Optional[RestoreFilters] = None,
        policy: Optional[RestorePolicy] = None,
    ) -> RestoreOutcome:
        """
        Apply filtered records onto volume_root, in manifest order.

        Never raises for per-record problems; each record gets a RestoreStatus.
        """
        user_map = user_map or {}
        policy = policy or RestorePolicy()
        volume_root = canonical_path(volume_root)
        outcome = RestoreOutcome(dry_run=policy.dry_run)
        # ディレクトリ作成確認の結果はこの実行中のみキャッシュ
        decisions: Dict[str, bool] = {}

        records = self.filter_records(manifest, filters)
        logger.info(
            "Restoring %d of %d record(s) to %s",
            len(records),
            len(manifest),
            volume_root,
        )

        for record in records:
            result = self._apply_record(
                record, Path(staged_root), volume_root, user_map, policy, decisions
            )
            outcome.records.append(result)

        logger.info(
            "Restore finished: %d copied, %d skipped, %d failed",
            outcome.copied,
            outcome.skipped,
            outcome.failed,
        )
        return outcome

    def _apply_record(
        self,
        record: ManifestRecord,
        staged_root: Path,
        volume_root: str,
        user_map: Dict[str, str],
        policy: RestorePolicy,
        decisions: Dict[str, bool],
    ) -> RecordOutcome:
        destination_user = user_map.get(record.user, record.user)

        if not is_portable(record.symbolic_path):
            logger.error("Non-portable path cannot be restored: %s", record.symbolic_path)
            return RecordOutcome(
                record, RestoreStatus.FAILED, message="non-portable path"
            )

        try:
            destination = encode(
                record.symbolic_path, volume_root, destination_user, self.catalog
            )
            source = staged_file_path(staged_root, record.symbolic_path)
        except (UnresolvableFolder, StagingLayoutInvalid, ValueError) as e:
            logger.error("Cannot resolve %s: %s", record.symbolic_path, e)
            return RecordOutcome(record, RestoreStatus.FAILED, message=str(e))

        if not source.is_file():
            logger.warning("[SKIP] Source missing: %s", source)
            return RecordOutcome(
                record,
                RestoreStatus.SKIPPED_MISSING_SOURCE,
                str(source),
                destination,
            )

        parent = os.path.dirname(destination)
        if not os.path.isdir(parent):
            if policy.dry_run:
                logger.info("Would create directory: %s", parent)
            elif not self._may_create(parent, policy, decisions):
                logger.warning("[SKIP] Directory not created: %s", parent)
                return RecordOutcome(
                    record,
                    RestoreStatus.SKIPPED_NO_CONFIRMATION,
                    str(source),
                    destination,
                )
            else:
                try:
                    os.makedirs(parent, exist_ok=True)
                except OSError as e:
                    logger.error("Cannot create directory %s: %s", parent, e)
                    return RecordOutcome(
                        record, RestoreStatus.FAILED, str(source), destination, str(e)
                    )

        if os.path.lexists(destination):
            if not policy.overwrite:
                logger.info("[SKIP] Exists: %s", destination)
                return RecordOutcome(
                    record, RestoreStatus.SKIPPED_EXISTING, str(source), destination
                )
            if os.path.isdir(destination) and not os.path.islink(destination):
                logger.error("Destination is a directory: %s", destination)
                return RecordOutcome(
                    record,
                    RestoreStatus.FAILED,
                    str(source),
                    destination,
                    "destination is a directory",
                )

        if policy.dry_run:
            logger.info("Would restore: %s -> %s", record.symbolic_path, destination)
            return RecordOutcome(record, RestoreStatus.COPIED, str(source), destination)

        try:
            # リンク先ではなくリンク自体を置き換える
            if os.path.islink(destination):
                os.unlink(destination)
            shutil.copy2(source, destination)
            if record.modification_time is not None:
                mtime = record.modification_time.timestamp()
                os.utime(destination, (mtime, mtime))
        except OSError as e:
            logger.error("Error restoring %s: %s", destination, e)
            return RecordOutcome(
                record, RestoreStatus.FAILED, str(source), destination, str(e)
            )

        logger.info("Restored: %s", destination)
        return RecordOutcome(record, RestoreStatus.COPIED, str(source), destination)

    def _may_create(
        self, directory: str, policy: RestorePolicy, decisions: Dict[str, bool]
    ) -> bool:
        if policy.overwrite or policy.directories is DirectoryPolicy.ALWAYS_CREATE:
            return True
        if policy.directories is DirectoryPolicy.NEVER_CREATE:
            return False

        if directory not in decisions:
            decisions[directory] = bool(policy.confirm and policy.confirm(directory))
        return decisions[directory]

    def run(
        self,
        source: Union[str, Path],
        volume_root: Union[str, os.PathLike],
        user_map: Optional[Dict[str, str]] = None,
        filters: Optional[RestoreFilters] = None,
        policy: Optional[RestorePolicy] = None,
        verify_only: bool = False,
        skip_verify: bool = False,
    ) -> RestoreRun:
        """
        Locate, validate, space-check and apply a staged package.

        Structural errors end the run in RestoreState.ABORTED with the error
        attached; nothing is copied in that case.
        """
        policy = policy or RestorePolicy()
        run = RestoreRun(state=RestoreState.START)

        try:
            run.staged_root = self.staging.locate(source)
            manifest = Manifest.load(run.staged_root / MANIFEST_FILENAME)
            self._advance(run, RestoreState.EXTRACTED)

            if verify_only or not skip_verify:
                run.report = self.validator.validate(manifest, run.staged_root)
                self._advance(run, RestoreState.VALIDATED)
                if verify_only:
                    self._advance(run, RestoreState.VERIFY_ONLY_DONE)
                    return run
                if not run.report.valid:
                    if not policy.force:
                        raise IntegrityMismatch(run.report)
                    logger.warning(
                        "Continuing despite %d validation problem(s) (forced)",
                        len(run.report.problems),
                    )
            else:
                logger.warning("Manifest validation skipped")

            records = self.filter_records(manifest, filters)
            # ドライランでは容量不足でも中断しない
            self.check_space(records, volume_root, policy.force or policy.dry_run)
            self._advance(run, RestoreState.SPACE_CHECKED)

            self._advance(run, RestoreState.APPLYING)
            run.outcome = self.apply(
                manifest, run.staged_root, volume_root, user_map, filters, policy
            )
            self._advance(run, RestoreState.DONE)
        except RelocatorError as e:
            logger.error("Restore aborted: %s", e)
            run.error = e
            run.state = RestoreState.ABORTED
        return run

    def _advance(self, run: RestoreRun, state: RestoreState) -> None:
        logger.debug("Restore state: %s -> %s", run.state.value, state.value)
        run.state = state
