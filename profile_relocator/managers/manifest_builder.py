#!/usr/bin/env python3
"""
Manifest builder: concrete paths -> Manifest of symbolic paths.
"""

import logging
import os
import stat as stat_module
from typing import Callable, Iterable, Optional, Union

from ..known_folders import FolderCatalog
from ..manifest import Manifest, ManifestRecord, timestamp_from_epoch
from ..path_codec import decode, is_portable
from ..utils import canonical_path, relative_posix
from .digest_manager import DigestManager
from .selection_manager import resolve_profile_user

logger = logging.getLogger(__name__)

# (concrete_path, volume_root) -> user name, "" when unknown
UserResolver = Callable[[str, str], str]


class ManifestBuilder:
    """Builds manifests from discovered files on one volume."""

    def __init__(
        self,
        volume_root: Union[str, os.PathLike],
        user_resolver: UserResolver = resolve_profile_user,
        digest: Optional[DigestManager] = None,
        catalog: Optional[FolderCatalog] = None,
    ):
        self.volume_root = canonical_path(volume_root)
        self.user_resolver = user_resolver
        self.digest = digest or DigestManager()
        self.catalog = catalog

    def build(self, concrete_paths: Iterable[Union[str, os.PathLike]]) -> Manifest:
        """
        Build a manifest from concrete paths.

        Paths are canonicalized, deduplicated and sorted. Paths that vanished
        or are not regular files are skipped with a warning, so a partial
        manifest is a normal result.
        """
        paths = sorted(
            {canonical_path(p) for p in concrete_paths if str(p).strip()}
        )

        records = []
        for path in paths:
            record = self.build_record(path)
            if record is not None:
                records.append(record)

        skipped = len(paths) - len(records)
        logger.info(
            "Manifest built: %d record(s) from %d path(s)%s",
            len(records),
            len(paths),
            f", {skipped} skipped" if skipped else "",
        )
        return Manifest(records)

    def build_record(self, path: str) -> Optional[ManifestRecord]:
        """Build one record, or None if the file is gone or not a regular file."""
        try:
            file_stat = os.stat(path)
        except FileNotFoundError:
            logger.warning("File vanished before it could be recorded: %s", path)
            return None
        except OSError as e:
            logger.warning("Cannot stat %s (skipped): %s", path, e)
            return None

        if not stat_module.S_ISREG(file_stat.st_mode):
            logger.warning("Not a regular file (skipped): %s", path)
            return None

        user = self.user_resolver(path, self.volume_root) or ""
        symbolic_path = decode(path, self.volume_root, user, self.catalog)
        if not is_portable(symbolic_path):
            logger.warning("Non-portable path recorded as-is: %s", path)

        try:
            content_hash = self.digest.digest(path)
        except FileNotFoundError:
            logger.warning("File vanished while hashing (skipped): %s", path)
            return None
        except OSError as e:
            # ハッシュ失敗は致命的ではない（サイズのみで検証可能）
            logger.warning("Hash failed for %s, recording size only: %s", path, e)
            content_hash = ""

        origin = relative_posix(path, self.volume_root)
        return ManifestRecord(
            symbolic_path=symbolic_path,
            user=user,
            size=file_stat.st_size,
            modification_time=timestamp_from_epoch(file_stat.st_mtime),
            content_hash=content_hash,
            origin=origin if origin is not None else path,
        )
