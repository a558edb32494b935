#!/usr/bin/env python3
"""
Relocator - ステージングレイアウト管理モジュール

ステージングルートの構成:
    <root>/
      manifest.json
      backup_meta.json
      files/<symbolic_path>     # トークン文字列をそのままディレクトリ名に使用
"""

import json
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..__version__ import get_version
from ..exceptions import (
    ManifestMissing,
    RelocatorError,
    StagingLayoutInvalid,
)
from ..known_folders import FolderCatalog
from ..manifest import MANIFEST_FILENAME, Manifest, format_timestamp
from ..path_codec import encode
from ..utils import canonical_path

logger = logging.getLogger(__name__)

FILES_DIR = "files"
META_FILENAME = "backup_meta.json"
LOCATE_MAX_DEPTH = 2


def staged_file_path(staged_root: Union[str, Path], symbolic_path: str) -> Path:
    """
    シンボリックパスに対応するステージング内のファイルパスを取得

    先頭の/は除去し、..を含むパスはステージング外を指すため拒否する

    Raises:
        StagingLayoutInvalid: 空のパス、または.や..を含むパス
    """
    parts = [part for part in symbolic_path.replace("\\", "/").split("/") if part]
    if not parts or any(part in (".", "..") for part in parts):
        raise StagingLayoutInvalid(
            f"Symbolic path cannot be mapped into the staging tree: {symbolic_path!r}"
        )
    return Path(staged_root) / FILES_DIR / Path(*parts)


def is_staged_root(directory: Path) -> bool:
    """manifest.jsonとfiles/を持つディレクトリかどうか"""
    return (directory / MANIFEST_FILENAME).is_file() and (
        directory / FILES_DIR
    ).is_dir()


class StagingManager:
    """ステージングディレクトリの作成・検出を管理するクラス"""

    def __init__(self, catalog: Optional[FolderCatalog] = None):
        self.catalog = catalog

    def locate(self, source: Union[str, Path]) -> Path:
        """
        ステージングルートを検出（sourceそのもの、または2階層下まで探索）

        Raises:
            StagingLayoutInvalid: sourceが存在しない/ディレクトリでない、
                またはmanifest.jsonはあるがfiles/がない
            ManifestMissing: manifest.jsonが見つからない
        """
        source = Path(source).expanduser()
        if not source.exists():
            raise StagingLayoutInvalid(f"Source not found: {source}")
        if not source.is_dir():
            raise StagingLayoutInvalid(
                f"Source must be an extracted staging directory: {source}"
            )

        manifest_dirs = []
        level = [source]
        for depth in range(LOCATE_MAX_DEPTH + 1):
            next_level = []
            for directory in level:
                if (directory / MANIFEST_FILENAME).is_file():
                    if is_staged_root(directory):
                        if directory != source:
                            logger.info("Staged root found at: %s", directory)
                        return directory
                    manifest_dirs.append(directory)
                if depth < LOCATE_MAX_DEPTH:
                    try:
                        next_level.extend(
                            sorted(p for p in directory.iterdir() if p.is_dir())
                        )
                    except OSError as e:
                        logger.debug("Cannot list %s: %s", directory, e)
            level = next_level

        if manifest_dirs:
            raise StagingLayoutInvalid(
                f"Invalid staging layout: {FILES_DIR}/ missing next to "
                f"{manifest_dirs[0] / MANIFEST_FILENAME}"
            )
        raise ManifestMissing(f"{MANIFEST_FILENAME} not found under {source}")

    def create_staging_dir(
        self,
        backup_root: Union[str, Path],
        prefix: str = "relocate",
        timestamp: Optional[str] = None,
    ) -> Path:
        """<backup_root>/<prefix>_<timestamp>/files を作成してルートを返す"""
        if not timestamp:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        staged_root = Path(backup_root).expanduser() / f"{prefix}_{timestamp}"
        (staged_root / FILES_DIR).mkdir(parents=True, exist_ok=True)
        logger.info("Staging: %s", staged_root)
        return staged_root

    def stage(
        self,
        manifest: Manifest,
        volume_root: Union[str, os.PathLike],
        staged_root: Union[str, Path],
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """
        マニフェストの各ファイルをステージングにコピーし、manifest.jsonを書き出す

        コピーできなかったレコードは書き出すmanifest.jsonから除外する
        （manifest.jsonは常にfiles/の内容を表す）

        Returns:
            {"staged": [...], "errors": [...], "manifest": Manifest}
        """
        volume_root = canonical_path(volume_root)
        staged_root = Path(staged_root)
        results: Dict[str, Any] = {"staged": [], "errors": [], "manifest": None}
        staged_records = []

        for record in manifest:
            try:
                source = Path(
                    encode(record.symbolic_path, volume_root, record.user, self.catalog)
                )
                destination = staged_file_path(staged_root, record.symbolic_path)

                if dry_run:
                    logger.debug("Would stage: %s -> %s", source, destination)
                else:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(source, destination)
                    logger.debug("Staged: %s", record.symbolic_path)

                staged_records.append(record)
                results["staged"].append(record.symbolic_path)
            except (OSError, RelocatorError) as e:
                error_msg = f"Error staging {record.symbolic_path}: {e}"
                logger.error(error_msg)
                results["errors"].append(error_msg)

        staged_manifest = Manifest(staged_records)
        results["manifest"] = staged_manifest

        if not dry_run:
            staged_manifest.dump(staged_root / MANIFEST_FILENAME)
            self.write_metadata(staged_root, staged_manifest, volume_root)
            logger.info(
                "Staged %d file(s) into %s", len(staged_records), staged_root
            )
        return results

    def write_metadata(
        self,
        staged_root: Union[str, Path],
        manifest: Manifest,
        volume_root: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """backup_meta.json（情報用）を書き出し"""
        meta = {
            "tool": "profile-relocator",
            "version": get_version(),
            "created": format_timestamp(datetime.now(timezone.utc)),
            "volume_root": volume_root,
            "records": len(manifest),
            "total_bytes": manifest.total_size,
            "users": manifest.users(),
            "known_folders": manifest.known_folders(),
        }
        if extra:
            meta.update(extra)

        meta_path = Path(staged_root) / META_FILENAME
        with open(meta_path, "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2, ensure_ascii=False)
        return meta_path

    def list_staged_files(self, staged_root: Union[str, Path]) -> List[str]:
        """files/配下のファイルをシンボリックパス形式で列挙"""
        files_root = Path(staged_root) / FILES_DIR
        if not files_root.is_dir():
            raise StagingLayoutInvalid(f"Directory not found: {files_root}")
        return sorted(
            p.relative_to(files_root).as_posix()
            for p in files_root.rglob("*")
            if p.is_file()
        )
