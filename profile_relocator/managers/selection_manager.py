#!/usr/bin/env python3
"""
Relocator - バックアップ対象ファイルの選択モジュール

マウントされたボリューム上のユーザープロファイルと既知フォルダから、
include/excludeパターンに従って対象ファイルの絶対パスを収集する。
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from ..known_folders import USERS_DIR, DEFAULT_CATALOG, FolderCatalog, KnownFolder
from ..exceptions import UnresolvableFolder
from ..utils import canonical_path, join_posix, matches_any_pattern, relative_posix

logger = logging.getLogger(__name__)

# ユーザー選択・ユーザー判定から除外するシステムプロファイル
SYSTEM_PROFILES = ("Default", "Default User", "All Users", "Public")


def resolve_profile_user(
    concrete_path: Union[str, os.PathLike], volume_root: Union[str, os.PathLike]
) -> str:
    """
    パスの所有ユーザーを判定（<root>/Users/<name>/... 形式）

    Args:
        concrete_path: 判定対象の絶対パス
        volume_root: ボリュームのルート

    Returns:
        ユーザー名。判定できない場合やシステムプロファイルの場合は空文字列
    """
    users_root = join_posix(canonical_path(volume_root), USERS_DIR)
    relative = relative_posix(canonical_path(concrete_path), users_root)
    if not relative or "/" not in relative:
        return ""

    name = relative.split("/", 1)[0]
    if name in SYSTEM_PROFILES:
        return ""
    return name


def read_patterns_file(path: Union[str, Path]) -> List[str]:
    """パターンファイルを読み込み（空行と#コメント行は無視）"""
    patterns = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            patterns.append(line)
    return patterns


class SelectionManager:
    """ボリューム上の対象ファイル選択を管理するクラス"""

    def __init__(
        self,
        volume_root: Union[str, os.PathLike],
        catalog: Optional[FolderCatalog] = None,
    ):
        self.volume_root = canonical_path(volume_root)
        self.catalog = catalog or DEFAULT_CATALOG

    @property
    def users_root(self) -> Path:
        return Path(self.volume_root) / USERS_DIR

    def list_users(self) -> List[str]:
        """Usersディレクトリ直下の有効なプロファイル名一覧（ソート済み）"""
        if not self.users_root.is_dir():
            logger.warning("Users directory not found: %s", self.users_root)
            return []

        return sorted(
            entry.name
            for entry in self.users_root.iterdir()
            if entry.is_dir() and entry.name not in SYSTEM_PROFILES
        )

    def select_users(self, requested: Optional[Iterable[str]] = None) -> List[str]:
        """
        設定に基づいて対象ユーザーを決定

        - 指定なし、または"all"を含む場合は全ユーザー
        - それ以外は存在するユーザーのみ（存在しない場合は警告）
        """
        requested = [user for user in (requested or []) if user]
        if not requested or "all" in requested:
            return self.list_users()

        selected = []
        for user in requested:
            if (self.users_root / user).is_dir():
                if user not in selected:
                    selected.append(user)
            else:
                logger.warning("User profile not found: %s", user)
        return selected

    def collect_paths(
        self,
        users: Iterable[str],
        known_folders: Iterable[str],
        patterns: Optional[List[str]] = None,
        excludes: Optional[List[str]] = None,
    ) -> List[str]:
        """
        対象ファイルの絶対パスを収集

        Args:
            users: 対象ユーザー
            known_folders: 対象の既知フォルダ名（例: Documents）
            patterns: フォルダからの相対パスに対するincludeパターン（空なら全ファイル）
            excludes: ボリュームルートからの相対パスに対するexcludeパターン

        Returns:
            正規化・重複除去・ソート済みの絶対パスのリスト
        """
        patterns = patterns or []
        excludes = excludes or []
        users = list(users)
        collected = set()

        for base in self._folder_roots(users, known_folders):
            for file_path in self._iter_files(base):
                relative_to_base = relative_posix(file_path, base) or ""

                # includeパターン（指定がない場合は全ファイル）
                if patterns and not matches_any_pattern(
                    Path(relative_to_base), patterns
                ):
                    continue

                # excludeパターン（ボリュームルートからの相対パスとファイル名で判定）
                relative_to_root = relative_posix(file_path, self.volume_root)
                if excludes and matches_any_pattern(
                    Path(relative_to_root or file_path), excludes
                ):
                    logger.debug("Excluded: %s", file_path)
                    continue

                collected.add(file_path)

        logger.info("Selected %d file(s) under %s", len(collected), self.volume_root)
        return sorted(collected)

    def _folder_roots(
        self, users: List[str], known_folders: Iterable[str]
    ) -> Iterator[str]:
        """ユーザー×既知フォルダの実パスを列挙（マシン単位のフォルダは1回のみ）"""
        seen = set()
        for token in known_folders:
            folder = KnownFolder.from_token(token)
            if folder is None:
                logger.warning("Unknown known folder (skipped): %s", token)
                continue

            owners = users if folder.is_user_scoped else [None]
            for user in owners:
                try:
                    base = self.catalog.resolve(folder, self.volume_root, user)
                except UnresolvableFolder as e:
                    logger.warning("%s", e)
                    continue
                if base in seen:
                    continue
                seen.add(base)
                if not os.path.isdir(base):
                    logger.debug("Folder not present: %s", base)
                    continue
                yield base

    def _iter_files(self, base: str) -> Iterator[str]:
        """配下の通常ファイルを列挙（シンボリックリンクは辿らない）"""
        for dirpath, dirnames, filenames in os.walk(base, followlinks=False):
            dirnames.sort()
            for name in sorted(filenames):
                full_path = os.path.join(dirpath, name)
                if os.path.islink(full_path) or not os.path.isfile(full_path):
                    continue
                yield canonical_path(full_path)
