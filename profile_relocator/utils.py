#!/usr/bin/env python3
"""
Utility functions for profile-relocator
"""

import os
import re
import fnmatch
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

_REPEATED_SEPARATORS = re.compile(r"/{2,}")


def get_relocator_dir() -> Path:
    """Relocatorディレクトリのパスを取得（環境変数対応）

    Returns:
        Path: Relocatorディレクトリのパス（絶対パス・解決済み）

    Note:
        RELOCATOR_DIR環境変数が設定されている場合はそれを使用、
        未設定の場合は~/.config/relocatorを使用
    """
    return (
        Path(os.getenv("RELOCATOR_DIR", "~/.config/relocator")).expanduser().resolve()
    )


def canonical_path(path: Union[str, os.PathLike]) -> str:
    """
    パス文字列を正規化（連続する/を1つに、末尾の/を除去）

    ``..`` などの解決は行わない（文字列としての同一性を保つため）
    """
    text = _REPEATED_SEPARATORS.sub("/", os.fspath(path))
    if len(text) > 1:
        text = text.rstrip("/")
    return text


def join_posix(*parts: str) -> str:
    """空要素を無視してPOSIX形式で結合し、正規化したパスを返す"""
    return canonical_path("/".join(part for part in parts if part))


def path_parts(path: str) -> List[str]:
    """パスをコンポーネントに分割（空要素は除外）"""
    return [part for part in path.split("/") if part]


def relative_posix(path: str, base: str) -> Optional[str]:
    """
    pathがbase配下ならbaseからの相対パスを返す（コンポーネント単位で比較）

    Returns:
        相対パス（path == base の場合は空文字列）、配下でない場合はNone
    """
    path = canonical_path(path)
    base = canonical_path(base)
    if base == "/":
        return path[1:] if path.startswith("/") else None
    if path == base:
        return ""
    if path.startswith(base + "/"):
        return path[len(base) + 1 :]
    return None


def matches_glob_pattern(path: Path, pattern: str) -> bool:
    """
    パスがglobパターンにマッチするかチェック

    Supports:
    - Basic wildcards: *.txt, report.*
    - Globstar: **/*.pdf, **/node_modules/**
    - Path matching: Projects/*/src

    Args:
        path: チェック対象のパス（相対パス）
        pattern: globパターン

    Returns:
        マッチした場合True
    """
    # パスをPOSIX形式に正規化
    path_str = str(PurePosixPath(path))

    # globstarパターン（**）の処理
    if "**" in pattern:
        # 正規表現の特殊文字をエスケープしてからワイルドカードを復元
        regex_pattern = re.escape(pattern)
        regex_pattern = regex_pattern.replace(r"\*\*/", "__GLOBSTAR_SLASH__")
        regex_pattern = regex_pattern.replace(r"\*\*", "__GLOBSTAR__")
        regex_pattern = regex_pattern.replace(r"\*", "[^/]*")
        regex_pattern = regex_pattern.replace(r"\?", "[^/]")
        regex_pattern = regex_pattern.replace("__GLOBSTAR_SLASH__", "(?:.*/)?")
        regex_pattern = regex_pattern.replace("__GLOBSTAR__", ".*")
        regex_pattern = f"^{regex_pattern}$"

        try:
            return bool(re.match(regex_pattern, path_str))
        except re.error:
            return False
    else:
        # パス全体とファイル名の両方でマッチを試みる
        if fnmatch.fnmatch(path_str, pattern):
            return True
        if fnmatch.fnmatch(PurePosixPath(path_str).name, pattern):
            return True
        return False


def matches_any_pattern(file_path: Path, patterns: List[str]) -> bool:
    """
    ファイルがパターンリストのいずれかにマッチするかチェック（OR評価）

    Args:
        file_path: チェック対象のファイルパス
        patterns: パターンリスト

    Returns:
        いずれかのパターンにマッチした場合True
    """
    for pattern in patterns:
        if matches_glob_pattern(file_path, pattern):
            return True
    return False


def format_bytes(size: int) -> str:
    """バイト数をIEC形式（KiB, MiB...）で表示用に整形"""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(value) < 1024 or unit == "TiB":
            if unit == "B":
                return f"{int(value)}B"
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"
