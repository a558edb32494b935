#!/usr/bin/env python3
"""
Content digest manager (SHA-256) with a stat-keyed cache.
"""

import hashlib
import os
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

CHUNK_SIZE = 8192


class DigestManager:
    """Compute and cache file content digests."""

    algorithm = "sha256"

    def __init__(self):
        # (パス, サイズ, mtime_ns) -> ハッシュのキャッシュ
        self._hash_cache: Dict[Tuple[str, int, int], str] = {}

    def clear_caches(self) -> None:
        """Clear all caches."""
        self._hash_cache.clear()

    def digest(self, file_path: Union[str, Path]) -> str:
        """
        Return the hex digest of a file.

        Args:
            file_path: File to hash.

        Returns:
            Lowercase hex digest.

        Raises:
            OSError: The file cannot be read.
        """
        stat = os.stat(file_path)
        cache_key = (os.fspath(file_path), stat.st_size, stat.st_mtime_ns)

        # キャッシュチェック（サイズかmtimeが変わればキーも変わる）
        if cache_key in self._hash_cache:
            return self._hash_cache[cache_key]

        hasher = hashlib.new(self.algorithm)
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                hasher.update(chunk)

        file_hash = hasher.hexdigest()
        self._hash_cache[cache_key] = file_hash
        return file_hash

    def try_digest(self, file_path: Union[str, Path]) -> Optional[str]:
        """Like digest(), but returns None when the file cannot be read."""
        try:
            return self.digest(file_path)
        except OSError:
            return None

    def get_cache_stats(self) -> Dict[str, int]:
        """Get cache statistics."""
        return {"hash_cache_size": len(self._hash_cache)}
