#!/usr/bin/env python3
"""
Manifest model and JSON serialization.

A manifest is an ordered, read-only sequence of records created wholesale at
backup time. On disk it is a JSON array:

    [
      {
        "symbolic_path": "{{Documents}}/projects/report.pdf",
        "user": "Ann",
        "size": 12345,
        "modification_time": "2025-08-27T12:34:56Z",
        "content_hash": "ab...ff",
        "origin": "Users/Ann/Documents/projects/report.pdf",
        "flags": []
      }
    ]

Manifests written by the older shell tooling (``token_path``, ``mtime``,
``sha256`` keys) are accepted on load.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .exceptions import ManifestMalformed, ManifestMissing
from .path_codec import leading_folder

MANIFEST_FILENAME = "manifest.json"
MTIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# 旧フォーマット（シェル版）のキー名 → 現行キー名
LEGACY_KEYS = {
    "token_path": "symbolic_path",
    "mtime": "modification_time",
    "sha256": "content_hash",
}


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """UTCのISO-8601（秒精度, Z付き）に整形"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(MTIME_FORMAT)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601文字列またはepoch秒をUTCのdatetimeに変換"""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_from_epoch(epoch: float) -> datetime:
    """mtime（epoch秒）を秒精度のUTC datetimeに変換"""
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc)


@dataclass(frozen=True)
class ManifestRecord:
    """Identity and integrity metadata for one file."""

    symbolic_path: str
    user: str = ""
    size: int = 0
    modification_time: Optional[datetime] = None
    content_hash: str = ""
    origin: str = ""
    flags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.symbolic_path:
            raise ValueError("symbolic_path must not be empty")
        if isinstance(self.size, bool) or not isinstance(self.size, int):
            raise ValueError(f"size must be an integer: {self.size!r}")
        if self.size < 0:
            raise ValueError(f"size must be >= 0: {self.size}")
        if not isinstance(self.flags, tuple):
            object.__setattr__(self, "flags", tuple(self.flags))

    @property
    def known_folder(self) -> Optional[str]:
        """Leading token of the symbolic path (None for non-portable paths)."""
        return leading_folder(self.symbolic_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbolic_path": self.symbolic_path,
            "user": self.user,
            "size": self.size,
            "modification_time": format_timestamp(self.modification_time),
            "content_hash": self.content_hash,
            "origin": self.origin,
            "flags": list(self.flags),
        }

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], index: Optional[int] = None
    ) -> "ManifestRecord":
        """辞書からレコードを作成（旧キー名にも対応）

        Raises:
            ManifestMalformed: 必須項目の欠落や型の不一致
        """
        where = f"record {index}" if index is not None else "record"
        if not isinstance(data, dict):
            raise ManifestMalformed(f"{where}: expected an object, got {type(data).__name__}")

        normalized = dict(data)
        for legacy, current in LEGACY_KEYS.items():
            if legacy in normalized and current not in normalized:
                normalized[current] = normalized.pop(legacy)

        symbolic_path = normalized.get("symbolic_path")
        if not isinstance(symbolic_path, str) or not symbolic_path:
            raise ManifestMalformed(f"{where}: 'symbolic_path' is required")

        flags = normalized.get("flags") or []
        if not isinstance(flags, list):
            raise ManifestMalformed(f"{where}: 'flags' must be a list")

        try:
            return cls(
                symbolic_path=symbolic_path,
                user=normalized.get("user") or "",
                size=normalized.get("size", 0),
                modification_time=parse_timestamp(normalized.get("modification_time")),
                content_hash=(normalized.get("content_hash") or "").lower(),
                origin=normalized.get("origin") or "",
                flags=tuple(str(flag) for flag in flags),
            )
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise ManifestMalformed(f"{where}: {e}") from e


class Manifest:
    """Ordered, immutable collection of manifest records."""

    def __init__(self, records: Iterable[ManifestRecord] = ()):
        self._records: Tuple[ManifestRecord, ...] = tuple(records)

    @property
    def records(self) -> Tuple[ManifestRecord, ...]:
        return self._records

    def __iter__(self) -> Iterator[ManifestRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> ManifestRecord:
        return self._records[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:
        return f"Manifest({len(self._records)} records)"

    @property
    def total_size(self) -> int:
        return sum(record.size for record in self._records)

    def users(self) -> List[str]:
        return sorted({record.user for record in self._records})

    def known_folders(self) -> List[str]:
        return sorted(
            {record.known_folder for record in self._records if record.known_folder}
        )

    def filter(self, predicate: Callable[[ManifestRecord], bool]) -> "Manifest":
        return Manifest(record for record in self._records if predicate(record))

    # --- Serialization ---

    def to_list(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self._records]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_list(), indent=indent, ensure_ascii=False)

    def dump(self, path: Union[str, Path]) -> Path:
        """manifest.jsonとして書き出し"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_json())
            f.write("\n")
        return path

    @classmethod
    def from_list(cls, data: Any) -> "Manifest":
        if not isinstance(data, list):
            raise ManifestMalformed(
                f"Manifest must be a JSON array, got {type(data).__name__}"
            )
        return cls(ManifestRecord.from_dict(item, i) for i, item in enumerate(data))

    @classmethod
    def from_json(cls, text: str) -> "Manifest":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestMalformed(f"Invalid manifest JSON: {e}") from e
        return cls.from_list(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Manifest":
        """manifest.jsonを読み込み

        Raises:
            ManifestMissing: ファイルが存在しない
            ManifestMalformed: JSONとして不正、またはレコード形式が不正
        """
        path = Path(path)
        if not path.is_file():
            raise ManifestMissing(f"Manifest not found: {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ManifestMalformed(f"Manifest is not valid UTF-8: {path}") from e
        return cls.from_json(text)
