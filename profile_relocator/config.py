#!/usr/bin/env python3
"""
Relocator - 設定管理モジュール
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Any, Set
from dataclasses import dataclass, field

import yaml

from .known_folders import FolderCatalog, KnownFolder, USERS_DIR
from .utils import get_relocator_dir

VOLUME_ROOT_ENV = "RELOCATOR_VOLUME_ROOT"
DEFAULT_MAX_LOG_BYTES = 2 * 1024 * 1024
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def expand_env_vars(value: Any, missing_vars: Set[str] = None) -> Any:
    """環境変数を展開（${VAR}または${VAR:-default}形式をサポート）"""
    if missing_vars is None:
        missing_vars = set()

    if isinstance(value, str):

        def replace_env_var(match):
            var_expr = match.group(1)
            if ":-" in var_expr:
                var_name, default_value = var_expr.split(":-", 1)
                env_value = os.getenv(var_name)
                if env_value is None:
                    missing_vars.add(var_name)
                    return default_value
                return env_value
            else:
                var_name = var_expr
                env_value = os.getenv(var_name)
                if env_value is None:
                    missing_vars.add(var_name)
                    return f"${{{var_name}}}"  # 未定義の場合は元の形式を保持
                return env_value

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, value)

    elif isinstance(value, dict):
        return {k: expand_env_vars(v, missing_vars) for k, v in value.items()}

    elif isinstance(value, list):
        return [expand_env_vars(item, missing_vars) for item in value]

    return value


def _as_list(value: Any) -> List[str]:
    """単一文字列・Noneをリストに正規化"""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


@dataclass
class VolumeConfig:
    """ボリューム設定"""

    root: Optional[str] = None


@dataclass
class IncludesConfig:
    """バックアップ対象の設定"""

    known_folders: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    patterns_file: Optional[str] = None


@dataclass
class BackupConfig:
    """ステージング先の設定"""

    root: Optional[str] = None
    prefix: str = "relocate"


@dataclass
class LoggingConfig:
    """ログ設定"""

    level: str = "INFO"
    file: Optional[str] = None
    max_bytes: int = DEFAULT_MAX_LOG_BYTES
    quiet: bool = False


@dataclass
class Config:
    """Relocatorの設定"""

    volume: VolumeConfig
    includes: IncludesConfig
    backup: BackupConfig
    logging: LoggingConfig
    users: List[str] = field(default_factory=lambda: ["all"])
    excludes: List[str] = field(default_factory=list)
    known_folder_overrides: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """辞書からConfigオブジェクトを作成"""
        config_data = (data or {}).get("config") or {}
        if not isinstance(config_data, dict):
            raise ValueError("'config' must be a mapping")

        volume_data = config_data.get("volume") or {}
        volume = VolumeConfig(root=volume_data.get("root"))

        includes_data = config_data.get("includes") or {}
        includes = IncludesConfig(
            known_folders=_as_list(includes_data.get("known_folders")),
            patterns=_as_list(includes_data.get("patterns")),
            patterns_file=includes_data.get("patterns_file"),
        )

        backup_data = config_data.get("backup") or {}
        backup = BackupConfig(
            root=backup_data.get("root"),
            prefix=backup_data.get("prefix") or "relocate",
        )

        logging_data = config_data.get("logging") or {}
        logging_config = LoggingConfig(
            level=str(logging_data.get("level") or "INFO").upper(),
            file=logging_data.get("file"),
            max_bytes=int(logging_data.get("max_bytes", DEFAULT_MAX_LOG_BYTES)),
            quiet=bool(logging_data.get("quiet", False)),
        )

        overrides = config_data.get("known_folder_overrides") or {}
        if not isinstance(overrides, dict):
            raise ValueError("'known_folder_overrides' must be a mapping")

        users = _as_list(config_data.get("users")) or ["all"]

        return cls(
            volume=volume,
            includes=includes,
            backup=backup,
            logging=logging_config,
            users=users,
            excludes=_as_list(config_data.get("excludes")),
            known_folder_overrides={str(k): str(v) for k, v in overrides.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        """YAML書き出し用の辞書に変換"""
        return {
            "config": {
                "volume": {"root": self.volume.root},
                "users": list(self.users),
                "includes": {
                    "known_folders": list(self.includes.known_folders),
                    "patterns": list(self.includes.patterns),
                    "patterns_file": self.includes.patterns_file,
                },
                "excludes": list(self.excludes),
                "backup": {"root": self.backup.root, "prefix": self.backup.prefix},
                "known_folder_overrides": dict(self.known_folder_overrides),
                "logging": {
                    "level": self.logging.level,
                    "file": self.logging.file,
                    "max_bytes": self.logging.max_bytes,
                    "quiet": self.logging.quiet,
                },
            }
        }


class ConfigManager:
    """設定ファイルの管理クラス"""

    def __init__(self, config_path: str = "config.yml"):
        self.config_path = Path(config_path)
        self._config = None
        self._missing_env_vars = set()

    def load_config(self) -> Config:
        """設定ファイルを読み込み（環境変数展開含む）"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        # 環境変数を展開し、未定義変数を記録
        self._missing_env_vars.clear()
        expanded_data = expand_env_vars(data, self._missing_env_vars)

        self._config = Config.from_dict(expanded_data)
        return self._config

    @property
    def config(self) -> Config:
        """設定オブジェクトを取得（遅延読み込み）"""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    @property
    def missing_env_vars(self) -> Set[str]:
        """未定義の環境変数リストを取得"""
        if self._config is None:
            self.load_config()
        return self._missing_env_vars.copy()

    def get_volume_root(self, override: Optional[str] = None) -> Optional[str]:
        """
        ボリュームルートを取得

        優先順位: 引数（--volume-root） > RELOCATOR_VOLUME_ROOT > 設定ファイル
        """
        root = override or os.getenv(VOLUME_ROOT_ENV) or self.config.volume.root
        if not root:
            return None
        return str(self.expand_path(root))

    def get_backup_root(self) -> Optional[Path]:
        """ステージング先ディレクトリを取得"""
        if not self.config.backup.root:
            return None
        return self.expand_path(self.config.backup.root)

    def get_include_patterns(self) -> List[str]:
        """includeパターン（patterns + patterns_fileの内容）を取得"""
        from .managers.selection_manager import read_patterns_file

        patterns = list(self.config.includes.patterns)
        if self.config.includes.patterns_file:
            patterns_file = self.expand_path(self.config.includes.patterns_file)
            patterns.extend(read_patterns_file(patterns_file))
        return patterns

    def get_catalog(self) -> FolderCatalog:
        """ローカライズ設定を反映したFolderCatalogを取得"""
        return FolderCatalog(self.config.known_folder_overrides)

    def validate_config(self) -> List[str]:
        """設定の妥当性をチェック（環境変数未定義警告含む）"""
        errors = []
        warnings = []

        # 未定義環境変数の警告
        if self.missing_env_vars:
            for var in sorted(self.missing_env_vars):
                warnings.append(f"!Environment variable '{var}' is not defined")

        # ボリュームルートのチェック
        volume_root = self.get_volume_root()
        if not volume_root:
            errors.append("✗Volume root is required (config.volume.root)")
        elif "${" in volume_root:
            warnings.append(
                f"!Volume root contains undefined environment variables: {volume_root}"
            )
        elif not Path(volume_root).exists():
            warnings.append(f"!Volume root does not exist: {volume_root}")
        elif not Path(volume_root).is_dir():
            errors.append(f"✗Volume root is not a directory: {volume_root}")
        elif not (Path(volume_root) / USERS_DIR).is_dir() and not (
            Path(volume_root) / "Windows"
        ).is_dir():
            warnings.append(
                f"!Volume root has neither {USERS_DIR}/ nor Windows/: {volume_root}"
            )

        # 既知フォルダ名のチェック
        if not self.config.includes.known_folders:
            errors.append("✗No known folders specified (config.includes.known_folders)")
        for name in self.config.includes.known_folders:
            if KnownFolder.from_token(name) is None:
                errors.append(f"✗Unknown known folder: {name}")

        for name, template in self.config.known_folder_overrides.items():
            if KnownFolder.from_token(name) is None:
                errors.append(f"✗Unknown known folder in overrides: {name}")
            elif ".." in template.replace("\\", "/").split("/"):
                errors.append(f"✗Override for {name} must not contain '..'")

        # パターンファイルのチェック
        patterns_file = self.config.includes.patterns_file
        if patterns_file and not self.expand_path(patterns_file).is_file():
            errors.append(f"✗Patterns file not found: {patterns_file}")

        # バックアップ先のチェック
        backup_root = self.config.backup.root
        if not backup_root:
            warnings.append("!Backup root is not set (config.backup.root)")
        elif "${" in str(backup_root):
            warnings.append(
                f"!Backup root contains undefined environment variables: {backup_root}"
            )
        elif not self.expand_path(backup_root).exists():
            warnings.append(
                f"iBackup root does not exist yet and will be created: {backup_root}"
            )

        # ログ設定のチェック
        if self.config.logging.level not in LOG_LEVELS:
            errors.append(
                f"✗Invalid logging level: {self.config.logging.level} "
                f"(choose from {', '.join(LOG_LEVELS)})"
            )
        if self.config.logging.max_bytes <= 0:
            errors.append("✗logging.max_bytes must be positive")

        if not self.config.excludes:
            warnings.append("iNo exclude patterns specified")

        # 警告とエラーを結合して返す
        return warnings + errors

    def get_validation_errors(self) -> List[str]:
        """エラーのみを取得（警告・情報は除外）"""
        results = self.validate_config()
        # ✗で始まるもののみをエラーとして扱う
        return [result for result in results if result.startswith("✗")]

    def expand_path(self, path: str) -> Path:
        """パスを展開（~やシェル変数を解決）"""
        return Path(os.path.expandvars(os.path.expanduser(path)))

    def save_config(self) -> None:
        """現在の設定をYAMLで書き出し"""
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.config.to_dict(),
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )


def _get_template_path() -> Path:
    """テンプレートファイルのパスを取得"""
    package_dir = Path(__file__).parent
    return package_dir / "templates" / "config-template.yml"


def get_default_config_path() -> Path:
    """既定の設定ファイルパス（${RELOCATOR_DIR}/config.yml）"""
    return get_relocator_dir() / "config.yml"


def create_default_config(output_path: str = "config.yml") -> Path:
    """
    デフォルトの設定ファイルを生成

    テンプレートファイル（templates/config-template.yml）をコピーして出力する。
    """
    template_path = _get_template_path()

    if not template_path.exists():
        raise FileNotFoundError(f"Template file not found: {template_path}")

    template_content = template_path.read_text(encoding="utf-8")

    output = Path(output_path).expanduser()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(template_content, encoding="utf-8")
    return output
