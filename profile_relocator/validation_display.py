"""
Validation結果表示用のヘルパーモジュール

設定のバリデーション結果とマニフェスト検証結果の表示を1箇所に集約。
"""

import click
from colorama import Fore, Style
from typing import List, Tuple
from .config import ConfigManager
from .managers.manifest_validator import ValidationReport, ValidationStatus


class ValidationDisplay:
    """バリデーション結果の表示を統一管理するクラス"""

    # CLI Design Guide: 設定系コマンドは記号ベース (✗, !, ✓)
    ERROR_PREFIX = "✗"
    WARNING_PREFIX = "!"
    INFO_PREFIX = "i"

    STATUS_LABELS = {
        ValidationStatus.MISSING: "MISSING",
        ValidationStatus.SIZE_MISMATCH: "SIZE-MISMATCH",
        ValidationStatus.HASH_MISMATCH: "HASH-MISMATCH",
    }

    @classmethod
    def categorize_results(cls, results: List[str]) -> Tuple[List[str], List[str]]:
        """バリデーション結果を警告/情報とエラーに分類"""
        warnings_and_info = [
            r for r in results if r.startswith((cls.WARNING_PREFIX, cls.INFO_PREFIX))
        ]
        errors = [r for r in results if r.startswith(cls.ERROR_PREFIX)]
        return warnings_and_info, errors

    @classmethod
    def _echo_warnings(cls, messages: List[str]) -> None:
        click.echo(f"{Fore.YELLOW}Warnings:{Style.RESET_ALL}")
        for msg in messages:
            symbol = msg[0]
            color = Fore.CYAN if symbol == cls.INFO_PREFIX else Fore.YELLOW
            click.echo(f"  {color}{symbol}{Style.RESET_ALL} {msg[1:]}")

    @classmethod
    def _echo_errors(cls, errors: List[str]) -> None:
        click.echo(f"\n{Fore.RED}Errors:{Style.RESET_ALL}")
        for error in errors:
            click.echo(f"  {Fore.RED}✗{Style.RESET_ALL} {error[1:]}")

    @classmethod
    def display_validation_results(
        cls,
        config_manager: ConfigManager,
        show_success_message: bool = True,
        ask_continue_on_error: bool = False,
    ) -> bool:
        """
        統一されたバリデーション結果表示

        Args:
            config_manager: 設定管理オブジェクト
            show_success_message: エラーがない場合の成功メッセージ表示フラグ
            ask_continue_on_error: エラー時に続行確認するフラグ

        Returns:
            bool: 続行可能かどうか（エラーなし or ユーザーが続行選択）
        """
        validation_results = config_manager.validate_config()
        warnings_and_info, errors = cls.categorize_results(validation_results)

        # 情報のみの行は通常実行では表示しない
        warnings = [r for r in warnings_and_info if r.startswith(cls.WARNING_PREFIX)]
        if warnings:
            cls._echo_warnings(warnings)

        if errors:
            cls._echo_errors(errors)
            if ask_continue_on_error:
                return click.confirm("Continue anyway?")
            return False

        if show_success_message:
            click.echo(f"\n{Fore.GREEN}✓ No configuration errors{Style.RESET_ALL}")

        return True

    @classmethod
    def display_detailed_validation(cls, config_manager: ConfigManager) -> bool:
        """詳細バリデーション表示（config validate コマンド用）"""
        validation_results = config_manager.validate_config()
        warnings_and_info, errors = cls.categorize_results(validation_results)

        if warnings_and_info:
            cls._echo_warnings(warnings_and_info)

        if errors:
            cls._echo_errors(errors)
            click.echo(
                f"\n{Fore.CYAN}Summary:{Style.RESET_ALL} "
                f"{len(errors)} errors, {len(warnings_and_info)} warnings"
            )
            return False

        click.echo(f"\n{Fore.GREEN}✓ Configuration is valid{Style.RESET_ALL}")
        return True

    @classmethod
    def display_manifest_report(cls, report: ValidationReport, verbose: bool = False):
        """マニフェスト検証結果の表示（verify / restore --verify-only 用）"""
        counts = report.counts
        for entry in report.problems:
            label = cls.STATUS_LABELS[entry.status]
            detail = ""
            if entry.expected is not None:
                detail = f" (expected {entry.expected}, actual {entry.actual or '-'})"
            click.echo(
                f"  {Fore.RED}✗{Style.RESET_ALL} [{label}] "
                f"{entry.record.symbolic_path}{detail}"
            )

        if verbose and report.unexpected_files:
            click.echo(f"\n{Fore.YELLOW}Not in manifest:{Style.RESET_ALL}")
            for path in report.unexpected_files:
                click.echo(f"  {Fore.YELLOW}!{Style.RESET_ALL} {path}")

        click.echo(
            f"\nRecords: {len(report.entries)} | OK: {counts['ok']} | "
            f"Missing: {counts['missing']} | "
            f"Size mismatch: {counts['size_mismatch']} | "
            f"Hash mismatch: {counts['hash_mismatch']}"
        )
        if report.valid:
            click.echo(f"{Fore.GREEN}✓ Manifest validated{Style.RESET_ALL}")
        else:
            click.echo(f"{Fore.RED}✗ Manifest validation failed{Style.RESET_ALL}")
