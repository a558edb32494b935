#!/usr/bin/env python3
"""
CLI tests (click CliRunner)
"""

import logging
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from profile_relocator.__version__ import get_version
from profile_relocator.cli import cli
from profile_relocator.log import LOGGER_NAME


def write(path: Path, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("RELOCATOR_DIR", str(tmp_path / "relocator"))
    monkeypatch.delenv("RELOCATOR_VOLUME_ROOT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("QUIET", raising=False)
    yield
    # ハンドラがCliRunnerの閉じたstderrを握ったままにならないように
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def source_volume(tmp_path: Path) -> Path:
    root = tmp_path / "old"
    write(root / "Users" / "Ann" / "Documents" / "report.pdf", "report")
    write(root / "Users" / "Ann" / "Desktop" / "desktop.ini", "ini")
    (root / "Users" / "Public").mkdir(parents=True)
    return root


@pytest.fixture
def config_dir(tmp_path: Path, source_volume: Path) -> Path:
    directory = tmp_path / "relocator"
    directory.mkdir()
    data = {
        "config": {
            "volume": {"root": str(source_volume)},
            "users": ["all"],
            "includes": {"known_folders": ["Documents", "Desktop"]},
            "excludes": ["**/desktop.ini"],
            "backup": {"root": str(tmp_path / "backups"), "prefix": "relocate"},
        }
    }
    with open(directory / "config.yml", "w", encoding="utf-8") as f:
        yaml.dump(data, f)
    return directory


def staged_roots(tmp_path: Path):
    return sorted((tmp_path / "backups").glob("relocate_*"))


class TestBasicCommands:
    def test_no_subcommand_shows_help(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "restore" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "Profile Relocator" in result.output
        assert get_version() in result.output

    def test_map(self, runner):
        result = runner.invoke(
            cli, ["map", "{{Documents}}/a.txt", "Ann", "--volume-root", "/mnt/win"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "/mnt/win/Users/Ann/Documents/a.txt"

    def test_map_user_scoped_without_user(self, runner):
        result = runner.invoke(cli, ["map", "{{Documents}}/a.txt", "-r", "/mnt/win"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_tokenize(self, runner):
        result = runner.invoke(
            cli, ["tokenize", "/mnt/win/Users/Ann/Pictures/x.jpg", "Ann", "-r", "/mnt/win"]
        )
        assert result.exit_code == 0
        assert result.output.strip() == "{{Pictures}}/x.jpg"

    def test_volume_root_required(self, runner):
        result = runner.invoke(cli, ["tokenize", "/x"])
        assert result.exit_code == 2
        assert "Volume root not specified" in result.output

    def test_users(self, runner, source_volume: Path):
        result = runner.invoke(cli, ["users", "-r", str(source_volume)])
        assert result.exit_code == 0
        assert result.output.split() == ["Ann"]


class TestConfigCommands:
    def test_init_creates_template(self, runner, tmp_path: Path):
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert (tmp_path / "relocator" / "config.yml").is_file()

    def test_init_refuses_overwrite_without_confirmation(self, runner, config_dir: Path):
        before = (config_dir / "config.yml").read_text()
        result = runner.invoke(cli, ["init"], input="n\n")
        assert result.exit_code == 0
        assert (config_dir / "config.yml").read_text() == before

    def test_validate_ok(self, runner, config_dir: Path):
        result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_validate_without_config(self, runner):
        result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_view(self, runner, config_dir: Path):
        result = runner.invoke(cli, ["-c", str(config_dir), "config", "view"])
        assert result.exit_code == 0
        assert "known_folders" in result.output


class TestBackupVerifyRestore:
    def test_backup_dry_run_writes_nothing(self, runner, tmp_path: Path, config_dir: Path):
        result = runner.invoke(cli, ["backup", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "1 files would be staged" in result.output
        assert staged_roots(tmp_path) == []

    def test_backup_verify_restore(self, runner, tmp_path: Path, config_dir: Path):
        result = runner.invoke(cli, ["backup"])
        assert result.exit_code == 0, result.output
        roots = staged_roots(tmp_path)
        assert len(roots) == 1
        staged_root = roots[0]
        assert (staged_root / "files" / "{{Documents}}" / "report.pdf").read_text() == "report"

        result = runner.invoke(cli, ["verify", str(staged_root)])
        assert result.exit_code == 0, result.output
        assert "Manifest validated" in result.output

        new_volume = tmp_path / "new"
        new_volume.mkdir()
        result = runner.invoke(
            cli,
            [
                "restore",
                "--source",
                str(tmp_path / "backups"),
                "--volume-root",
                str(new_volume),
                "--user-map",
                "Ann:Bob",
                "-y",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Total: 1" in result.output
        assert "Copied: 1" in result.output
        restored = new_volume / "Users" / "Bob" / "Documents" / "report.pdf"
        assert restored.read_text() == "report"

    def test_restore_dry_run(self, runner, tmp_path: Path, config_dir: Path):
        assert runner.invoke(cli, ["backup"]).exit_code == 0
        new_volume = tmp_path / "new"
        new_volume.mkdir()

        result = runner.invoke(
            cli,
            ["restore", "-s", str(staged_roots(tmp_path)[0]), "-r", str(new_volume), "-n"],
        )

        assert result.exit_code == 0, result.output
        assert "Dry run complete" in result.output
        assert "Copied: 1" in result.output
        assert list(new_volume.iterdir()) == []

    def test_restore_asks_before_writing(self, runner, tmp_path: Path, config_dir: Path):
        assert runner.invoke(cli, ["backup"]).exit_code == 0
        new_volume = tmp_path / "new"
        new_volume.mkdir()

        result = runner.invoke(
            cli,
            ["restore", "-s", str(staged_roots(tmp_path)[0]), "-r", str(new_volume)],
            input="n\n",
        )

        assert result.exit_code == 0
        assert "Continue?" in result.output
        assert list(new_volume.iterdir()) == []

    def test_verify_only_detects_corruption(self, runner, tmp_path: Path, config_dir: Path):
        assert runner.invoke(cli, ["backup"]).exit_code == 0
        staged_root = staged_roots(tmp_path)[0]
        (staged_root / "files" / "{{Documents}}" / "report.pdf").write_text("tampered")

        result = runner.invoke(cli, ["restore", "-s", str(staged_root), "--verify-only"])

        assert result.exit_code == 1
        assert "SIZE-MISMATCH" in result.output

    def test_restore_aborts_on_integrity_mismatch(
        self, runner, tmp_path: Path, config_dir: Path
    ):
        assert runner.invoke(cli, ["backup"]).exit_code == 0
        staged_root = staged_roots(tmp_path)[0]
        (staged_root / "files" / "{{Documents}}" / "report.pdf").write_text("REPORT")
        new_volume = tmp_path / "new"
        new_volume.mkdir()

        result = runner.invoke(cli, ["restore", "-s", str(staged_root), "-r", str(new_volume), "-y"])

        assert result.exit_code == 1
        assert "Restore aborted" in result.output
        assert "--force" in result.output
        assert list(new_volume.iterdir()) == []

    def test_bad_user_map(self, runner, tmp_path: Path):
        result = runner.invoke(
            cli, ["restore", "-s", str(tmp_path), "-r", str(tmp_path), "--user-map", "Ann"]
        )
        assert result.exit_code == 2
        assert "--user-map" in result.output

    def test_missing_manifest(self, runner, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(cli, ["verify", str(empty)])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestManifestBuild:
    def test_build_to_stdout(self, runner, source_volume: Path):
        report = source_volume / "Users" / "Ann" / "Documents" / "report.pdf"
        result = runner.invoke(
            cli, ["manifest", "build", "-", str(report), "-r", str(source_volume)]
        )
        assert result.exit_code == 0, result.output
        assert '"{{Documents}}/report.pdf"' in result.output

    def test_build_from_stdin(self, runner, tmp_path: Path, source_volume: Path):
        report = source_volume / "Users" / "Ann" / "Documents" / "report.pdf"
        output = tmp_path / "manifest.json"
        result = runner.invoke(
            cli,
            ["manifest", "build", str(output), "-r", str(source_volume)],
            input=f"{report}\n",
        )
        assert result.exit_code == 0, result.output
        assert "1 records" in result.output
        assert output.is_file()
