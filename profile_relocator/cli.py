#!/usr/bin/env python3
"""
Profile Relocator - Main CLI
"""

import os
import sys
import rich_click as click
from pathlib import Path
from colorama import Fore, Style

from .__version__ import get_version
from .config import (
    ConfigManager,
    LoggingConfig,
    create_default_config,
    get_default_config_path,
)
from .exceptions import IntegrityMismatch, RelocatorError
from .known_folders import DEFAULT_CATALOG
from .log import setup_logging
from .manifest import MANIFEST_FILENAME, Manifest
from .managers.manifest_builder import ManifestBuilder
from .managers.manifest_validator import ManifestValidator
from .managers.restore_manager import (
    DirectoryPolicy,
    RestoreFilters,
    RestoreManager,
    RestorePolicy,
    RestoreState,
    disk_free_bytes,
    parse_user_map,
)
from .managers.selection_manager import SelectionManager
from .managers.staging_manager import StagingManager
from .path_codec import decode, encode
from .utils import format_bytes, get_relocator_dir
from .validation_display import ValidationDisplay


def set_relocator_dir(relocator_dir: str) -> None:
    """Set RELOCATOR_DIR for the current process so config.yml is found there."""
    resolved_path = Path(relocator_dir).expanduser().resolve()
    os.environ["RELOCATOR_DIR"] = str(resolved_path)


def find_config_file() -> str:
    """Find config file from RELOCATOR_DIR.

    Returns:
        Config file path if found, None otherwise.
    """
    config_path = get_default_config_path()
    if config_path.exists():
        return str(config_path)
    return None


def _error(message: str) -> None:
    click.echo(f"{Fore.RED}Error: {message}{Style.RESET_ALL}")
    sys.exit(1)


def _get_config_manager(ctx, required: bool = False):
    """Load the config manager once per invocation (None when no config file)."""
    if "config_manager" in ctx.obj:
        return ctx.obj["config_manager"]

    config_path = ctx.obj.get("config_path")
    if config_path is None:
        if required:
            click.echo(
                f"{Fore.RED}Error: Configuration file not found{Style.RESET_ALL}"
            )
            click.echo(f"Expected at: {get_default_config_path()}")
            click.echo(f"\n{Fore.YELLOW}To get started:{Style.RESET_ALL}")
            click.echo("  relocate init   # create a config template")
            sys.exit(1)
        ctx.obj["config_manager"] = None
        return None

    config_manager = ConfigManager(config_path)
    try:
        config_manager.load_config()
    except (OSError, ValueError) as e:
        _error(f"Cannot load {config_path}: {e}")
    ctx.obj["config_manager"] = config_manager
    return config_manager


def _configure_logging(ctx, dry_run: bool = False) -> None:
    config_manager = _get_config_manager(ctx)
    settings = config_manager.config.logging if config_manager else LoggingConfig()

    level = "DEBUG" if ctx.obj.get("verbose") else os.getenv("LOG_LEVEL", settings.level)
    log_file = ctx.obj.get("log_file") or settings.file
    setup_logging(
        level=level,
        log_file=log_file,
        quiet=True if settings.quiet else None,
        dry_run=dry_run,
        max_bytes=settings.max_bytes,
    )


def _resolve_volume_root(ctx, volume_root) -> str:
    """--volume-root > RELOCATOR_VOLUME_ROOT > config.volume.root"""
    config_manager = _get_config_manager(ctx)
    if config_manager:
        root = config_manager.get_volume_root(volume_root)
    else:
        root = volume_root or os.getenv("RELOCATOR_VOLUME_ROOT")
    if not root:
        raise click.UsageError(
            "Volume root not specified (use --volume-root or config.volume.root)"
        )
    return root


def _get_catalog(ctx):
    config_manager = _get_config_manager(ctx)
    if config_manager is None:
        return DEFAULT_CATALOG
    try:
        return config_manager.get_catalog()
    except ValueError as e:
        _error(str(e))


def _print_summary(outcome) -> None:
    failed_color = Fore.RED if outcome.failed else ""
    click.echo(
        f"Total: {outcome.total} | "
        f"{Fore.GREEN}Copied: {outcome.copied}{Style.RESET_ALL} | "
        f"{Fore.YELLOW}Skipped: {outcome.skipped}{Style.RESET_ALL} | "
        f"{failed_color}Failed: {outcome.failed}{Style.RESET_ALL}"
    )


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "-c",
    "relocator_dir",
    default=None,
    help="Relocator directory containing config.yml",
)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--log-file", default=None, help="Also write logs to this file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, relocator_dir, version, log_file, verbose):
    """Relocate user profile files between Windows volumes.

    \b
    Typical workflow:
      relocate backup                       # stage files from the source volume
      relocate verify <staged root>         # check sizes and hashes
      relocate restore --source <staged root> --volume-root /mnt/new
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file

    if relocator_dir:
        set_relocator_dir(relocator_dir)

    if version:
        click.echo(
            f"{Fore.CYAN}Profile Relocator {Fore.GREEN}{get_version()}{Style.RESET_ALL}"
        )
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    ctx.obj["config_path"] = find_config_file()


@cli.command()
@click.option("--dry-run", "-n", is_flag=True, help="Dry run - show what would be done")
@click.option("--force", "-f", is_flag=True, help="Continue even if space is short")
@click.option("--volume-root", "-r", help="Source volume root (overrides config)")
@click.option("--backup-root", "-o", help="Staging destination (overrides config)")
@click.pass_context
def backup(ctx, dry_run, force, volume_root, backup_root):
    """Stage known-folder files of the source volume with a manifest."""
    config_manager = _get_config_manager(ctx, required=True)
    _configure_logging(ctx, dry_run=dry_run)

    try:
        config_path = Path(ctx.obj["config_path"]).resolve()
        click.echo(f"Using config: {Fore.CYAN}{config_path}{Style.RESET_ALL}")

        if not ValidationDisplay.display_validation_results(
            config_manager, show_success_message=False, ask_continue_on_error=True
        ):
            return

        config = config_manager.config
        root = _resolve_volume_root(ctx, volume_root)
        catalog = _get_catalog(ctx)
        target_root = (
            Path(backup_root).expanduser()
            if backup_root
            else config_manager.get_backup_root()
        )
        if target_root is None:
            _error("Backup root not specified (use --backup-root or config.backup.root)")

        selection = SelectionManager(root, catalog)
        users = selection.select_users(config.users)
        if not users:
            _error(f"No user profiles found under {selection.users_root}")
        click.echo(f"Users: {', '.join(users)}")

        paths = selection.collect_paths(
            users,
            config.includes.known_folders,
            config_manager.get_include_patterns(),
            config.excludes,
        )
        manifest = ManifestBuilder(root, catalog=catalog).build(paths)

        required = manifest.total_size
        available = disk_free_bytes(target_root)
        click.echo(
            f"Files: {len(manifest)} ({format_bytes(required)}), "
            f"free at {target_root}: {format_bytes(available)}"
        )
        if required > available:
            if not force:
                _error("Insufficient space on backup root (use --force to continue)")
            click.echo(
                f"{Fore.YELLOW}Warning: insufficient space, continuing (--force){Style.RESET_ALL}"
            )

        staging = StagingManager(catalog)
        if dry_run:
            results = staging.stage(manifest, root, target_root, dry_run=True)
            click.echo(
                f"\n{Fore.CYAN}Dry run:{Style.RESET_ALL} "
                f"{len(results['staged'])} files would be staged"
            )
            return

        staged_root = staging.create_staging_dir(target_root, config.backup.prefix)
        results = staging.stage(manifest, root, staged_root)

        click.echo(f"\nBackup complete: {len(results['staged'])} files staged")
        if results["errors"]:
            click.echo(f"\n{Fore.RED}Errors:{Style.RESET_ALL}")
            for error in results["errors"]:
                click.echo(f"  - {error}")

        click.echo(f"\n{Fore.CYAN}Staged root:{Style.RESET_ALL} {staged_root}")
        click.echo(f"  relocate verify {staged_root}")

    except RelocatorError as e:
        _error(str(e))
    except OSError as e:
        _error(str(e))


@cli.group("manifest")
def manifest_cmd():
    """Manifest commands."""


@manifest_cmd.command("build")
@click.argument("output")
@click.argument("paths", nargs=-1)
@click.option("--volume-root", "-r", help="Volume root the paths live on")
@click.pass_context
def manifest_build(ctx, output, paths, volume_root):
    """Build a manifest from explicit file paths (read from stdin when none given).

    Use '-' as OUTPUT to print the manifest.
    """
    _configure_logging(ctx)
    root = _resolve_volume_root(ctx, volume_root)

    if not paths:
        stdin = click.get_text_stream("stdin")
        paths = [line.strip() for line in stdin if line.strip()]

    try:
        manifest = ManifestBuilder(root, catalog=_get_catalog(ctx)).build(paths)
        if output == "-":
            click.echo(manifest.to_json())
        else:
            manifest.dump(output)
            click.echo(
                f"{Fore.GREEN}✓ Manifest written: {output} ({len(manifest)} records){Style.RESET_ALL}"
            )
    except (RelocatorError, OSError) as e:
        _error(str(e))


@cli.command()
@click.argument("source")
@click.option("--show-extra", is_flag=True, help="Also list files not in the manifest")
@click.pass_context
def verify(ctx, source, show_extra):
    """Validate a staged root against its manifest (sizes and hashes)."""
    _configure_logging(ctx)
    try:
        staging = StagingManager(_get_catalog(ctx))
        staged_root = staging.locate(source)
        manifest = Manifest.load(staged_root / MANIFEST_FILENAME)
        report = ManifestValidator().validate(manifest, staged_root)
    except RelocatorError as e:
        _error(str(e))

    click.echo(f"Staged root: {Fore.CYAN}{staged_root}{Style.RESET_ALL}")
    ValidationDisplay.display_manifest_report(report, verbose=show_extra)
    if not report.valid:
        sys.exit(1)


@cli.command()
@click.option("--source", "-s", required=True, help="Extracted staged root (or its parent)")
@click.option("--volume-root", "-r", help="Target volume root (overrides config)")
@click.option("--only-user", help="Restore only records of this (source) user")
@click.option("--only-folder", help="Restore only this known folder, e.g. Documents")
@click.option(
    "--user-map",
    "user_maps",
    multiple=True,
    help="Rename a user, SOURCE:TARGET (can be used multiple times)",
)
@click.option("--dry-run", "-n", is_flag=True, help="Dry run - show what would be done")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing files, ignore space and validation failures",
)
@click.option("--assume-yes", "-y", is_flag=True, help="Create missing directories without asking")
@click.option("--verify-only", is_flag=True, help="Only validate the staged root")
@click.option("--skip-verify", is_flag=True, help="Skip manifest validation")
@click.pass_context
def restore(
    ctx,
    source,
    volume_root,
    only_user,
    only_folder,
    user_maps,
    dry_run,
    force,
    assume_yes,
    verify_only,
    skip_verify,
):
    """Restore a staged root onto a target volume."""
    _configure_logging(ctx, dry_run=dry_run)

    try:
        user_map = parse_user_map(user_maps)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--user-map")

    root = None if verify_only else _resolve_volume_root(ctx, volume_root)

    if root and not dry_run and not (assume_yes or force):
        click.echo(
            f"This will restore {Fore.CYAN}{source}{Style.RESET_ALL} "
            f"onto {Fore.CYAN}{root}{Style.RESET_ALL}"
        )
        for origin, destination in user_map.items():
            click.echo(f"  user {origin} -> {destination}")
        click.echo("Existing files are kept (use --force to overwrite).")
        if not click.confirm("Continue?"):
            return

    if force or assume_yes:
        directories = DirectoryPolicy.ALWAYS_CREATE
    else:
        directories = DirectoryPolicy.CONFIRM

    policy = RestorePolicy(
        overwrite=force,
        directories=directories,
        confirm=lambda directory: click.confirm(
            f"Create directory {directory}?", default=True
        ),
        dry_run=dry_run,
        force=force,
    )
    filters = RestoreFilters(only_user=only_user, only_folder=only_folder)

    manager = RestoreManager(_get_catalog(ctx))
    run = manager.run(
        source,
        root or "",
        user_map=user_map,
        filters=filters,
        policy=policy,
        verify_only=verify_only,
        skip_verify=skip_verify,
    )

    if run.report is not None and (verify_only or not run.report.valid):
        ValidationDisplay.display_manifest_report(run.report)

    if run.state is RestoreState.VERIFY_ONLY_DONE:
        if not run.report.valid:
            sys.exit(1)
        return

    if run.state is RestoreState.ABORTED:
        if isinstance(run.error, IntegrityMismatch):
            click.echo(f"{Fore.YELLOW}Use --force to restore anyway.{Style.RESET_ALL}")
        _error(f"Restore aborted: {run.error}")

    outcome = run.outcome
    if dry_run:
        click.echo(f"\n{Fore.CYAN}Dry run complete (nothing was written){Style.RESET_ALL}")
    else:
        click.echo(f"\n{Fore.GREEN}Restore completed!{Style.RESET_ALL}")
    _print_summary(outcome)


@cli.command("map")
@click.argument("symbolic_path")
@click.argument("user", required=False, default="")
@click.option("--volume-root", "-r", help="Volume root (overrides config)")
@click.pass_context
def map_cmd(ctx, symbolic_path, user, volume_root):
    """Print the concrete path of SYMBOLIC_PATH for USER."""
    root = _resolve_volume_root(ctx, volume_root)
    try:
        click.echo(encode(symbolic_path, root, user or None, _get_catalog(ctx)))
    except RelocatorError as e:
        _error(str(e))


@cli.command()
@click.argument("path")
@click.argument("user", required=False, default="")
@click.option("--volume-root", "-r", help="Volume root (overrides config)")
@click.pass_context
def tokenize(ctx, path, user, volume_root):
    """Print the symbolic path of PATH for USER."""
    root = _resolve_volume_root(ctx, volume_root)
    click.echo(decode(path, root, user, _get_catalog(ctx)))


@cli.command()
@click.option("--volume-root", "-r", help="Volume root (overrides config)")
@click.pass_context
def users(ctx, volume_root):
    """List user profiles on the volume."""
    _configure_logging(ctx)
    root = _resolve_volume_root(ctx, volume_root)
    profiles = SelectionManager(root, _get_catalog(ctx)).list_users()
    if not profiles:
        click.echo(f"{Fore.YELLOW}No user profiles found under {root}{Style.RESET_ALL}")
        return
    for name in profiles:
        click.echo(name)


@cli.command("init")
@click.option("--output", "-o", help="Output file path (default: $RELOCATOR_DIR/config.yml)")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing file")
def init_cmd(output, force):
    """Generate default configuration file."""
    config_path = Path(output).expanduser() if output else get_default_config_path()

    if config_path.exists() and not force:
        if not click.confirm(f"File '{config_path}' exists. Overwrite?"):
            return

    try:
        create_default_config(str(config_path))
    except OSError as e:
        _error(str(e))

    click.echo(f"{Fore.GREEN}Configuration file created: {config_path}{Style.RESET_ALL}")
    click.echo(f"\n{Fore.CYAN}Next steps:{Style.RESET_ALL}")
    click.echo(f"  1. Edit {config_path} (volume root, users, known folders)")
    click.echo("  2. Run 'relocate config validate' to check your config")
    click.echo("  3. Run 'relocate backup --dry-run'")
    if output:
        click.echo(
            f"\nTip: keep it in {get_relocator_dir()} or pass -c <dir> to use it"
        )


@cli.group("config")
def config_cmd():
    """Configuration management commands."""


@config_cmd.command("view")
@click.pass_context
def config_view(ctx):
    """Display raw configuration file content."""
    config_manager = _get_config_manager(ctx, required=True)
    click.echo(config_manager.config_path.read_text(encoding="utf-8"))


@config_cmd.command("validate")
@click.pass_context
def config_validate(ctx):
    """Validate configuration file and volume paths."""
    config_manager = _get_config_manager(ctx, required=True)
    click.echo(f"{Fore.CYAN}Validating configuration...{Style.RESET_ALL}\n")
    if not ValidationDisplay.display_detailed_validation(config_manager):
        sys.exit(1)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        click.echo(
            f"\n{Fore.YELLOW}Warning: Operation cancelled by user{Style.RESET_ALL}"
        )
        sys.exit(1)
