"""Command line interface for managing OpenVPN Connect profiles."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, NoReturn, Optional

import click
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .core.errors import PartialCommitError, ProfileManagerError
from .core.synchronizer import ProfileSynchronizer
from .utils.logging import get_logger
from .utils.paths import CONFIG_ENV_VAR, default_config_path, expand_profile_glob

logger = get_logger("cli")

console = Console()
app = typer.Typer(add_completion=False, help="Import, remove and update OpenVPN Connect profiles")

PASSWORD_HELP = "Password will be saved encrypted into the OS credential store"
USERNAME_HELP = "Username will be saved in the profile config as plain text"


def _config_option():
    return typer.Option(
        default_config_path(),
        "--config",
        "-c",
        envvar=CONFIG_ENV_VAR,
        help="Path to OpenVPN Connect config file",
        dir_okay=False,
        resolve_path=True,
    )


def _regex(value: str) -> re.Pattern:
    try:
        return re.compile(value)
    except re.error as exc:
        raise typer.BadParameter(f"invalid regular expression: {exc}") from exc


def _fail(exc: ProfileManagerError) -> NoReturn:
    logger.error("%s", exc)
    console.print(f"[red]Error: {escape(str(exc))}[/red]")
    if isinstance(exc, PartialCommitError):
        console.print("[yellow]Warning: changes made before the failure were not rolled back[/yellow]")
    raise typer.Exit(code=1)


def _import(username: str, pattern: str, password: Optional[str], config: Path, replace: bool) -> None:
    filenames = expand_profile_glob(pattern)
    if not filenames:
        console.print(f"[yellow]No profile files match {escape(pattern)}[/yellow]")
        return
    synchronizer = ProfileSynchronizer(config)
    try:
        if replace:
            count = synchronizer.replace_profiles(filenames, username, password)
        else:
            count = synchronizer.import_profiles(filenames, username, password)
    except ProfileManagerError as exc:
        _fail(exc)
    console.print(f"{count} profile(s) imported")


@app.command("import")
def import_(
    username: str = typer.Argument(..., help=USERNAME_HELP),
    pattern: str = typer.Argument("*.ovpn", help="Glob to match OpenVPN profile files"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help=PASSWORD_HELP),
    config: Path = _config_option(),
) -> None:
    """Import profiles."""
    _import(username, pattern, password, config, replace=False)


@app.command()
def replace(
    username: str = typer.Argument(..., help=USERNAME_HELP),
    pattern: str = typer.Argument("*.ovpn", help="Glob to match OpenVPN profile files"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help=PASSWORD_HELP),
    config: Path = _config_option(),
) -> None:
    """Delete every saved OpenVPN Connect credential, then import profiles."""
    _import(username, pattern, password, config, replace=True)


@app.command()
def remove(
    regex: str = typer.Argument(..., help="Regex to match profiles to be removed"),
    config: Path = _config_option(),
) -> None:
    """Remove profiles."""
    try:
        count = ProfileSynchronizer(config).remove_profiles(_regex(regex))
    except ProfileManagerError as exc:
        _fail(exc)
    console.print(f"{count} profile(s) removed")


@app.command("set")
def set_(
    regex: str = typer.Argument(..., help="Regex to match profiles to be updated"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help=USERNAME_HELP),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="Forget the saved password; the value given is not stored"
    ),
    clear_saved_flag: bool = typer.Option(
        False, "--clear-saved-flag", help="Also mark the profile as having no saved password"
    ),
    config: Path = _config_option(),
) -> None:
    """Update profiles."""
    pattern = _regex(regex)
    try:
        count = ProfileSynchronizer(config).update_profiles(
            pattern, username=username, invalidate_password=password is not None, clear_saved_flag=clear_saved_flag
        )
    except ProfileManagerError as exc:
        _fail(exc)
    if count is None:
        console.print("nothing to update")
        return
    console.print(f"{count} profile(s) updated")


@app.command("list")
def list_(
    regex: Optional[str] = typer.Argument(None, help="Regex to filter profiles"),
    config: Path = _config_option(),
) -> None:
    """List profiles stored in the config file."""
    try:
        profiles = ProfileSynchronizer(config).list_profiles(_regex(regex) if regex else None)
    except ProfileManagerError as exc:
        _fail(exc)
    table = Table(title="OpenVPN Connect Profiles")
    table.add_column("Name")
    table.add_column("Endpoint")
    table.add_column("Username")
    table.add_column("Saved Password")
    for profile in profiles:
        table.add_row(escape(profile.name), escape(f"{profile.host}:{profile.port}"), escape(profile.username) or "-", "Yes" if profile.saved_password else "No")
    console.print(table)


@app.command()
def audit(
    regex: Optional[str] = typer.Argument(None, help="Regex to filter profiles"),
    config: Path = _config_option(),
) -> None:
    """Check saved-password flags against the credential store."""
    try:
        results = ProfileSynchronizer(config).audit_credentials(_regex(regex) if regex else None)
    except ProfileManagerError as exc:
        _fail(exc)
    table = Table(title="Credential Audit")
    table.add_column("Name")
    table.add_column("Flag")
    table.add_column("Stored")
    table.add_column("Readable")
    table.add_column("Status")
    mismatched = 0
    for result in results:
        if not result.consistent:
            mismatched += 1
        table.add_row(
            escape(result.name),
            "Yes" if result.saved_password else "No",
            "Yes" if result.stored else "No",
            ("Yes" if result.readable else "No") if result.stored else "-",
            "[green]OK[/green]" if result.consistent else "[red]Mismatch[/red]",
        )
    console.print(table)
    console.print(f"{mismatched} profile(s) out of sync")
    if mismatched:
        raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        console.print(__version__)
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Manage OpenVPN Connect profiles from the terminal."""


def run_cli(argv: List[str] | None = None) -> int:
    try:
        result = app(args=argv, prog_name="openvpn-connect-profile-manager", standalone_mode=False)
    except typer.Exit as exc:
        return exc.exit_code
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.exceptions.Abort:
        console.print("Aborted")
        return 1
    return result if isinstance(result, int) else 0
