"""Shared utilities for CLI commands."""

import sys
from pathlib import Path

import click

from ..config import PathConfig


def handle_generic_error(command_name: str, error: Exception) -> None:
    """Handle generic command errors with consistent formatting."""
    click.echo(f"❌ {command_name} failed: {error}", err=True)
    sys.exit(1)


def handle_keyboard_interrupt(command_name: str) -> None:
    """Handle keyboard interrupt with consistent formatting."""
    click.echo(f"\n⏹️  {command_name} interrupted by user", err=True)
    sys.exit(1)


def build_path_config(cache_dir: Path | None = None, report_dir: Path | None = None) -> PathConfig:
    """Return a PathConfig where explicit CLI options win over environment overrides."""
    path_config = PathConfig()
    if cache_dir is not None:
        path_config.CACHE_DIR = Path(cache_dir)
    if report_dir is not None:
        path_config.REPORT_DIR = Path(report_dir)
    return path_config


def display_path_info(label: str, path: Path, emoji: str = "📁") -> None:
    """Display path information with consistent formatting."""
    click.echo(f"{emoji} {label}: {path}")


cache_dir_option = click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working directory of the result cache (default: tmp/chainlab or $CHAINLAB_CACHE_DIR)",
)
