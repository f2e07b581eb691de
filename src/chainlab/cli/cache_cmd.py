"""Cache management commands for the ChainLab result cache."""

import json
from pathlib import Path

import click

from ..caching import CacheStore, ImageStore
from .utils import build_path_config, cache_dir_option, handle_generic_error


@click.group("cache")
def cache() -> None:
    """Inspect or flush the persistent result cache."""
    pass


def _image_tree_usage(root: Path) -> tuple[int, int]:
    files = [p for p in root.rglob("*") if p.is_file()] if root.exists() else []
    return len(files), sum(p.stat().st_size for p in files)


@cache.command("status")
@cache_dir_option
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output cache statistics in JSON format",
)
def cache_status(cache_dir: Path | None, output_json: bool) -> None:
    """Display entry counts and disk usage of the result cache.

    Examples:

        # View cache status
        chainlab cache status

        # Get machine-readable JSON output
        chainlab cache status --json
    """
    try:
        path_config = build_path_config(cache_dir)
        stats = CacheStore(path_config.cache_db_path).get_cache_stats()
        image_count, image_bytes = _image_tree_usage(path_config.images_dir)

        if output_json:
            output = {
                **stats,
                "cached_images": image_count,
                "cached_images_mb": round(image_bytes / (1024 * 1024), 2),
                "images_path": str(path_config.images_dir),
            }
            output.pop("hits")
            output.pop("misses")
            click.echo(json.dumps(output, indent=2))
            return

        click.echo("📊 Result Cache Status")
        click.echo("=" * 50)
        click.echo(f"  Database:       {stats['database_path']}")
        click.echo(f"  Size:           {stats['database_size_mb']:.2f} MB")
        click.echo(f"  Entries:        {stats['total_entries']:,}")
        for namespace, count in stats["entries_by_namespace"].items():
            click.echo(f"    {namespace + ':':<14}{count:,}")
        click.echo()
        click.echo(f"  Images:         {path_config.images_dir}")
        click.echo(f"  Cached images:  {image_count:,} ({image_bytes / (1024 * 1024):.2f} MB)")

    except Exception as e:
        handle_generic_error("Cache status", e)


@cache.command("clear")
@cache_dir_option
@click.option(
    "--confirm",
    is_flag=True,
    help="Skip confirmation prompt",
)
def cache_clear(cache_dir: Path | None, confirm: bool) -> None:
    """Delete every cached result and cached image.

    The next analysis recomputes everything from scratch.
    """
    try:
        path_config = build_path_config(cache_dir)
        if not confirm and not click.confirm(
            f"Clear the result cache in {path_config.CACHE_DIR}?"
        ):
            click.echo("Cache clear cancelled")
            return

        removed = CacheStore(path_config.cache_db_path).clear_cache()
        ImageStore(path_config.images_dir).clear()
        click.echo(f"✅ Cleared {removed} cached results and all cached images")

    except Exception as e:
        handle_generic_error("Cache clear", e)
