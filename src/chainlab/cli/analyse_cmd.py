"""Chain analysis command."""

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..analysis import AnalysisRunner, AnalysisSummary
from ..config import AnalysisConfig, EngineConfig
from ..io import setup_logging
from ..worker_variants import load_option_variants
from .utils import (
    build_path_config,
    cache_dir_option,
    display_path_info,
    handle_generic_error,
    handle_keyboard_interrupt,
)

# Chains listed per format in the terminal summary
SUMMARY_ROWS = 10

_WARNING_STYLES = {
    "none": "green",
    "low": "yellow",
    "medium": "dark_orange",
    "high": "red",
}


@click.command("analyse")
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with option variants per worker",
)
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    default=1,
    help="Number of images explored in parallel (default: 1)",
)
@click.option(
    "--report-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory receiving worker-analysis-<format>.html (default: current directory)",
)
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also export every chain result to this CSV file",
)
@cache_dir_option
@click.option(
    "--clear-cache",
    is_flag=True,
    help="Flush cached results and images before running",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging verbosity (default: INFO)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Hide progress bars",
)
def analyse(
    paths: tuple[Path, ...],
    config_file: Path | None,
    jobs: int,
    report_dir: Path | None,
    csv_path: Path | None,
    cache_dir: Path | None,
    clear_cache: bool,
    log_level: str,
    no_progress: bool,
) -> None:
    """Explore worker chains for every image in PATHS and report per format.

    PATHS may be image files or directories (searched recursively). Inputs
    that are missing, not images, or have no applicable worker are skipped.

    Examples:

        # Analyse a directory of PNG and JPEG files
        chainlab analyse images/

        # Try two pngquant quality settings, four images at a time
        chainlab analyse images/ --config variants.yaml --jobs 4
    """
    try:
        path_config = build_path_config(cache_dir, report_dir)
        setup_logging(path_config.LOGS_DIR, log_level)

        option_variants = load_option_variants(config_file) if config_file else None
        runner = AnalysisRunner(
            option_variants,
            path_config=path_config,
            engine_config=EngineConfig(),
            analysis_config=AnalysisConfig(),
            jobs=jobs,
            show_progress=not no_progress,
        )

        if clear_cache:
            click.echo("🗑️ Clearing result cache...")
            removed = runner.clear_cache()
            click.echo(f"   • Removed {removed} cached results")

        display_path_info("Cache", path_config.CACHE_DIR)
        summary = runner.run(paths, report_dir=path_config.REPORT_DIR, csv_path=csv_path)
        _display_summary(summary)

    except KeyboardInterrupt:
        handle_keyboard_interrupt("Analysis")
    except Exception as e:
        handle_generic_error("Analysis", e)


def _display_summary(summary: AnalysisSummary) -> None:
    console = Console()

    if summary.skipped:
        console.print(f"⚠️  Skipped {len(summary.skipped)} input(s)")

    if not summary.results_by_format:
        console.print("❌ No images were analysed")
        return

    console.print(
        f"✅ Explored {summary.total_results} chain result(s) over {summary.image_count} image(s)"
    )

    for image_format, stats in summary.stats_by_format.items():
        images = summary.images_by_format.get(image_format, 0)
        table = Table(
            title=f"🔗 {image_format}: {images} image(s), {len(stats)} chain(s)",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("#", justify="right")
        table.add_column("Chain", style="cyan")
        table.add_column("Ratio", justify="right")
        table.add_column("Max diff", justify="right")
        table.add_column("Time (s)", justify="right")
        table.add_column("Speed (B/s)", justify="right")

        for rank, chain in enumerate(stats[:SUMMARY_ROWS], start=1):
            style = _WARNING_STYLES[chain.warning_level.value]
            table.add_row(
                str(rank),
                escape(chain.name),
                f"{chain.ratio:.2%}",
                f"[{style}]{chain.max_difference:.5f}[/{style}]",
                f"{chain.time:.2f}",
                str(chain.speed),
            )

        console.print(table)

        fastest = max(stats, key=lambda chain: chain.speed.sort_key)
        if fastest.saved_bytes > 0:
            console.print(f"⚡ Fastest: {escape(fastest.name)} ({fastest.speed} B/s)")

        unused = summary.unused_by_format.get(image_format)
        if unused:
            console.print(f"[red]Unused workers:[/red] {escape(', '.join(unused))}")

        report = summary.reports.get(image_format)
        if report:
            console.print(f"📄 Report: {report}")
        console.print()

    if summary.csv_path:
        console.print(f"💾 Chain results: {summary.csv_path}")
