"""Rendering of per-format chain reports and CSV export of raw chain results."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path

import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from . import __version__
from .chain_runner import ChainResult
from .chain_stats import ChainStats
from .io import atomic_write

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
REPORT_TEMPLATE = "report.html.j2"

CSV_COLUMNS = [
    "format",
    "chain",
    "steps",
    "successful_steps",
    "src_size",
    "dst_size",
    "ratio",
    "difference",
    "time",
]


def report_filename(image_format: str) -> str:
    return f"worker-analysis-{image_format}.html"


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["filesize"] = _format_filesize
    return env


def _format_filesize(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KiB"
    return f"{size / (1024 * 1024):.1f} MiB"


def render_report(
    image_format: str,
    stats: Sequence[ChainStats],
    unused: Sequence[str],
    output_dir: Path,
    *,
    image_count: int | None = None,
) -> Path:
    """Render the HTML report of one image format.

    Args:
        image_format: Format key, e.g. ``png``
        stats: Chain statistics in reporting order
        unused: Worker ids that never succeeded for this format
        output_dir: Directory receiving ``worker-analysis-<format>.html``
        image_count: Number of analysed images, shown in the header

    Returns:
        Path of the written report
    """
    template = _environment().get_template(REPORT_TEMPLATE)
    html = template.render(
        image_format=image_format,
        stats=stats,
        unused=list(unused),
        image_count=image_count,
        version=__version__,
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
    )

    report_path = Path(output_dir) / report_filename(image_format)
    with atomic_write(report_path) as f:
        f.write(html)

    logger.info(f"📄 Report written: {report_path}")
    return report_path


def chain_results_dataframe(results: Iterable[ChainResult]) -> pd.DataFrame:
    """One row per chain result."""
    rows = [
        {
            "format": result.format,
            "chain": " → ".join(result.worker_ids),
            "steps": len(result.steps),
            "successful_steps": sum(1 for step in result.steps if step.success),
            "src_size": result.src_size,
            "dst_size": result.dst_size,
            "ratio": result.ratio,
            "difference": result.difference,
            "time": result.time,
        }
        for result in results
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def export_chain_results_csv(results: Iterable[ChainResult], path: Path) -> Path:
    """Write every chain result to *path* as CSV."""
    df = chain_results_dataframe(results)
    path = Path(path)
    with atomic_write(path) as f:
        df.to_csv(f, index=False)
    logger.info(f"💾 Exported {len(df)} chain results to {path}")
    return path
