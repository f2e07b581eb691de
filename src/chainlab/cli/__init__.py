"""CLI module for ChainLab commands.

Commands live in separate modules and are registered on the ``main`` group
here.
"""

import click

from .. import __version__
from .analyse_cmd import analyse
from .cache_cmd import cache
from .workers_cmd import workers


@click.group()
@click.version_option(version=__version__, prog_name="chainlab")
def main() -> None:
    """🔗 ChainLab — image optimization worker chain analysis laboratory."""
    pass


main.add_command(analyse)
main.add_command(cache)
main.add_command(workers)

__all__ = [
    "analyse",
    "cache",
    "main",
    "workers",
]
