from __future__ import annotations

import subprocess
import time
from typing import Any

from ..error_handling import EngineError

__all__ = [
    "run_command",
]


def run_command(cmd: list[str], *, engine: str, timeout: int | None = 60) -> dict[str, Any]:
    """Execute *cmd* and return ChainLab-style metadata.

    The helper blocks until *cmd* completes, raises *EngineError* on non-zero
    exit status or timeout and captures the elapsed wall-clock time in
    milliseconds.

    Parameters
    ----------
    cmd
        Full command as a list of strings (preferred over shell=True).
    engine
        Human-readable engine key, e.g. "imagemagick", "pngquant".
    timeout
        Optional hard timeout (seconds) – *None* disables the limit.

    Returns
    -------
    dict
        Metadata dict with the keys ``render_ms``, ``engine``, ``command``,
        ``stdout`` and ``stderr``.
    """
    start = time.perf_counter()
    try:
        completed = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise EngineError(
            f"{engine} command timed out after {timeout}s: {' '.join(cmd)}", cause=e
        ) from e
    except OSError as e:
        raise EngineError(f"{engine} command could not be started: {cmd[0]}", cause=e) from e
    duration_ms = int((time.perf_counter() - start) * 1000)

    if completed.returncode != 0:
        raise EngineError(
            f"{engine} command failed (exit {completed.returncode}).\n\n"
            f"STDERR:\n{completed.stderr.strip()}",
            context={"command": " ".join(cmd), "returncode": completed.returncode},
        )

    return {
        "render_ms": duration_ms,
        "engine": engine,
        "command": " ".join(cmd),
        "stdout": completed.stdout,
        "stderr": completed.stderr,
    }
