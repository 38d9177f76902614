"""Rich Console factory and theme for fedideploy output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

FEDI_THEME = Theme(
    {
        "fedi.ok": "bold green",
        "fedi.error": "bold red",
        "fedi.warning": "bold yellow",
        "fedi.op": "bold cyan",
        "fedi.key": "dim",
        "fedi.path": "dim",
        "fedi.url": "bold blue",
        "fedi.secret": "bold magenta",
        "fedi.status.healthy": "green",
        "fedi.status.starting": "yellow",
        "fedi.status.failed": "red",
        "fedi.status.skipped": "dim",
    }
)

_STATUS_STYLES: dict[str, str] = {
    "healthy": "fedi.status.healthy",
    "running": "fedi.status.healthy",
    "followed": "fedi.status.healthy",
    "starting": "fedi.status.starting",
    "unhealthy": "fedi.status.failed",
    "exited": "fedi.status.failed",
    "failed": "fedi.status.failed",
    "missing": "fedi.status.skipped",
    "skipped": "fedi.status.skipped",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=FEDI_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Return the Rich style name for a container or follow status."""
    return _STATUS_STYLES.get(status, "")
